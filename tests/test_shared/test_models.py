"""
Tests for the domain models.

These tests verify that stored documents parse into records the way the
database actually holds them, and that notification events build the data
payload the mobile app expects.
"""

from shared.models import (
    DeviceRecord,
    EventKind,
    GuardianContact,
    NotificationEvent,
    TriggerKind,
    UserRecord,
)


class TestDeviceRecord:
    """Tests for parsing devices/{id} documents."""

    def test_from_snapshot(self):
        """Test parsing a complete device document."""
        device = DeviceRecord.from_snapshot("MEDIBOX001", {
            "guardianPushToken": "tok123",
            "notificationTrigger": {"triggered": True, "timestamp": 1718000000000},
            "missedDose": {"missed": False, "compartment": "morning"},
            "name": "Living room box",
        })

        assert device.id == "MEDIBOX001"
        assert device.guardian_push_token == "tok123"
        assert device.notification_trigger.triggered is True
        assert device.notification_trigger.timestamp == 1718000000000
        assert device.missed_dose.missed is False
        assert device.missed_dose.compartment == "morning"

    def test_legacy_token_field(self):
        """Test that guardianFcmToken is read when guardianPushToken is absent."""
        device = DeviceRecord.from_snapshot("OLD", {"guardianFcmToken": "legacy-token"})
        assert device.guardian_push_token == "legacy-token"

    def test_canonical_token_wins_over_legacy(self):
        device = DeviceRecord.from_snapshot("D", {
            "guardianPushToken": "new-token",
            "guardianFcmToken": "old-token",
        })
        assert device.guardian_push_token == "new-token"

    def test_missing_sub_records_default_to_clear(self):
        """Test that a bare document has both flags clear."""
        device = DeviceRecord.from_snapshot("D", {})

        assert device.guardian_push_token is None
        assert device.notification_trigger.triggered is False
        assert device.missed_dose.missed is False

    def test_non_object_sub_records_are_ignored(self):
        device = DeviceRecord.from_snapshot("D", {"notificationTrigger": True, "missedDose": None})

        assert device.notification_trigger.triggered is False
        assert device.missed_dose.missed is False

    def test_none_snapshot(self):
        device = DeviceRecord.from_snapshot("D", None)
        assert device.id == "D"


class TestUserRecord:
    """Tests for parsing users/{id} documents."""

    def test_from_snapshot(self):
        user = UserRecord.from_snapshot("user-002", {
            "phoneNumber": "+94771234567",
            "devices": ["D1", "D2"],
            "email": "kumari@example.com",
        })

        assert user.id == "user-002"
        assert user.phone_number == "+94771234567"
        assert user.devices == ["D1", "D2"]
        assert user.owns("D2")
        assert not user.owns("D3")

    def test_index_keyed_device_list(self):
        """Test that an array stored as an index-keyed object is read as a list."""
        user = UserRecord.from_snapshot("u", {"devices": {"0": "A", "1": "B"}})
        assert user.devices == ["A", "B"]

    def test_legacy_phone_is_not_the_phone_number(self):
        """Test that notifications.phoneNumber is kept aside, not used."""
        user = UserRecord.from_snapshot("u", {
            "notifications": {"phoneNumber": "+94775555555"},
            "devices": ["X"],
        })

        assert user.phone_number is None
        assert user.legacy_phone_number == "+94775555555"

    def test_legacy_phone_excluded_from_dump(self):
        user = UserRecord.from_snapshot("u", {"notifications": {"phoneNumber": "+94775555555"}})
        assert "legacy_phone_number" not in user.model_dump()

    def test_no_devices(self):
        user = UserRecord.from_snapshot("u", {"phoneNumber": "+94776666666"})
        assert user.devices == []


class TestTriggerKind:
    def test_flag_fields(self):
        assert TriggerKind.NOTIFICATION.flag_field == "triggered"
        assert TriggerKind.MISSED_DOSE.flag_field == "missed"


class TestGuardianContact:
    def test_is_empty(self):
        assert GuardianContact().is_empty
        assert not GuardianContact(push_token="tok").is_empty
        assert not GuardianContact(phone="+94770000000").is_empty


class TestNotificationEvent:
    """Tests for the transient notification event."""

    def test_kind(self):
        event = NotificationEvent(type="pill_taken", device_id="D", title="t", body="b", timestamp=1)
        assert event.kind == EventKind.DOSE_TAKEN

    def test_unknown_type_has_no_kind(self):
        """Test that caller-defined types are kept as-is."""
        event = NotificationEvent(type="refill_reminder", device_id="D", title="t", body="b", timestamp=1)

        assert event.kind is None
        assert event.data_payload()["type"] == "refill_reminder"

    def test_data_payload_is_all_strings(self):
        event = NotificationEvent(
            type="pill_taken", device_id="MEDIBOX001", title="t", body="b", timestamp=1718000000000
        )

        assert event.data_payload() == {
            "deviceId": "MEDIBOX001",
            "type": "pill_taken",
            "timestamp": "1718000000000",
        }

    def test_missed_dose_payload_carries_compartment(self):
        event = NotificationEvent(
            type="missed_dose", device_id="D", title="t", body="b", timestamp=5, compartment="morning"
        )
        assert event.data_payload()["compartment"] == "morning"
