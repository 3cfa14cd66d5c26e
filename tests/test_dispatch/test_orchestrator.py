"""
Tests for the dispatch orchestrator.

These tests drive classified events through contact resolution, both
channels and the trigger reset, against the in-memory store.
"""

import logging

import httpx
import pytest
from firebase_admin import messaging

from dispatch.classifier import classify_change, dose_taken_event, request_event
from dispatch.orchestrator import DispatchState, Dispatcher
from shared.channels import ChannelType, PushSender, SMSSender
from shared.config import Settings
from shared.data_store import InMemoryStore
from shared.errors import BackingStoreFault


def raise_trigger(store: InMemoryStore, device_id: str, **changes):
    """Set a trigger flag the way the firmware does and classify the change."""
    before = store.get_device_snapshot(device_id)
    store.update_device(device_id, changes)
    return classify_change(device_id, before, store.get_device_snapshot(device_id))


class TestDispatch:
    """Tests for the full dispatch sequence."""

    def test_trigger_dispatches_once_then_clears(
        self, dispatcher: Dispatcher, data_store, push_transport, sms_gateway, medibox_device_id
    ):
        events = raise_trigger(data_store, medibox_device_id, **{"notificationTrigger/triggered": True})
        assert len(events) == 1

        report = dispatcher.dispatch(events[0])

        assert report.state == DispatchState.DONE
        assert report.trigger_reset is True
        assert report.delivered
        assert len(push_transport.messages) == 1
        assert push_transport.messages[0].token == "tok123"
        assert len(sms_gateway.requests) == 1
        assert sms_gateway.messages[0]["recipient"] == "+94770000000"
        assert data_store.get_device(medibox_device_id).notification_trigger.triggered is False

    def test_no_second_delivery_after_reset(
        self, dispatcher: Dispatcher, data_store, push_transport, medibox_device_id
    ):
        """Test that once the flag is cleared, the device no longer classifies."""
        events = raise_trigger(data_store, medibox_device_id, **{"notificationTrigger/triggered": True})
        dispatcher.dispatch(events[0])

        assert classify_change(medibox_device_id, None, data_store.get_device_snapshot(medibox_device_id)) == []
        assert len(push_transport.messages) == 1

    def test_missed_dose(self, dispatcher: Dispatcher, data_store, push_transport, sms_gateway, medibox_device_id):
        events = raise_trigger(data_store, medibox_device_id, missedDose={"missed": True, "compartment": "morning"})

        report = dispatcher.dispatch(events[0])

        message = push_transport.messages[0]
        assert message.data["type"] == "missed_dose"
        assert message.data["compartment"] == "morning"
        assert message.android.notification.priority == "max"
        assert "morning" in sms_gateway.messages[0]["message"]
        assert report.trigger_reset
        assert data_store.get_device(medibox_device_id).missed_dose.missed is False

    def test_message_id(self, dispatcher: Dispatcher, medibox_device_id):
        report = dispatcher.dispatch(dose_taken_event(medibox_device_id))
        assert report.message_id == "projects/medibox-test/messages/1"


class TestChannelIndependence:
    """A failure in one channel never blocks the other."""

    def test_push_failure_does_not_prevent_sms(
        self, dispatcher: Dispatcher, push_transport, sms_gateway, medibox_device_id
    ):
        push_transport.error = messaging.UnregisteredError("Requested entity was not found.")

        report = dispatcher.dispatch(dose_taken_event(medibox_device_id))

        assert not report.push.success
        assert report.sms.success
        assert report.delivered
        assert report.message_id is None
        assert len(sms_gateway.requests) == 1

    def test_sms_failure_does_not_prevent_push(
        self, dispatcher: Dispatcher, data_store, push_transport, sms_gateway, medibox_device_id
    ):
        sms_gateway.error = httpx.ConnectError("connection refused")
        events = raise_trigger(data_store, medibox_device_id, **{"notificationTrigger/triggered": True})

        report = dispatcher.dispatch(events[0])

        assert report.push.success
        assert not report.sms.success
        assert report.sms.channel == ChannelType.SMS
        assert "connection refused" in report.sms.error
        assert report.trigger_reset

    def test_both_channels_fail(self, dispatcher: Dispatcher, push_transport, sms_gateway, medibox_device_id):
        push_transport.error = messaging.UnregisteredError("gone")
        sms_gateway.error = httpx.ReadTimeout("timed out")

        report = dispatcher.dispatch(dose_taken_event(medibox_device_id))

        assert report.state == DispatchState.DONE
        assert not report.delivered
        assert len(report.results) == 2

    def test_unexpected_push_error_is_contained(self, data_store, settings, sms_sender, medibox_device_id):
        def broken(message):
            raise RuntimeError("transport bug")

        dispatcher = Dispatcher(data_store, PushSender(settings, transport=broken), sms_sender)

        report = dispatcher.dispatch(dose_taken_event(medibox_device_id))

        assert report.push.error == "transport bug"
        assert report.sms.success


class TestMissingContacts:
    def test_unowned_device(self, dispatcher: Dispatcher, data_store, push_transport, sms_gateway, orphan_device_id):
        """Test that a device with no owner gets push only, without raising."""
        events = raise_trigger(data_store, orphan_device_id, **{"notificationTrigger/triggered": True})

        report = dispatcher.dispatch(events[0])

        assert report.contact.phone is None
        assert report.sms is None
        assert len(push_transport.messages) == 1
        assert sms_gateway.requests == []
        assert report.trigger_reset

    def test_unknown_device(self, dispatcher: Dispatcher, push_transport, sms_gateway):
        report = dispatcher.dispatch(dose_taken_event("nonexistent-id"))

        assert report.contact.is_empty
        assert report.results == []
        assert report.trigger_reset is False
        assert report.state == DispatchState.DONE

    def test_sms_skipped_when_unconfigured(self, data_store, data_dir, push_sender, sms_gateway, medibox_device_id):
        sms_sender = SMSSender(Settings(_env_file=None, data_dir=data_dir), client=sms_gateway.client())
        dispatcher = Dispatcher(data_store, push_sender, sms_sender)

        report = dispatcher.dispatch(dose_taken_event(medibox_device_id))

        assert report.sms.skipped
        assert report.delivered
        assert sms_gateway.requests == []


class TestTriggerReset:
    """Tests for clearing the trigger flag after dispatch."""

    def test_request_event_does_not_reset(self, dispatcher: Dispatcher, data_store, medibox_device_id):
        data_store.update_device(medibox_device_id, {"notificationTrigger/triggered": True})

        report = dispatcher.dispatch(request_event(medibox_device_id, "t", "b", "pill_taken"))

        assert report.trigger_reset is False
        assert report.state == DispatchState.DONE
        assert data_store.get_device(medibox_device_id).notification_trigger.triggered is True

    def test_already_cleared(self, dispatcher: Dispatcher, medibox_device_id, caplog):
        with caplog.at_level(logging.WARNING, logger="dispatcher"):
            report = dispatcher.dispatch(dose_taken_event(medibox_device_id))

        assert report.trigger_reset is False
        assert "already cleared" in caplog.text

    def test_reset_fault_after_delivery(self, dispatcher: Dispatcher, data_store, push_transport, medibox_device_id):
        events = raise_trigger(data_store, medibox_device_id, **{"notificationTrigger/triggered": True})
        data_store.fail_writes = True

        with pytest.raises(BackingStoreFault):
            dispatcher.dispatch(events[0])

        # Delivery was attempted before the reset failed
        assert len(push_transport.messages) == 1


class TestStoreFaults:
    def test_contact_lookup_fault(self, data_dir, push_sender, sms_sender, push_transport, sms_gateway):
        store = InMemoryStore(data_dir=data_dir, fail_reads=True)
        dispatcher = Dispatcher(store, push_sender, sms_sender)

        with pytest.raises(BackingStoreFault):
            dispatcher.dispatch(dose_taken_event("MEDIBOX001"))

        assert push_transport.messages == []
        assert sms_gateway.requests == []
