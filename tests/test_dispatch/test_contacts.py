"""
Tests for the contact resolver.
"""

import logging

import pytest

from dispatch.contacts import ContactResolver
from shared.data_store import InMemoryStore
from shared.errors import BackingStoreFault


@pytest.fixture
def resolver(data_store: InMemoryStore) -> ContactResolver:
    return ContactResolver(data_store)


class TestResolveGuardian:
    """Tests for resolving both channels of a device's guardian."""

    def test_token_and_phone(self, resolver: ContactResolver, medibox_device_id: str):
        contact = resolver.resolve_guardian(medibox_device_id)

        assert contact.push_token == "tok123"
        assert contact.phone == "+94770000000"

    def test_second_device_of_owner(self, resolver: ContactResolver):
        assert resolver.resolve_guardian("D2").phone == "+94771234567"

    def test_unowned_device(self, resolver: ContactResolver, orphan_device_id: str):
        """Test that a device no user lists has no phone, without raising."""
        contact = resolver.resolve_guardian(orphan_device_id)

        assert contact.push_token is not None
        assert contact.phone is None

    def test_unknown_device(self, resolver: ContactResolver):
        contact = resolver.resolve_guardian("nonexistent-id")
        assert contact.is_empty

    def test_device_without_token(self, resolver: ContactResolver, no_token_device_id: str):
        contact = resolver.resolve_guardian(no_token_device_id)

        assert contact.push_token is None
        assert contact.phone == "+94772222222"

    def test_store_fault_propagates(self, data_dir):
        resolver = ContactResolver(InMemoryStore(data_dir=data_dir, fail_reads=True))

        with pytest.raises(BackingStoreFault):
            resolver.resolve_guardian("MEDIBOX001")


class TestResolvePhone:
    """Tests for owner phone lookup edge cases."""

    def test_legacy_phone_field_is_flagged_not_used(self, resolver: ContactResolver, caplog):
        with caplog.at_level(logging.WARNING, logger="contacts"):
            phone = resolver.resolve_phone("MEDIBOX_LEGACY")

        assert phone is None
        assert "notifications.phoneNumber" in caplog.text

    def test_multiple_owners_first_with_phone_wins(self, resolver: ContactResolver, caplog):
        with caplog.at_level(logging.WARNING, logger="contacts"):
            phone = resolver.resolve_phone("MEDIBOX_SHARED")

        assert phone == "+94773333333"
        assert "listed by 2 users" in caplog.text

    def test_owner_without_phone(self, data_store: InMemoryStore, resolver: ContactResolver):
        data_store.put_user("user-x", {"devices": ["MEDIBOX_ORPHAN"]})
        assert resolver.resolve_phone("MEDIBOX_ORPHAN") is None
