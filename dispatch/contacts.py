"""
Contact resolver: finds how to reach the guardian of a device.

The push token lives on the device record. The phone number lives on the
user who owns the device, found through the store's owner lookup.
"""

import logging

from shared.data_store import DeviceStore
from shared.models import GuardianContact

logger = logging.getLogger("contacts")


class ContactResolver:
    """
    Resolves a device id to a GuardianContact.

    Absence of either channel is not an error: the field is simply left
    empty. Store failures propagate as BackingStoreFault.
    """

    def __init__(self, store: DeviceStore):
        self.store = store

    def resolve_guardian(self, device_id: str) -> GuardianContact:
        device = self.store.get_device(device_id)
        push_token = device.guardian_push_token if device else None
        if device is None:
            logger.warning(f"Device {device_id} not found")
        elif not push_token:
            logger.info(f"No push token for device {device_id}")

        return GuardianContact(push_token=push_token or None, phone=self.resolve_phone(device_id))

    def resolve_phone(self, device_id: str):
        """
        Phone number of the user who owns the device.

        Exactly one owner is expected. If the data holds several, the first
        owner with a phone number wins and the inconsistency is logged.
        """
        owners = self.store.find_device_owners(device_id)
        if len(owners) > 1:
            logger.warning(
                f"Device {device_id} is listed by {len(owners)} users "
                f"({', '.join(u.id for u in owners)}); using the first with a phone number"
            )

        for user in owners:
            if user.phone_number:
                logger.info(f"Found guardian phone for device {device_id}")
                return user.phone_number
            if user.legacy_phone_number:
                logger.warning(
                    f"User {user.id} has a phone number only under notifications.phoneNumber; "
                    "move it to phoneNumber to enable SMS"
                )

        logger.info(f"No guardian phone found for device {device_id}")
        return None
