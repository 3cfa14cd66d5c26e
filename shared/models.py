"""
Domain models for the guardian notifier.

Device and user records mirror the documents the MediBox app and firmware
write to the Realtime Database (camelCase field names on the wire). The
notification event is transient: built per dispatch, never persisted.

Design decisions:
- Using Pydantic for validation and serialization
- Unknown keys in stored documents are ignored so firmware can add fields
- Raw store documents are parsed with from_snapshot(), which tolerates the
  partial shapes the database actually holds (missing sub-records, nulls)
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class EventKind(str, Enum):
    """
    Notification event kinds.
    Values are the `type` strings the mobile app receives in the data payload.
    """
    DOSE_TAKEN = "pill_taken"
    DOSE_MISSED = "missed_dose"


class TriggerKind(str, Enum):
    """
    Trigger flags on a device record.
    Value is the sub-record name; FLAG_FIELDS gives the boolean inside it.
    """
    NOTIFICATION = "notificationTrigger"
    MISSED_DOSE = "missedDose"

    @property
    def flag_field(self) -> str:
        return FLAG_FIELDS[self]


FLAG_FIELDS = {
    TriggerKind.NOTIFICATION: "triggered",
    TriggerKind.MISSED_DOSE: "missed",
}


# =============================================================================
# Stored records
# =============================================================================

class NotificationTrigger(BaseModel):
    """Set by firmware when a dose is taken from the box."""
    triggered: bool = False
    timestamp: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class MissedDose(BaseModel):
    """Set by firmware when a scheduled compartment was not opened in time."""
    missed: bool = False
    compartment: Optional[str] = None
    timestamp: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class DeviceRecord(BaseModel):
    """
    A MediBox device as stored under devices/{id}.

    The guardian's push token is written by the mobile app when the guardian
    pairs with the device. Older app builds wrote it as guardianFcmToken.
    """
    id: str = Field(..., description="Unique device identifier")
    guardian_push_token: Optional[str] = Field(default=None, alias="guardianPushToken")
    notification_trigger: NotificationTrigger = Field(
        default_factory=NotificationTrigger, alias="notificationTrigger"
    )
    missed_dose: MissedDose = Field(default_factory=MissedDose, alias="missedDose")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_snapshot(cls, device_id: str, data: Optional[dict[str, Any]]) -> "DeviceRecord":
        """Parse a raw devices/{id} document."""
        data = dict(data or {})
        if not data.get("guardianPushToken") and data.get("guardianFcmToken"):
            data["guardianPushToken"] = data["guardianFcmToken"]
        for key in (TriggerKind.NOTIFICATION.value, TriggerKind.MISSED_DOSE.value):
            if not isinstance(data.get(key), dict):
                data.pop(key, None)
        return cls(id=device_id, **{k: v for k, v in data.items() if k != "id"})

    def is_set(self, trigger: TriggerKind) -> bool:
        """Whether the given trigger flag is currently raised."""
        if trigger == TriggerKind.NOTIFICATION:
            return self.notification_trigger.triggered
        return self.missed_dose.missed


class UserRecord(BaseModel):
    """
    A guardian account as stored under users/{id}.

    phoneNumber is the canonical SMS contact. Some deployments wrote it as
    notifications.phoneNumber instead; that copy is kept in
    legacy_phone_number so the resolver can flag it, but it is never used.
    """
    id: str = Field(..., description="Unique user identifier")
    devices: list[str] = Field(default_factory=list, description="Owned device ids")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    legacy_phone_number: Optional[str] = Field(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_snapshot(cls, user_id: str, data: Optional[dict[str, Any]]) -> "UserRecord":
        """Parse a raw users/{id} document."""
        data = dict(data or {})
        devices = data.pop("devices", None)
        # The app writes devices as a JSON array; the database may hand it
        # back as an index-keyed object
        if isinstance(devices, dict):
            devices = list(devices.values())
        notifications = data.pop("notifications", None)
        legacy_phone = None
        if isinstance(notifications, dict):
            legacy_phone = notifications.get("phoneNumber")
        return cls(
            id=user_id,
            devices=[d for d in (devices or []) if isinstance(d, str)],
            legacy_phone_number=legacy_phone,
            **{k: v for k, v in data.items() if k in ("phoneNumber", "phone_number")},
        )

    def owns(self, device_id: str) -> bool:
        """Check if this user has the device in their device list."""
        return device_id in self.devices


# =============================================================================
# Transient values
# =============================================================================

class GuardianContact(BaseModel):
    """
    Where to reach a device's guardian.

    Either field may be empty: a missing channel is not a fault, it just
    disables that channel for this dispatch.
    """
    push_token: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.push_token and not self.phone


class NotificationEvent(BaseModel):
    """
    One classified event, ready for dispatch.

    trigger names the device flag that produced the event and must be reset
    afterwards. HTTP-originated events have no trigger, and may carry a
    caller-defined type string with no matching kind.
    """
    type: str = Field(..., description="Event type string sent to the app")
    device_id: str
    title: str
    body: str
    timestamp: int = Field(..., description="Milliseconds since the epoch")
    compartment: Optional[str] = None
    trigger: Optional[TriggerKind] = None

    @property
    def kind(self) -> Optional[EventKind]:
        try:
            return EventKind(self.type)
        except ValueError:
            return None

    def data_payload(self) -> dict[str, str]:
        """Structured data section for the push message (string values only)."""
        data = {
            "deviceId": self.device_id,
            "type": self.type,
            "timestamp": str(self.timestamp),
        }
        if self.kind == EventKind.DOSE_MISSED:
            data["compartment"] = self.compartment or ""
        return data
