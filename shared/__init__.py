"""
Shared infrastructure for the guardian notifier.

This package contains code used by both trigger sources (the HTTP endpoint
and the change watcher):
- Domain models (DeviceRecord, UserRecord, NotificationEvent, ...)
- Backing store access (in-memory fixtures and the Realtime Database)
- Delivery channels (FCM push, SMSAPI.LK SMS)
- Notification templates, settings and the error taxonomy
"""

from shared.models import (
    EventKind,
    TriggerKind,
    DeviceRecord,
    UserRecord,
    GuardianContact,
    NotificationEvent,
)
from shared.config import Settings, get_settings
from shared.data_store import DeviceStore, InMemoryStore
from shared.channels import PushSender, SMSSender, NotificationResult
from shared.errors import NotifierError, ValidationError, NotFoundError, BackingStoreFault, DeliveryError

__all__ = [
    "EventKind",
    "TriggerKind",
    "DeviceRecord",
    "UserRecord",
    "GuardianContact",
    "NotificationEvent",
    "Settings",
    "get_settings",
    "DeviceStore",
    "InMemoryStore",
    "PushSender",
    "SMSSender",
    "NotificationResult",
    "NotifierError",
    "ValidationError",
    "NotFoundError",
    "BackingStoreFault",
    "DeliveryError",
]
