"""
Trigger-driven dispatch core.

- Classifier: device changes -> notification events
- ContactResolver: device -> guardian push token and phone number
- Dispatcher: one delivery attempt per event on both channels, then the
  trigger reset
- DeviceWatcher: continuous change-watch feeding the Dispatcher
"""

from dispatch.classifier import classify_change, request_event
from dispatch.contacts import ContactResolver
from dispatch.orchestrator import DispatchReport, DispatchState, Dispatcher
from dispatch.watcher import DeviceWatcher

__all__ = [
    "classify_change",
    "request_event",
    "ContactResolver",
    "DispatchReport",
    "DispatchState",
    "Dispatcher",
    "DeviceWatcher",
]
