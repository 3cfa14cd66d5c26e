"""
Change-watch trigger source.

Subscribes to DeviceChanged events from the store, classifies each change,
and hands the resulting events to the shared Dispatcher. This is the
continuous counterpart of the one-shot HTTP endpoint in api/main.py.

Design decisions:
- Subscribes to events, doesn't poll
- Errors are logged and the event dropped: there is no caller to report to.
  A flag whose dispatch failed stays set and fires again on the next change
- Every (device, trigger) pair a change yields is claimed before any of them
  is dispatched. Observations of a claimed pair are skipped, which covers our
  own reset of a sibling flag while the other is still being handled
- Before dispatching, the flag is read back from the store; a change observed
  late (e.g. a stream event queued behind our own reset) finds it cleared
"""

import logging
import threading
from collections import deque

from shared.data_store import DeviceStore
from shared.errors import NotifierError
from shared.event_bus import Event
from shared.events import EventTypes
from shared.models import NotificationEvent

from dispatch.classifier import classify_change
from dispatch.orchestrator import DispatchReport, Dispatcher

logger = logging.getLogger("watcher")


class DeviceWatcher:
    """
    Watches device records and dispatches notifications automatically.

    Example:
        watcher = DeviceWatcher(store, dispatcher)
        watcher.start()
        # ... firmware sets devices/MEDIBOX001/notificationTrigger/triggered ...
        watcher.stop()
    """

    def __init__(self, store: DeviceStore, dispatcher: Dispatcher):
        self.store = store
        self.dispatcher = dispatcher
        # Most recent dispatch outcomes, for inspection
        self.reports: deque[DispatchReport] = deque(maxlen=100)

        self._in_flight: set[tuple] = set()
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        """
        Subscribe to device changes and start the store's change feed.

        Raises:
            BackingStoreFault: If the store cannot start watching. The watcher
                is left unsubscribed and can be started again.
        """
        if self._started:
            logger.warning("DeviceWatcher already started")
            return
        # Subscribe first: the store may replay current devices while starting
        self.store.event_bus.subscribe(EventTypes.DEVICE_CHANGED, self._handle_device_changed)
        try:
            self.store.start_watching()
        except Exception:
            self.store.event_bus.unsubscribe(EventTypes.DEVICE_CHANGED, self._handle_device_changed)
            raise
        self._started = True
        logger.info("DeviceWatcher started - listening for device changes")

    def stop(self) -> None:
        """Unsubscribe and stop the store's change feed."""
        if not self._started:
            return
        self.store.stop_watching()
        self.store.event_bus.unsubscribe(EventTypes.DEVICE_CHANGED, self._handle_device_changed)
        self._started = False
        logger.info("DeviceWatcher stopped")

    def _handle_device_changed(self, event: Event) -> None:
        payload = event.payload
        device_id = payload["device_id"]

        try:
            notifications = classify_change(device_id, payload["before"], payload["after"])
        except (ValueError, TypeError) as e:
            # pydantic's ValidationError is a ValueError
            logger.error(f"Malformed device document for {device_id}: {e}")
            return

        claimed = []
        with self._lock:
            for notification in notifications:
                key = (device_id, notification.trigger)
                if key in self._in_flight:
                    logger.info(f"{notification.type} for {device_id} already being dispatched, skipping")
                    continue
                self._in_flight.add(key)
                claimed.append((key, notification))

        for key, notification in claimed:
            try:
                if self._still_set(notification):
                    self.reports.append(self.dispatcher.dispatch(notification))
            except NotifierError as e:
                logger.error(f"Dropped {notification.type} for {device_id}: {e.message}")
            except Exception:
                logger.exception(f"Unexpected error dispatching {notification.type} for {device_id}")
            finally:
                with self._lock:
                    self._in_flight.discard(key)

    def _still_set(self, notification: NotificationEvent) -> bool:
        device = self.store.get_device(notification.device_id)
        if device is None:
            return False
        is_set = device.is_set(notification.trigger)
        if not is_set:
            logger.info(f"{notification.trigger.value} on {notification.device_id} already cleared, skipping")
        return is_set
