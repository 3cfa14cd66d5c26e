"""
Firebase Realtime Database backing store.

Wraps firebase_admin.db behind the DeviceStore interface. All SDK failures
are reported as BackingStoreFault so the dispatch core never sees SDK types.

Change watching uses a single streaming listener on devices/. The listener
delivers raw put/patch events; we keep a local mirror of the devices tree,
apply each event to it, and publish a DeviceChanged event carrying the
device's before and after documents.
"""

import copy
import logging
import threading
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError

from shared.config import Settings
from shared.data_store import DeviceStore, apply_path
from shared.errors import BackingStoreFault
from shared.event_bus import EventBus
from shared.events import device_changed
from shared.models import DeviceRecord, TriggerKind, UserRecord

logger = logging.getLogger("data_store")

DEVICES_PATH = "devices"
USERS_PATH = "users"
DEFAULT_APP_NAME = "[DEFAULT]"


def init_firebase(settings: Settings, name: str = DEFAULT_APP_NAME) -> firebase_admin.App:
    """
    Initialize (or reuse) the Firebase app for this process.

    Uses the service-account file from settings.push_credential, or
    application default credentials when it is empty.
    """
    try:
        return firebase_admin.get_app(name)
    except ValueError:
        pass

    if settings.push_credential:
        credential = credentials.Certificate(settings.push_credential)
    else:
        credential = credentials.ApplicationDefault()

    app = firebase_admin.initialize_app(
        credential,
        options={"databaseURL": settings.store_endpoint},
        name=name,
    )
    logger.info(f"Firebase app initialized for {settings.store_endpoint}")
    return app


class FirebaseStore(DeviceStore):
    """
    DeviceStore backed by the Realtime Database.

    Owner lookup scans users/ on every call: the database has no reverse
    index from device to owner.
    """

    def __init__(self, app: firebase_admin.App, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.app = app
        self._listener = None
        self._mirror: dict[str, Any] = {}
        self._mirror_lock = threading.Lock()

    def _ref(self, path: str) -> db.Reference:
        return db.reference(path, app=self.app)

    def _read(self, path: str) -> Any:
        try:
            return self._ref(path).get()
        except (FirebaseError, ValueError) as e:
            raise BackingStoreFault(f"Failed to read {path}: {e}") from e

    # =========================================================================
    # Reads
    # =========================================================================

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        data = self._read(f"{DEVICES_PATH}/{device_id}")
        if data is None:
            return None
        return DeviceRecord.from_snapshot(device_id, data)

    def get_users(self) -> list[UserRecord]:
        data = self._read(USERS_PATH)
        if not data:
            logger.info("No users found in database")
            return []
        return [
            UserRecord.from_snapshot(user_id, user_data)
            for user_id, user_data in data.items()
            if isinstance(user_data, dict)
        ]

    def find_device_owners(self, device_id: str) -> list[UserRecord]:
        return [user for user in self.get_users() if user.owns(device_id)]

    # =========================================================================
    # Writes
    # =========================================================================

    def update_device(self, device_id: str, changes: dict[str, Any]) -> None:
        path = f"{DEVICES_PATH}/{device_id}"
        try:
            self._ref(path).update(changes)
        except (FirebaseError, ValueError) as e:
            raise BackingStoreFault(f"Failed to update {path}: {e}") from e

    def reset_trigger(self, device_id: str, trigger: TriggerKind) -> bool:
        path = f"{DEVICES_PATH}/{device_id}/{trigger.value}/{trigger.flag_field}"
        observed = {"set": False}

        def clear(current):
            # May run more than once if the flag changes under us; the last
            # run is the one that commits
            observed["set"] = current is True
            return False if current is True else current

        try:
            self._ref(path).transaction(clear)
        except db.TransactionAbortedError as e:
            raise BackingStoreFault(f"Reset of {path} aborted: {e}") from e
        except (FirebaseError, ValueError) as e:
            raise BackingStoreFault(f"Failed to reset {path}: {e}") from e
        return observed["set"]

    # =========================================================================
    # Change Watching
    # =========================================================================

    def start_watching(self) -> None:
        if self._listener is not None:
            logger.warning("FirebaseStore is already watching devices")
            return
        try:
            self._listener = self._ref(DEVICES_PATH).listen(self._on_stream_event)
        except (FirebaseError, ValueError) as e:
            raise BackingStoreFault(f"Failed to listen on {DEVICES_PATH}: {e}") from e
        logger.info(f"Listening for changes under /{DEVICES_PATH}")

    def stop_watching(self) -> None:
        if self._listener is None:
            return
        self._listener.close()
        self._listener = None
        with self._mirror_lock:
            self._mirror.clear()
        logger.info("Stopped listening for device changes")

    def _on_stream_event(self, event: db.Event) -> None:
        """Apply one put/patch to the mirror and publish per-device changes."""
        for device_id, before, after in self.apply_stream_event(event.event_type, event.path, event.data):
            self.event_bus.publish(device_changed(device_id, before, after, source="firebase"))

    def apply_stream_event(
        self,
        event_type: str,
        path: str,
        data: Any,
    ) -> list[tuple[str, Optional[dict], Optional[dict]]]:
        """
        Update the local mirror from one stream event.

        Returns (device_id, before, after) for every device the event touched.
        The first event after connecting is a put at "/" carrying every device;
        each one is reported with before=None.
        """
        keys = [k for k in path.strip("/").split("/") if k]
        with self._mirror_lock:
            if not keys:
                if event_type == "put":
                    touched = set(self._mirror) | set(data or {})
                    befores = {d: copy.deepcopy(self._mirror.get(d)) for d in touched}
                    self._mirror = copy.deepcopy(data) if isinstance(data, dict) else {}
                else:
                    # Patch keys are relative paths, e.g. "MEDIBOX001/missedDose/missed"
                    updates = {k: v for k, v in (data or {}).items() if k.strip("/")}
                    touched = {k.strip("/").split("/")[0] for k in updates}
                    befores = {d: copy.deepcopy(self._mirror.get(d)) for d in touched}
                    for key, value in updates.items():
                        self._write_mirror(key, value)
            else:
                device_id = keys[0]
                touched = {device_id}
                befores = {device_id: copy.deepcopy(self._mirror.get(device_id))}
                if event_type == "put":
                    self._write_mirror(path, data)
                else:
                    for key, value in (data or {}).items():
                        self._write_mirror(f"{path.rstrip('/')}/{key}", value)

            changes = []
            for device_id in sorted(touched):
                after = copy.deepcopy(self._mirror.get(device_id))
                changes.append((device_id, befores[device_id], after))
        return changes

    def _write_mirror(self, path: str, value: Any) -> None:
        keys = [k for k in path.strip("/").split("/") if k]
        if len(keys) == 1:
            if value is None:
                self._mirror.pop(keys[0], None)
            else:
                self._mirror[keys[0]] = copy.deepcopy(value)
            return
        apply_path(self._mirror, path, copy.deepcopy(value))
