"""
Backing store access for device and user records.

The notifier talks to a hierarchical key-value store addressed by path
(devices/{id}, users/{id}). DeviceStore is the interface the dispatch core
depends on; two implementations exist:

- InMemoryStore (this module): JSON fixture backed, used by tests, the demo
  and `cli.py listen --in-memory`
- FirebaseStore (shared/firebase.py): the Realtime Database

Design decisions:
- Records are stored as raw documents and parsed into models on read, the
  same way the database hands them back
- update_device() takes Firebase-style multi-path updates ("a/b": value)
- reset_trigger() is an atomic read-and-clear of one trigger flag
- Every device write publishes a DeviceChanged event on the store's bus
- The in-memory store keeps a device -> owners reverse index, rebuilt on every
  user write, so owner lookup is a point lookup instead of a scan
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Optional

from shared.errors import BackingStoreFault
from shared.event_bus import EventBus
from shared.events import device_changed
from shared.models import DeviceRecord, TriggerKind, UserRecord

logger = logging.getLogger("data_store")


class DeviceStore(ABC):
    """
    Interface to the backing store.

    Every method raises BackingStoreFault when the store cannot be reached;
    "not found" is reported as None / empty results, never as an error.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus or EventBus()

    @abstractmethod
    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        """Point read of devices/{id}."""

    @abstractmethod
    def get_users(self) -> list[UserRecord]:
        """Read the full users collection."""

    @abstractmethod
    def find_device_owners(self, device_id: str) -> list[UserRecord]:
        """Users whose device list contains device_id, in store order."""

    @abstractmethod
    def update_device(self, device_id: str, changes: dict[str, Any]) -> None:
        """Path-scoped update under devices/{id}."""

    @abstractmethod
    def reset_trigger(self, device_id: str, trigger: TriggerKind) -> bool:
        """
        Atomically clear one trigger flag.

        Returns True if the flag was set and is now cleared, False if it was
        already clear (someone else consumed it).
        """

    def start_watching(self) -> None:
        """Begin publishing DeviceChanged events for external writes."""

    def stop_watching(self) -> None:
        """Stop publishing events for external writes."""


def apply_path(document: dict[str, Any], path: str, value: Any) -> None:
    """
    Set `value` at a slash-separated path inside a nested document.

    Mirrors the database's write semantics: None deletes the key, and
    intermediate objects are created as needed.
    """
    keys = [k for k in path.strip("/").split("/") if k]
    if not keys:
        raise ValueError("Cannot write to the document root")
    node = document
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            if value is None:
                return
            child = {}
            node[key] = child
        node = child
    if value is None:
        node.pop(keys[-1], None)
    else:
        node[keys[-1]] = value


class InMemoryStore(DeviceStore):
    """
    Store backed by JSON fixtures, held in memory.

    Fixtures mirror a Realtime Database export: devices.json and users.json
    are objects keyed by record id. Writes update in-memory state only.

    Can simulate read and write faults for testing error handling.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        event_bus: Optional[EventBus] = None,
        fail_reads: bool = False,
        fail_writes: bool = False,
    ):
        """
        Args:
            data_dir: Directory holding devices.json / users.json. None starts empty.
            event_bus: Bus to publish DeviceChanged events on (defaults to a new one)
            fail_reads: Raise BackingStoreFault on every read, for testing
            fail_writes: Raise BackingStoreFault on every write, for testing
        """
        super().__init__(event_bus)
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

        self._lock = threading.RLock()
        # Raw documents - loaded lazily
        self._devices: Optional[dict[str, dict[str, Any]]] = None
        self._users: Optional[dict[str, dict[str, Any]]] = None
        self._owners: dict[str, list[str]] = defaultdict(list)

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> dict[str, Any]:
        """Load a JSON fixture file."""
        if self.data_dir is None:
            return {}
        filepath = self.data_dir / filename
        if not filepath.exists():
            return {}
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f) or {}

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._devices is None:
                self._devices = self._load_json("devices.json")
            if self._users is None:
                self._users = self._load_json("users.json")
                self._rebuild_owner_index()

    def _rebuild_owner_index(self) -> None:
        self._owners.clear()
        for user_id, data in self._users.items():
            for device_id in UserRecord.from_snapshot(user_id, data).devices:
                self._owners[device_id].append(user_id)

    def _check_read(self) -> None:
        if self.fail_reads:
            raise BackingStoreFault("Simulated store read failure")

    def _check_write(self) -> None:
        if self.fail_writes:
            raise BackingStoreFault("Simulated store write failure")

    # =========================================================================
    # Device Operations
    # =========================================================================

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            data = self._devices.get(device_id)
            if data is None:
                return None
            return DeviceRecord.from_snapshot(device_id, copy.deepcopy(data))

    def get_device_snapshot(self, device_id: str) -> Optional[dict[str, Any]]:
        """Raw devices/{id} document (a copy)."""
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            data = self._devices.get(device_id)
            return copy.deepcopy(data) if data is not None else None

    def get_device_ids(self) -> list[str]:
        """All known device ids."""
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            return list(self._devices)

    def put_device(self, device_id: str, data: dict[str, Any]) -> None:
        """Replace a whole device document."""
        self._write_device(device_id, lambda document: copy.deepcopy(data))

    def update_device(self, device_id: str, changes: dict[str, Any]) -> None:
        def apply(document: dict[str, Any]) -> dict[str, Any]:
            for path, value in changes.items():
                apply_path(document, path, copy.deepcopy(value))
            return document

        self._write_device(device_id, apply)

    def reset_trigger(self, device_id: str, trigger: TriggerKind) -> bool:
        def clear(document: dict[str, Any]) -> Optional[dict[str, Any]]:
            sub_record = document.get(trigger.value)
            if not isinstance(sub_record, dict) or sub_record.get(trigger.flag_field) is not True:
                return None
            sub_record[trigger.flag_field] = False
            return document

        return self._write_device(device_id, clear)

    def _write_device(self, device_id: str, mutate) -> bool:
        """
        Read-modify-write one device document under the store lock.

        `mutate` returns the new document, or None to leave it untouched.
        Returns True if a write happened.
        """
        self._check_write()
        self._ensure_loaded()
        with self._lock:
            before = copy.deepcopy(self._devices.get(device_id))
            after = mutate(copy.deepcopy(before) if before is not None else {})
            if after is None:
                return False
            self._devices[device_id] = after
            event = device_changed(device_id, before, copy.deepcopy(after), source="memory")
        # Publish outside the lock so handlers can write back (trigger reset)
        self.event_bus.publish(event)
        return True

    # =========================================================================
    # User Operations
    # =========================================================================

    def get_users(self) -> list[UserRecord]:
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            return [
                UserRecord.from_snapshot(user_id, copy.deepcopy(data))
                for user_id, data in self._users.items()
            ]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Get a user by ID."""
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            data = self._users.get(user_id)
            return UserRecord.from_snapshot(user_id, copy.deepcopy(data)) if data is not None else None

    def find_device_owners(self, device_id: str) -> list[UserRecord]:
        self._check_read()
        self._ensure_loaded()
        with self._lock:
            return [
                UserRecord.from_snapshot(user_id, copy.deepcopy(self._users[user_id]))
                for user_id in self._owners.get(device_id, [])
            ]

    def put_user(self, user_id: str, data: dict[str, Any]) -> None:
        """Write a user document and refresh the owner index in the same step."""
        self._check_write()
        self._ensure_loaded()
        with self._lock:
            self._users[user_id] = copy.deepcopy(data)
            self._rebuild_owner_index()

    # =========================================================================
    # Change Watching
    # =========================================================================

    def start_watching(self) -> None:
        """
        Replay every current device as a change with no `before`.

        Writes made through this store are always published; replaying on
        start lets a watcher pick up triggers that were left set.
        """
        for device_id in self.get_device_ids():
            snapshot = self.get_device_snapshot(device_id)
            self.event_bus.publish(device_changed(device_id, None, snapshot, source="memory"))

    def reload(self) -> None:
        """Force reload all data from JSON files."""
        with self._lock:
            self._devices = None
            self._users = None
