"""
Event definitions published by the backing stores.

Events are named in past tense and carry the full before/after device
documents, so subscribers never have to query back to find out what changed.
"""

from typing import Any, Optional

from shared.event_bus import Event


class EventTypes:
    """Constants for event type names."""
    DEVICE_CHANGED = "DeviceChanged"


def device_changed(
    device_id: str,
    before: Optional[dict[str, Any]],
    after: Optional[dict[str, Any]],
    source: str,
) -> Event:
    """
    Create a DeviceChanged event.

    Published when a devices/{id} document is written. `before` is None when
    the publisher only has the current snapshot (e.g. the Realtime Database
    listener, or a device seen for the first time).
    """
    return Event(
        event_type=EventTypes.DEVICE_CHANGED,
        source=source,
        payload={
            "device_id": device_id,
            "before": before,
            "after": after,
        },
    )
