"""
Event classifier: turns a device-state change into notification events.

A change is a before/after pair of raw devices/{id} documents (before is None
when only the current snapshot is known). Each trigger flag is checked on its
own, so one change can yield a DoseTaken and a DoseMissed together.

A flag fires whenever it is true in `after`, whether or not it was already
true in `before`. A flag left set (e.g. its reset failed) is redelivered on
the next change to the device instead of being lost. Suppressing duplicates
while a flag is being handled is the watcher's job, not the classifier's.
"""

import logging
import time
from typing import Any, Optional

from shared.models import DeviceRecord, EventKind, NotificationEvent, TriggerKind
from shared.templates import DEFAULT_COMPARTMENT, render_notification

logger = logging.getLogger("classifier")


def _now_ms() -> int:
    return int(time.time() * 1000)


def classify_change(
    device_id: str,
    before: Optional[dict[str, Any]],
    after: Optional[dict[str, Any]],
) -> list[NotificationEvent]:
    """
    Classify one device change.

    Returns:
        Zero, one or two events, DoseTaken first
    """
    if after is None:
        # Device deleted
        return []

    current = DeviceRecord.from_snapshot(device_id, after)

    events = []

    trigger = current.notification_trigger
    if trigger.triggered:
        events.append(dose_taken_event(device_id, trigger.timestamp))

    missed = current.missed_dose
    if missed.missed:
        events.append(dose_missed_event(device_id, missed.compartment, missed.timestamp))

    for event in events:
        if _was_set(before, event.trigger):
            logger.warning(f"{event.trigger.value} on {device_id} is still set, redelivering {event.type}")
        else:
            logger.info(f"Classified {event.type} for {device_id}")
    return events


def _was_set(before: Optional[dict[str, Any]], trigger: TriggerKind) -> bool:
    sub_record = before.get(trigger.value) if isinstance(before, dict) else None
    return isinstance(sub_record, dict) and sub_record.get(trigger.flag_field) is True


def dose_taken_event(device_id: str, timestamp: Optional[int] = None) -> NotificationEvent:
    """Event for notificationTrigger.triggered."""
    title, body = render_notification(EventKind.DOSE_TAKEN)
    return NotificationEvent(
        type=EventKind.DOSE_TAKEN.value,
        device_id=device_id,
        title=title,
        body=body,
        timestamp=timestamp or _now_ms(),
        trigger=TriggerKind.NOTIFICATION,
    )


def dose_missed_event(
    device_id: str,
    compartment: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> NotificationEvent:
    """Event for missedDose.missed; compartment defaults to "scheduled"."""
    compartment = compartment or DEFAULT_COMPARTMENT
    title, body = render_notification(EventKind.DOSE_MISSED, compartment)
    return NotificationEvent(
        type=EventKind.DOSE_MISSED.value,
        device_id=device_id,
        title=title,
        body=body,
        timestamp=timestamp or _now_ms(),
        compartment=compartment,
        trigger=TriggerKind.MISSED_DOSE,
    )


def request_event(
    device_id: str,
    title: str,
    body: str,
    event_type: str,
    compartment: Optional[str] = None,
) -> NotificationEvent:
    """
    Event for an explicit HTTP request.

    The caller supplies the wording and the type string, which is passed to
    the app unchanged. Request events carry no trigger, so nothing is reset
    after dispatch.
    """
    missed = event_type == EventKind.DOSE_MISSED.value
    return NotificationEvent(
        type=event_type,
        device_id=device_id,
        title=title,
        body=body,
        timestamp=_now_ms(),
        compartment=(compartment or DEFAULT_COMPARTMENT) if missed else None,
    )
