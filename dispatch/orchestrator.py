"""
Dispatch orchestrator: one end-to-end delivery attempt per event.

Both trigger sources (the HTTP endpoint and the change watcher) hand their
classified events to Dispatcher.dispatch(). Per event:

    CLASSIFIED -> CONTACT_RESOLVED -> DISPATCHING -> TRIGGER_RESET -> DONE
                        |
                        +-> FAILED   (backing store fault)

1. Resolve the guardian's contact. A store fault aborts the dispatch and is
   re-raised; the event is dropped, never retried.
2. Push if there is a token, SMS if there is a phone. Each channel is
   attempted on its own: a failure in one is logged and recorded and never
   blocks the other.
3. After both attempts, whatever their outcome, clear the trigger flag that
   produced the event. Clearing after delivery means a crash in between can
   re-deliver on restart; it can never lose an event.

No retry queue, no backoff, nothing about the outcome is persisted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from shared.channels import ChannelType, NotificationResult, PushSender, SMSSender
from shared.data_store import DeviceStore
from shared.errors import BackingStoreFault, DeliveryError
from shared.models import GuardianContact, NotificationEvent

from dispatch.contacts import ContactResolver

logger = logging.getLogger("dispatcher")


class DispatchState(str, Enum):
    """Where a dispatch got to."""
    CLASSIFIED = "classified"
    CONTACT_RESOLVED = "contact_resolved"
    DISPATCHING = "dispatching"
    TRIGGER_RESET = "trigger_reset"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DispatchReport:
    """Outcome of one dispatch, for callers and tests. Never persisted."""
    event: NotificationEvent
    state: DispatchState = DispatchState.CLASSIFIED
    contact: Optional[GuardianContact] = None
    push: Optional[NotificationResult] = None
    sms: Optional[NotificationResult] = None
    trigger_reset: bool = False
    error: Optional[str] = None
    results: list[NotificationResult] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        """True if at least one channel succeeded."""
        return any(r.success for r in self.results)

    @property
    def message_id(self) -> Optional[str]:
        """Push delivery id, if the push went out."""
        if self.push is not None and self.push.success:
            return self.push.delivery_id
        return None


class Dispatcher:
    """
    Drives a NotificationEvent through contact resolution, both channels,
    and the trigger reset.

    Example:
        dispatcher = Dispatcher(store, PushSender(settings), SMSSender(settings))
        for event in classify_change(device_id, before, after):
            dispatcher.dispatch(event)
    """

    def __init__(
        self,
        store: DeviceStore,
        push_sender: PushSender,
        sms_sender: SMSSender,
        resolver: Optional[ContactResolver] = None,
    ):
        self.store = store
        self.push_sender = push_sender
        self.sms_sender = sms_sender
        self.resolver = resolver or ContactResolver(store)

    def dispatch(self, event: NotificationEvent) -> DispatchReport:
        """
        Run one dispatch.

        Raises:
            BackingStoreFault: If the contact lookup or the trigger reset
                could not reach the store. The report is marked FAILED first.
        """
        report = DispatchReport(event=event)
        logger.info(f"Dispatching {event.type} for device {event.device_id}")

        try:
            report.contact = self.resolver.resolve_guardian(event.device_id)
        except BackingStoreFault as e:
            report.state = DispatchState.FAILED
            report.error = e.message
            logger.error(f"Dropping {event.type} for {event.device_id}: {e.message}")
            raise
        report.state = DispatchState.CONTACT_RESOLVED

        report.state = DispatchState.DISPATCHING
        if report.contact.push_token:
            report.push = self._send_push(event, report.contact.push_token)
            report.results.append(report.push)
        else:
            logger.error(f"No push token for device {event.device_id}")

        if report.contact.phone:
            report.sms = self._send_sms(event, report.contact.phone)
            report.results.append(report.sms)
        else:
            logger.info("No phone number configured for SMS")

        if event.trigger is not None:
            try:
                report.trigger_reset = self.store.reset_trigger(event.device_id, event.trigger)
            except BackingStoreFault as e:
                report.state = DispatchState.FAILED
                report.error = e.message
                logger.error(f"Failed to reset {event.trigger.value} on {event.device_id}: {e.message}")
                raise
            if not report.trigger_reset:
                logger.warning(f"{event.trigger.value} on {event.device_id} was already cleared")
            report.state = DispatchState.TRIGGER_RESET

        report.state = DispatchState.DONE
        logger.info(
            f"Dispatch complete for {event.device_id}: "
            f"{sum(1 for r in report.results if r.success)}/{len(report.results)} channels delivered"
        )
        return report

    def _send_push(self, event: NotificationEvent, token: str) -> NotificationResult:
        try:
            return self.push_sender.send(token, event.title, event.body, event.data_payload())
        except DeliveryError as e:
            return self._failed(ChannelType.PUSH, token, event, e.message)
        except Exception as e:
            logger.exception(f"Unexpected push failure for {event.device_id}")
            return self._failed(ChannelType.PUSH, token, event, str(e))

    def _send_sms(self, event: NotificationEvent, phone: str) -> NotificationResult:
        try:
            return self.sms_sender.send(phone, event.title, event.body)
        except DeliveryError as e:
            return self._failed(ChannelType.SMS, phone, event, e.message)
        except Exception as e:
            logger.exception(f"Unexpected SMS failure for {event.device_id}")
            return self._failed(ChannelType.SMS, phone, event, str(e))

    @staticmethod
    def _failed(channel: ChannelType, recipient: str, event: NotificationEvent, error: str) -> NotificationResult:
        return NotificationResult(
            success=False,
            channel=channel,
            recipient=recipient,
            title=event.title,
            body=event.body,
            error=error,
        )
