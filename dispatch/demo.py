"""
Demonstration scripts for the guardian notifier.

These functions run the change-watch path end to end against the in-memory
store. Nothing leaves the process: push messages go to a logging transport
and the SMS gateway is answered by an httpx.MockTransport.
"""

import logging
from typing import Optional
from uuid import uuid4

import httpx
from firebase_admin import messaging

from shared.channels import PushSender, SMSSender, mask_token
from shared.config import Settings
from shared.data_store import InMemoryStore

from dispatch.orchestrator import Dispatcher
from dispatch.watcher import DeviceWatcher

logger = logging.getLogger("demo")

DEMO_DEVICE = "MEDIBOX001"


def logging_push_transport(message: messaging.Message) -> str:
    """Push transport that logs the message instead of sending it."""
    delivery_id = f"projects/medibox-demo/messages/{uuid4().hex[:12]}"
    logger.info(f"(dry run) FCM message to {mask_token(message.token)} data={message.data}")
    return delivery_id


def _gateway_reply(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "success", "data": {"uid": uuid4().hex[:8]}})


def build_demo(settings: Optional[Settings] = None):
    """Wire a watcher over the fixture data with offline channels."""
    settings = settings or Settings(sms_credential="demo-token")
    store = InMemoryStore(data_dir=settings.data_dir)
    dispatcher = Dispatcher(
        store=store,
        push_sender=PushSender(settings, transport=logging_push_transport),
        sms_sender=SMSSender(settings, client=httpx.Client(transport=httpx.MockTransport(_gateway_reply))),
    )
    return store, dispatcher, DeviceWatcher(store, dispatcher)


def _print_outcome(store: InMemoryStore, dispatcher: Dispatcher) -> None:
    print("\nMessages sent:")
    for msg in dispatcher.push_sender.sent_messages + dispatcher.sms_sender.sent_messages:
        print(f"  {msg}")
    print("\nDevice state after dispatch:")
    snapshot = store.get_device_snapshot(DEMO_DEVICE)
    print(f"  notificationTrigger = {snapshot.get('notificationTrigger')}")
    print(f"  missedDose          = {snapshot.get('missedDose')}")


def run_dose_taken_demo():
    """
    The firmware sets notificationTrigger.triggered when a compartment is
    opened. The watcher sees the change, notifies the guardian on both
    channels and clears the flag.
    """
    print("\n" + "=" * 70)
    print("DEMO: Dose Taken")
    print("=" * 70 + "\n")

    store, dispatcher, watcher = build_demo()
    watcher.start()

    print("-" * 70)
    print(f"ACTION: Firmware sets {DEMO_DEVICE}/notificationTrigger/triggered = true")
    print("-" * 70 + "\n")
    store.update_device(DEMO_DEVICE, {
        "notificationTrigger/triggered": True,
        "notificationTrigger/timestamp": 1718000000000,
    })

    _print_outcome(store, dispatcher)
    watcher.stop()
    return list(watcher.reports)


def run_missed_dose_demo():
    """
    The firmware sets missedDose.missed when a scheduled compartment was not
    opened. The alert names the compartment.
    """
    print("\n" + "=" * 70)
    print("DEMO: Missed Dose")
    print("=" * 70 + "\n")

    store, dispatcher, watcher = build_demo()
    watcher.start()

    print("-" * 70)
    print(f"ACTION: Firmware sets {DEMO_DEVICE}/missedDose = {{missed: true, compartment: evening}}")
    print("-" * 70 + "\n")
    store.update_device(DEMO_DEVICE, {
        "missedDose": {"missed": True, "compartment": "evening", "timestamp": 1718040000000},
    })

    _print_outcome(store, dispatcher)
    watcher.stop()
    return list(watcher.reports)
