"""
Shared pytest fixtures for the guardian notifier tests.

These fixtures provide consistent test data and keep every test offline:
push messages go to a recording transport and the SMS gateway is an
httpx.MockTransport.
"""

import json
from pathlib import Path

import httpx
import pytest

from shared.config import Settings
from shared.data_store import InMemoryStore
from shared.channels import PushSender, SMSSender

from dispatch.orchestrator import Dispatcher


class FakePushTransport:
    """Records FCM messages instead of sending them; can be told to fail."""

    def __init__(self):
        self.messages = []
        self.error = None

    def __call__(self, message) -> str:
        if self.error is not None:
            raise self.error
        self.messages.append(message)
        return f"projects/medibox-test/messages/{len(self.messages)}"


class FakeSMSGateway:
    """SMSAPI.LK stand-in behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.reply = {"status": "success", "data": {"uid": "sms-0001"}}
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.reply)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def messages(self) -> list[dict]:
        """Decoded JSON bodies of every request the gateway received."""
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def data_dir() -> Path:
    """Path to the fixture data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    """Settings with SMS configured, isolated from the environment's .env file."""
    return Settings(_env_file=None, sms_credential="test-token", data_dir=data_dir)


@pytest.fixture
def data_store(data_dir: Path) -> InMemoryStore:
    """
    Fresh InMemoryStore instance for each test.

    Uses the real JSON fixtures but creates a new instance
    so tests don't interfere with each other.
    """
    return InMemoryStore(data_dir=data_dir)


@pytest.fixture
def push_transport() -> FakePushTransport:
    return FakePushTransport()


@pytest.fixture
def sms_gateway() -> FakeSMSGateway:
    return FakeSMSGateway()


@pytest.fixture
def push_sender(settings: Settings, push_transport: FakePushTransport) -> PushSender:
    """Fresh PushSender for each test."""
    return PushSender(settings, transport=push_transport)


@pytest.fixture
def sms_sender(settings: Settings, sms_gateway: FakeSMSGateway) -> SMSSender:
    """Fresh SMSSender for each test."""
    client = sms_gateway.client()
    yield SMSSender(settings, client=client)
    client.close()


@pytest.fixture
def dispatcher(data_store: InMemoryStore, push_sender: PushSender, sms_sender: SMSSender) -> Dispatcher:
    return Dispatcher(store=data_store, push_sender=push_sender, sms_sender=sms_sender)


# =============================================================================
# Device Fixtures
# =============================================================================

@pytest.fixture
def medibox_device_id() -> str:
    """MEDIBOX001: push token tok123, owned by user-001 (+94770000000)."""
    return "MEDIBOX001"


@pytest.fixture
def orphan_device_id() -> str:
    """Device with a push token that no user lists."""
    return "MEDIBOX_ORPHAN"


@pytest.fixture
def no_token_device_id() -> str:
    """Device without a push token; owner user-003 has a phone number."""
    return "MEDIBOX_NOTOKEN"
