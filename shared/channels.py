"""
Delivery channels: push notifications and SMS.

Each sender formats and submits a single message to one external network and
reports the outcome on its own; neither knows about the other.
- Push: Firebase Cloud Messaging via firebase_admin.messaging
- SMS: SMSAPI.LK HTTP gateway via httpx

Design decisions:
- Senders are stateless apart from the history of results they produced,
  which tests and the demo inspect
- No retries: one attempt per call
- The push network and SMS client are injectable so tests never leave the
  process
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import firebase_admin
import httpx
from firebase_admin import messaging
from firebase_admin.exceptions import FirebaseError

from shared.config import Settings
from shared.errors import DeliveryError
from shared.models import EventKind
from shared.templates import format_sms

push_logger = logging.getLogger("push")
sms_logger = logging.getLogger("sms")

# Lets the Flutter app route a tap on the notification
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"

# Send attempts kept per sender for inspection; older ones are discarded
HISTORY_SIZE = 100


class ChannelType(str, Enum):
    """Supported notification channels."""
    PUSH = "push"
    SMS = "sms"


def mask_token(token: str) -> str:
    """Shorten a push token for logs and API responses."""
    return token[:20] + "..."


@dataclass
class NotificationResult:
    """
    Result of a notification send attempt.

    Captures success/failure and metadata for debugging and testing.
    A skipped send (channel not configured) is neither a success nor an error.
    """
    success: bool
    channel: ChannelType
    recipient: str
    title: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    delivery_id: Optional[str] = None
    skipped: bool = False

    def __str__(self) -> str:
        status = "-" if self.skipped else ("✓" if self.success else "✗")
        if self.channel == ChannelType.PUSH:
            return f"{status} PUSH to {mask_token(self.recipient)}: {self.title}"
        return f"{status} SMS to {self.recipient}: {format_sms(self.title, self.body)[:50]}"

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "skipped": self.skipped,
            "deliveryId": self.delivery_id,
            "error": self.error,
        }


# Sends one built message and returns the delivery id
PushTransport = Callable[[messaging.Message], str]


class PushSender:
    """
    Push channel over Firebase Cloud Messaging.

    Example:
        sender = PushSender(settings, app=init_firebase(settings))
        result = sender.send(token, "Medicine Taken ✓", "...", event.data_payload())
    """

    def __init__(
        self,
        settings: Settings,
        app: Optional[firebase_admin.App] = None,
        transport: Optional[PushTransport] = None,
    ):
        """
        Args:
            settings: Notifier settings (Android channel id)
            app: Firebase app to send through (defaults to the default app)
            transport: Replaces messaging.send, for tests and dry runs
        """
        self.channel_id = settings.push_channel_id
        self.app = app
        self.transport = transport or self._send_via_fcm
        self.sent_messages: deque[NotificationResult] = deque(maxlen=HISTORY_SIZE)

    def _send_via_fcm(self, message: messaging.Message) -> str:
        return messaging.send(message, app=self.app)

    def build_message(self, token: str, title: str, body: str, data: dict[str, str]) -> messaging.Message:
        """
        Build the FCM message.

        Missed-dose alerts get the highest Android notification priority so
        they surface even when the guardian's phone is in a low-power state.
        """
        missed = data.get("type") == EventKind.DOSE_MISSED.value
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data={**{k: str(v) for k, v in data.items()}, "click_action": CLICK_ACTION},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    channel_id=self.channel_id,
                    sound="default",
                    priority="max" if missed else "high",
                ),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )

    def send(self, token: str, title: str, body: str, data: dict[str, str]) -> NotificationResult:
        """
        Send a push notification.

        Returns:
            NotificationResult with the delivery id

        Raises:
            DeliveryError: If the network rejects the token or the call fails
        """
        try:
            message = self.build_message(token, title, body, data)
            delivery_id = self.transport(message)
        except (FirebaseError, ValueError) as e:
            self.sent_messages.append(NotificationResult(
                success=False,
                channel=ChannelType.PUSH,
                recipient=token,
                title=title,
                body=body,
                error=str(e),
            ))
            push_logger.error(f"[PUSH FAILED] To: {mask_token(token)} | Error: {e}")
            raise DeliveryError(ChannelType.PUSH.value, str(e)) from e

        result = NotificationResult(
            success=True,
            channel=ChannelType.PUSH,
            recipient=token,
            title=title,
            body=body,
            delivery_id=delivery_id,
        )
        self.sent_messages.append(result)
        push_logger.info(f"[PUSH] To: {mask_token(token)} | Title: {title} | Id: {delivery_id}")
        return result

    def get_sent_count(self) -> int:
        """Get the number of send attempts still in history (for testing)."""
        return len(self.sent_messages)

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()


class SMSSender:
    """
    SMS channel over the SMSAPI.LK gateway.

    A gateway answer other than status "success" is logged and reported as a
    failed result, not raised. While the credential is unset the sender is a
    no-op.
    """

    MAX_LENGTH = 160

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        """
        Args:
            settings: Notifier settings (gateway URL, credential, sender id, timeout)
            client: HTTP client to post through; a short-lived one is created per send otherwise
        """
        self.settings = settings
        self.client = client
        self.sent_messages: deque[NotificationResult] = deque(maxlen=HISTORY_SIZE)

    def send(self, phone: str, title: str, body: str) -> NotificationResult:
        """
        Send one SMS with the text "{title}: {body}".

        Raises:
            DeliveryError: If the gateway cannot be reached
        """
        message = format_sms(title, body)

        if not self.settings.sms_configured:
            sms_logger.info("SMS API token not configured - skipping SMS")
            result = NotificationResult(
                success=False,
                channel=ChannelType.SMS,
                recipient=phone,
                title=title,
                body=body,
                skipped=True,
            )
            self.sent_messages.append(result)
            return result

        if len(message) > self.MAX_LENGTH:
            sms_logger.warning(
                f"[SMS] Message length ({len(message)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )

        try:
            response = self._post({
                "recipient": phone,
                "sender_id": self.settings.sms_sender_id,
                "type": "plain",
                "message": message,
            })
        except httpx.HTTPError as e:
            self.sent_messages.append(NotificationResult(
                success=False,
                channel=ChannelType.SMS,
                recipient=phone,
                title=title,
                body=body,
                error=str(e),
            ))
            sms_logger.error(f"[SMS FAILED] To: {phone} | Error: {e}")
            raise DeliveryError(ChannelType.SMS.value, str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if payload.get("status") == "success":
            result = NotificationResult(
                success=True,
                channel=ChannelType.SMS,
                recipient=phone,
                title=title,
                body=body,
                delivery_id=_sms_uid(payload),
            )
            sms_logger.info(f"[SMS] To: {phone} | Message: {message}")
        else:
            error = payload.get("message") or f"HTTP {response.status_code}"
            result = NotificationResult(
                success=False,
                channel=ChannelType.SMS,
                recipient=phone,
                title=title,
                body=body,
                error=error,
            )
            sms_logger.error(f"[SMS FAILED] To: {phone} | Error: {error}")

        self.sent_messages.append(result)
        return result

    def _post(self, body: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.settings.sms_credential}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.client is not None:
            return self.client.post(self.settings.sms_api_url, json=body, headers=headers)
        with httpx.Client(timeout=self.settings.sms_timeout_seconds) as client:
            return client.post(self.settings.sms_api_url, json=body, headers=headers)

    def get_sent_count(self) -> int:
        """Get the number of send attempts still in history (for testing)."""
        return len(self.sent_messages)

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find a message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None


def _sms_uid(payload: dict) -> Optional[str]:
    data = payload.get("data")
    if isinstance(data, dict) and data.get("uid") is not None:
        return str(data["uid"])
    return None
