"""
Runtime configuration for the guardian notifier.

Settings are read once at process start (environment variables prefixed with
MEDIBOX_, or a .env file) and then passed explicitly to the components that
need them. Nothing below the CLI/app factory reads the environment itself.

Example:
    settings = Settings(sms_credential="218|abc...")
    sender = SMSSender(settings)
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Value shipped in example configs; SMS is skipped while it is still in place
SMS_CREDENTIAL_PLACEHOLDER = "YOUR_SMSAPI_TOKEN_HERE"

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    """Notifier settings, one field per external collaborator."""

    # Backing store (Firebase Realtime Database)
    store_endpoint: str = Field(
        default="https://medibox-foe-default-rtdb.firebaseio.com",
        description="Realtime Database URL",
    )

    # Push network (Firebase Cloud Messaging)
    push_credential: str = Field(
        default="",
        description="Path to a service-account JSON file; empty uses application default credentials",
    )
    push_channel_id: str = Field(default="medibox_alerts", description="Android notification channel")

    # SMS gateway (SMSAPI.LK)
    sms_credential: str = Field(default=SMS_CREDENTIAL_PLACEHOLDER, description="Bearer token")
    sms_sender_id: str = Field(default="MediBox", description="Registered sender identity")
    sms_api_url: str = Field(default="https://dashboard.smsapi.lk/api/v3/sms/send")
    sms_timeout_seconds: float = Field(default=10.0, gt=0)

    # Local fixtures for the in-memory store (demo, tests, --in-memory)
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="MEDIBOX_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def sms_configured(self) -> bool:
        """False while the SMS credential is empty or still the placeholder."""
        credential = self.sms_credential.strip()
        return bool(credential) and credential != SMS_CREDENTIAL_PLACEHOLDER


def get_settings() -> Settings:
    """Build settings from the environment. Call once per process."""
    return Settings()
