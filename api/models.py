"""
API models for the one-shot notification endpoint.

These Pydantic models define the contract between the MediBox firmware and
POST /sendNotification. Field names are camelCase on the wire, as the
firmware sends them.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SendNotificationRequest(BaseModel):
    """
    Request to notify a device's guardian.

    All four fields are required and must be non-empty. `type` is passed to
    the app unchanged ("pill_taken", "missed_dose", ...).
    """
    device_id: str = Field(..., alias="deviceId", min_length=1)
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    compartment: Optional[str] = Field(default=None, description="Missed-dose compartment")

    model_config = ConfigDict(populate_by_name=True)


class ChannelResult(BaseModel):
    """Result of sending via a single channel."""
    channel: str
    success: bool
    skipped: bool = False
    delivery_id: Optional[str] = Field(default=None, alias="deliveryId")
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SendNotificationResponse(BaseModel):
    """
    Response from POST /sendNotification.

    `success` is true when at least one channel delivered; `results` holds
    one entry per channel attempted.
    """
    success: bool
    message_id: Optional[str] = Field(default=None, alias="messageId")
    sent_to: str = Field(..., alias="sentTo", description="Truncated push token")
    results: list[ChannelResult] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
