"""Notification request/response schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from ..preferences.schemas import CamelModel
from .models import Channel, DeliveryLogEntry, DeliveryStatus, NotificationType


class NotificationSendRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    notification_type: NotificationType = Field(..., alias="type")
    channel: Channel
    content: dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_id")
    @classmethod
    def strip_user_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("userId must not be blank")
        return v


class DeliveryLogResponse(CamelModel):
    id: UUID
    user_id: str
    notification_type: NotificationType
    channel: Channel
    status: DeliveryStatus
    sent_at: datetime | None
    failure_reason: str | None
    metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: DeliveryLogEntry) -> "DeliveryLogResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            notification_type=entry.notification_type,
            channel=entry.channel,
            status=entry.status,
            sent_at=entry.sent_at,
            failure_reason=entry.failure_reason,
            metadata=dict(entry.metadata),
            created_at=entry.created_at,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
