"""Delivery log model, enums, and the delivery state machine."""

import dataclasses
import enum
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base, ensure_utc
from ..errors import InvalidTransitionError


class NotificationType(enum.StrEnum):
    """Notification category, matched against the per-category opt-in flags."""

    MARKETING = "marketing"
    NEWSLETTER = "newsletter"
    UPDATES = "updates"


class Channel(enum.StrEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryStatus(enum.StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "DeliveryStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SENT, DeliveryStatus.FAILED}),
    DeliveryStatus.SENT: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
}


def _freeze(content: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(content or {}))


@dataclass(frozen=True, slots=True)
class DeliveryLogEntry:
    """One dispatch attempt.

    Entries are immutable values: a transition returns a new entry and leaves
    the original untouched. Only pending entries may transition, and only
    once, to sent or failed.
    """

    user_id: str
    notification_type: NotificationType
    channel: Channel
    metadata: Mapping[str, Any] = field(default_factory=dict)
    status: DeliveryStatus = DeliveryStatus.PENDING
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sent_at: datetime | None = None
    failure_reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @classmethod
    def pending(
        cls,
        user_id: str,
        notification_type: NotificationType,
        channel: Channel,
        metadata: Mapping[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> "DeliveryLogEntry":
        return cls(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            metadata=metadata or {},
            created_at=created_at or datetime.now(UTC),
        )

    def _transition(self, target: DeliveryStatus, **changes: Any) -> "DeliveryLogEntry":
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                f"delivery log {self.id} cannot move from {self.status} to {target}"
            )
        return dataclasses.replace(self, status=target, **changes)

    def mark_sent(self, at: datetime | None = None) -> "DeliveryLogEntry":
        return self._transition(DeliveryStatus.SENT, sent_at=at or datetime.now(UTC))

    def mark_failed(self, reason: str) -> "DeliveryLogEntry":
        return self._transition(DeliveryStatus.FAILED, failure_reason=reason or "unknown")


class DeliveryLog(Base):
    """Persisted delivery attempt, one row per dispatch that reached pending."""

    __tablename__ = "delivery_logs"

    # Insertion order; list_for_user sorts on this, never on the clock
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(UUID(as_uuid=True), nullable=False, unique=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    notification_type = Column(
        SQLEnum(NotificationType, name="notification_type", values_callable=lambda e: [s.value for s in e]),
        nullable=False,
    )
    channel = Column(
        SQLEnum(Channel, name="delivery_channel", values_callable=lambda e: [s.value for s in e]),
        nullable=False,
    )
    status = Column(
        SQLEnum(DeliveryStatus, name="delivery_status", values_callable=lambda e: [s.value for s in e]),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    # "metadata" is reserved on declarative classes
    payload = Column("metadata", JSON, nullable=False, default=dict)
    failure_reason = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_delivery_logs_user_seq", "user_id", "seq"),)

    @classmethod
    def from_entry(cls, entry: DeliveryLogEntry) -> "DeliveryLog":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            notification_type=entry.notification_type,
            channel=entry.channel,
            status=entry.status,
            payload=dict(entry.metadata),
            failure_reason=entry.failure_reason,
            sent_at=entry.sent_at,
            created_at=entry.created_at,
        )

    def to_entry(self) -> DeliveryLogEntry:
        return DeliveryLogEntry(
            id=self.id,
            user_id=self.user_id,
            notification_type=NotificationType(self.notification_type),
            channel=Channel(self.channel),
            status=DeliveryStatus(self.status),
            metadata=self.payload or {},
            failure_reason=self.failure_reason,
            sent_at=ensure_utc(self.sent_at),
            created_at=ensure_utc(self.created_at),
        )
