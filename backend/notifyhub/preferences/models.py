"""User notification preference model."""

import enum
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy import (
    Enum as SQLEnum,
)

from ..database.base import Base, ensure_utc
from ..notifications.models import Channel, NotificationType


class Frequency(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NEVER = "never"


# Fields a partial update may touch. user_id and created_at are fixed at creation.
MUTABLE_FIELDS = frozenset(
    {
        "email",
        "marketing",
        "newsletter",
        "updates",
        "frequency",
        "channel_email",
        "channel_sms",
        "channel_push",
        "timezone",
    }
)


@dataclass(frozen=True, slots=True)
class PreferenceRecord:
    """Snapshot of one user's opt-in settings."""

    user_id: str
    email: str
    marketing: bool = True
    newsletter: bool = True
    updates: bool = True
    frequency: Frequency = Frequency.WEEKLY
    channel_email: bool = True
    channel_sms: bool = False
    channel_push: bool = False
    timezone: str = "UTC"
    created_at: datetime | None = None
    last_updated: datetime | None = None

    def category_enabled(self, notification_type: NotificationType) -> bool:
        return getattr(self, NotificationType(notification_type).value)

    def channel_enabled(self, channel: Channel) -> bool:
        return getattr(self, f"channel_{Channel(channel).value}")


class UserPreference(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False)

    marketing = Column(Boolean, nullable=False, default=True)
    newsletter = Column(Boolean, nullable=False, default=True)
    updates = Column(Boolean, nullable=False, default=True)
    frequency = Column(
        SQLEnum(Frequency, name="preference_frequency", values_callable=lambda e: [s.value for s in e]),
        nullable=False,
        default=Frequency.WEEKLY,
    )

    channel_email = Column(Boolean, nullable=False, default=True)
    channel_sms = Column(Boolean, nullable=False, default=False)
    channel_push = Column(Boolean, nullable=False, default=False)

    timezone = Column(String(64), nullable=False, default="UTC")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    last_updated = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    @classmethod
    def from_record(cls, record: PreferenceRecord) -> "UserPreference":
        return cls(
            user_id=record.user_id,
            email=record.email,
            marketing=record.marketing,
            newsletter=record.newsletter,
            updates=record.updates,
            frequency=record.frequency,
            channel_email=record.channel_email,
            channel_sms=record.channel_sms,
            channel_push=record.channel_push,
            timezone=record.timezone,
            created_at=record.created_at,
            last_updated=record.last_updated,
        )

    def to_record(self) -> PreferenceRecord:
        return PreferenceRecord(
            user_id=self.user_id,
            email=self.email,
            marketing=self.marketing,
            newsletter=self.newsletter,
            updates=self.updates,
            frequency=Frequency(self.frequency),
            channel_email=self.channel_email,
            channel_sms=self.channel_sms,
            channel_push=self.channel_push,
            timezone=self.timezone,
            created_at=ensure_utc(self.created_at),
            last_updated=ensure_utc(self.last_updated),
        )
