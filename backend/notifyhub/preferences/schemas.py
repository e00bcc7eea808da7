"""Preference request/response schemas.

Wire format is camelCase; unknown keys are rejected.
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import Frequency, PreferenceRecord


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


# Surrounding whitespace is dropped and the address lowercased
Email = Annotated[EmailStr, BeforeValidator(_strip), AfterValidator(str.lower)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ChannelSettings(CamelModel):
    email: bool = True
    sms: bool = False
    push: bool = False


class CategorySettings(CamelModel):
    marketing: bool = True
    newsletter: bool = True
    updates: bool = True
    frequency: Frequency = Frequency.WEEKLY
    channels: ChannelSettings = Field(default_factory=ChannelSettings)


class PreferenceCreateRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    email: Email
    preferences: CategorySettings = Field(default_factory=CategorySettings)
    timezone: str = Field("UTC", min_length=1, max_length=64)

    @field_validator("user_id")
    @classmethod
    def strip_user_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("userId must not be blank")
        return v

    def to_record(self) -> PreferenceRecord:
        p = self.preferences
        return PreferenceRecord(
            user_id=self.user_id,
            email=self.email,
            marketing=p.marketing,
            newsletter=p.newsletter,
            updates=p.updates,
            frequency=p.frequency,
            channel_email=p.channels.email,
            channel_sms=p.channels.sms,
            channel_push=p.channels.push,
            timezone=self.timezone,
        )


class ChannelPatch(CamelModel):
    email: bool | None = None
    sms: bool | None = None
    push: bool | None = None


class CategoryPatch(CamelModel):
    marketing: bool | None = None
    newsletter: bool | None = None
    updates: bool | None = None
    frequency: Frequency | None = None
    channels: ChannelPatch | None = None


class PreferenceUpdateRequest(CamelModel):
    """Partial update: only the fields present (and non-null) are applied."""

    email: Email | None = None
    preferences: CategoryPatch | None = None
    timezone: str | None = Field(None, min_length=1, max_length=64)

    def to_changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if self.email is not None:
            changes["email"] = self.email
        if self.timezone is not None:
            changes["timezone"] = self.timezone
        if self.preferences is not None:
            for name in ("marketing", "newsletter", "updates", "frequency"):
                value = getattr(self.preferences, name)
                if value is not None:
                    changes[name] = value
            if self.preferences.channels is not None:
                for name in ("email", "sms", "push"):
                    value = getattr(self.preferences.channels, name)
                    if value is not None:
                        changes[f"channel_{name}"] = value
        return changes


class PreferenceResponse(CamelModel):
    user_id: str
    email: str
    preferences: CategorySettings
    timezone: str
    created_at: datetime | None
    last_updated: datetime | None

    @classmethod
    def from_record(cls, record: PreferenceRecord) -> "PreferenceResponse":
        return cls(
            user_id=record.user_id,
            email=record.email,
            preferences=CategorySettings(
                marketing=record.marketing,
                newsletter=record.newsletter,
                updates=record.updates,
                frequency=record.frequency,
                channels=ChannelSettings(
                    email=record.channel_email,
                    sms=record.channel_sms,
                    push=record.channel_push,
                ),
            ),
            timezone=record.timezone,
            created_at=record.created_at,
            last_updated=record.last_updated,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
