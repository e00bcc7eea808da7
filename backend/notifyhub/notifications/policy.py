"""Delivery policy: decides whether a user's preferences allow a notification.

Pure functions only. No store access, no clock, no logging.
"""

import enum
from dataclasses import dataclass

from ..preferences.models import Frequency, PreferenceRecord
from .models import Channel, NotificationType


class DenialReason(enum.StrEnum):
    NO_PREFERENCE = "no_preference_on_file"
    CATEGORY_OPTED_OUT = "category_opted_out"
    CHANNEL_OPTED_OUT = "channel_opted_out"
    FREQUENCY_NEVER = "frequency_never"


@dataclass(frozen=True, slots=True)
class Allow:
    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Deny:
    reason: DenialReason

    @property
    def allowed(self) -> bool:
        return False


Decision = Allow | Deny

ALLOW = Allow()


def decide(
    preference: PreferenceRecord | None,
    notification_type: NotificationType,
    channel: Channel,
) -> Decision:
    """Map a (preference, type, channel) triple to Allow or Deny.

    Category and channel are checked first so the denial reason is as
    precise as possible; frequency=never then vetoes everything else.
    A missing preference record always denies.
    """
    if preference is None:
        return Deny(DenialReason.NO_PREFERENCE)
    if not preference.category_enabled(notification_type):
        return Deny(DenialReason.CATEGORY_OPTED_OUT)
    if not preference.channel_enabled(channel):
        return Deny(DenialReason.CHANNEL_OPTED_OUT)
    if preference.frequency == Frequency.NEVER:
        return Deny(DenialReason.FREQUENCY_NEVER)
    return ALLOW
