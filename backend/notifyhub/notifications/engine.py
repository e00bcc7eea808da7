"""Dispatch engine: preference-gated delivery with an auditable outcome.

One dispatch reads a preference snapshot, applies the delivery policy, and
for allowed requests walks a delivery log entry from pending to exactly one
terminal state:

    (none) --deny-->  Denied            nothing persisted
    (none) --allow--> pending           entry created
    pending --ok-->   sent              sent_at stamped
    pending --fail--> failed            failure_reason stamped

The sender runs on a worker thread so a slow transport can be bounded by a
timeout. No store lock or database session is held while it runs.
"""

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from ..errors import NotFoundError, SenderError, ValidationError
from ..preferences.store import PreferenceStore
from .models import Channel, DeliveryLogEntry, NotificationType
from .policy import DenialReason, Deny, decide
from .senders import ChannelSender, OutboundMessage, SendResult
from .store import DeliveryLogStore

logger = logging.getLogger(__name__)

SENDER_ERROR = "sender_error"
SENDER_TIMEOUT = "sender_timeout"


@dataclass(frozen=True, slots=True)
class DeniedResult:
    user_id: str
    notification_type: NotificationType
    channel: Channel
    reason: DenialReason


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {label} {value!r}; expected one of: {allowed}") from None


class DispatchEngine:
    def __init__(
        self,
        preferences: PreferenceStore,
        logs: DeliveryLogStore,
        sender: ChannelSender,
        *,
        send_timeout: float = 10.0,
        max_workers: int = 8,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.preferences = preferences
        self.logs = logs
        self.sender = sender
        self.send_timeout = send_timeout
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="channel-sender")

    def dispatch(
        self,
        user_id: str,
        notification_type: NotificationType | str,
        channel: Channel | str,
        content: Mapping[str, Any] | None = None,
    ) -> DeliveryLogEntry | DeniedResult:
        """Gate, attempt and record one notification.

        Returns the terminal log entry when the policy allows the send, or a
        DeniedResult (with nothing persisted) when it does not. Delivery
        failures never raise; store failures do.
        """
        if not user_id or not str(user_id).strip():
            raise ValidationError("userId is required")
        notification_type = _coerce(NotificationType, notification_type, "notification type")
        channel = _coerce(Channel, channel, "channel")
        if content is not None and not isinstance(content, Mapping):
            raise ValidationError("content must be an object")

        # Single snapshot: the decision and the recipient both come from it
        preference = self.preferences.get(user_id)
        decision = decide(preference, notification_type, channel)
        if isinstance(decision, Deny):
            logger.info(
                "Dispatch denied: user=%s type=%s channel=%s reason=%s",
                user_id, notification_type, channel, decision.reason,
            )
            return DeniedResult(user_id, notification_type, channel, decision.reason)

        entry = DeliveryLogEntry.pending(user_id, notification_type, channel, content, created_at=self._clock())
        self.logs.add(entry)

        message = OutboundMessage(
            log_id=entry.id,
            user_id=user_id,
            email=preference.email,
            notification_type=notification_type,
            channel=channel,
            content=entry.metadata,
        )
        result = self._attempt(message)

        if result.success:
            final = entry.mark_sent(self._clock())
            logger.info("Delivered %s/%s to user %s (log %s)", notification_type, channel, user_id, entry.id)
        else:
            final = entry.mark_failed(result.failure_reason)
            logger.warning(
                "Delivery failed for user %s (log %s): %s", user_id, entry.id, final.failure_reason,
            )
        self.logs.record_outcome(final)
        return final

    def _attempt(self, message: OutboundMessage) -> SendResult:
        """Run the sender with a timeout, folding every failure mode into a SendResult."""
        future = self._executor.submit(self.sender.send, message)
        try:
            result = future.result(timeout=self.send_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("Sender timed out after %.1fs (log %s)", self.send_timeout, message.log_id)
            return SendResult.failed(SENDER_TIMEOUT)
        except SenderError as exc:
            return SendResult.failed(exc.reason or SENDER_ERROR)
        except Exception:
            logger.exception("Sender crashed for log %s", message.log_id)
            return SendResult.failed(SENDER_ERROR)

        if not isinstance(result, SendResult):
            logger.error("Sender returned %r instead of a SendResult (log %s)", result, message.log_id)
            return SendResult.failed(SENDER_ERROR)
        if not result.success and not result.failure_reason:
            return SendResult.failed(SENDER_ERROR)
        return result

    def list_logs(self, user_id: str) -> list[DeliveryLogEntry]:
        """All delivery attempts for a user, oldest first."""
        return self.logs.list_for_user(user_id)

    def get_log(self, log_id: UUID) -> DeliveryLogEntry:
        entry = self.logs.get(log_id)
        if entry is None:
            raise NotFoundError(f"Delivery log {log_id} not found")
        return entry

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sender pool, then release the sender's transport (HTTP clients)."""
        self._executor.shutdown(wait=wait)
        close = getattr(self.sender, "close", None)
        if close is not None:
            close()
