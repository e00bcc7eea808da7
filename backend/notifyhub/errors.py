"""Service error taxonomy.

Every error a caller can provoke derives from ServiceError and carries the
HTTP status it maps to. The exception handlers registered in main.py turn
them into JSON responses; anything else is treated as a fatal server error.
"""

from typing import Any


class ServiceError(Exception):
    status_code = 500

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.detail, **self.extra}


class ValidationError(ServiceError):
    """Malformed, missing or out-of-enum input. Raised before any store is touched."""

    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class DenialError(ServiceError):
    """The user's preferences do not allow this notification.

    Not a system failure: it is reported with the structured reason produced
    by the delivery policy.
    """

    status_code = 403

    def __init__(self, reason: str, detail: str = "Notification blocked by user preferences", **extra: Any) -> None:
        super().__init__(detail, reason=str(reason), **extra)
        self.reason = str(reason)


class SenderError(Exception):
    """Structured delivery failure raised by a channel sender.

    The dispatch engine converts it into a failed log entry; it never reaches
    the HTTP layer.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidTransitionError(RuntimeError):
    """Attempt to move a delivery log entry out of a terminal state."""
