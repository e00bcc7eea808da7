"""Delivery log stores.

Both implementations enforce the monotonic status rule at write time:
record_outcome only lands if the stored entry is still pending.
"""

import threading
from typing import Protocol
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from ..errors import InvalidTransitionError
from .models import DeliveryLog, DeliveryLogEntry, DeliveryStatus


class DeliveryLogStore(Protocol):
    """Delivery log store interface."""

    def add(self, entry: DeliveryLogEntry) -> None: ...
    def record_outcome(self, entry: DeliveryLogEntry) -> None: ...
    def get(self, log_id: UUID) -> DeliveryLogEntry | None: ...
    def list_for_user(self, user_id: str) -> list[DeliveryLogEntry]: ...
    def ping(self) -> bool: ...


def _require_terminal(entry: DeliveryLogEntry) -> None:
    if not entry.status.is_terminal:
        raise InvalidTransitionError(f"delivery log {entry.id} outcome must be terminal, got {entry.status}")


class InMemoryDeliveryLogStore:
    def __init__(self) -> None:
        self._entries: dict[UUID, DeliveryLogEntry] = {}
        self._by_user: dict[str, list[UUID]] = {}
        self._lock = threading.Lock()

    def add(self, entry: DeliveryLogEntry) -> None:
        with self._lock:
            if entry.id in self._entries:
                raise InvalidTransitionError(f"delivery log {entry.id} already exists")
            self._entries[entry.id] = entry
            self._by_user.setdefault(entry.user_id, []).append(entry.id)

    def record_outcome(self, entry: DeliveryLogEntry) -> None:
        _require_terminal(entry)
        with self._lock:
            current = self._entries.get(entry.id)
            if current is None or current.status is not DeliveryStatus.PENDING:
                raise InvalidTransitionError(f"delivery log {entry.id} is not pending")
            self._entries[entry.id] = entry

    def get(self, log_id: UUID) -> DeliveryLogEntry | None:
        with self._lock:
            return self._entries.get(log_id)

    def list_for_user(self, user_id: str) -> list[DeliveryLogEntry]:
        with self._lock:
            return [self._entries[i] for i in self._by_user.get(user_id, [])]

    def ping(self) -> bool:
        return True


class SqlDeliveryLogStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def add(self, entry: DeliveryLogEntry) -> None:
        with self._session_factory.begin() as db:
            db.add(DeliveryLog.from_entry(entry))

    def record_outcome(self, entry: DeliveryLogEntry) -> None:
        _require_terminal(entry)
        with self._session_factory.begin() as db:
            updated = (
                db.query(DeliveryLog)
                .filter(DeliveryLog.id == entry.id, DeliveryLog.status == DeliveryStatus.PENDING)
                .update(
                    {
                        DeliveryLog.status: entry.status,
                        DeliveryLog.sent_at: entry.sent_at,
                        DeliveryLog.failure_reason: entry.failure_reason,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                raise InvalidTransitionError(f"delivery log {entry.id} is not pending")

    def get(self, log_id: UUID) -> DeliveryLogEntry | None:
        with self._session_factory() as db:
            row = db.query(DeliveryLog).filter(DeliveryLog.id == log_id).one_or_none()
            return row.to_entry() if row else None

    def list_for_user(self, user_id: str) -> list[DeliveryLogEntry]:
        with self._session_factory() as db:
            rows = (
                db.query(DeliveryLog)
                .filter(DeliveryLog.user_id == user_id)
                .order_by(DeliveryLog.seq.asc())
                .all()
            )
            return [row.to_entry() for row in rows]

    def ping(self) -> bool:
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))
        return True
