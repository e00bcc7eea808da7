"""Preference store with Protocol pattern for dependency injection.

Provides SqlPreferenceStore (SQLAlchemy-backed) and InMemoryPreferenceStore
(reference implementation, also used by tests and the "memory" backend).
Each method is one atomic operation: no lock or session outlives the call.
"""

import dataclasses
import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..errors import ConflictError, NotFoundError, ValidationError
from .models import MUTABLE_FIELDS, PreferenceRecord, UserPreference

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PreferenceStore(Protocol):
    """Preference store interface."""

    def get(self, user_id: str) -> PreferenceRecord | None: ...
    def create(self, record: PreferenceRecord) -> PreferenceRecord: ...
    def update(self, user_id: str, changes: Mapping[str, Any]) -> PreferenceRecord: ...
    def delete(self, user_id: str) -> bool: ...
    def ping(self) -> bool: ...


def _check_changes(changes: Mapping[str, Any]) -> None:
    rejected = set(changes) - MUTABLE_FIELDS
    if rejected:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(rejected))}")


def _bumped(created_at: datetime | None, now: datetime) -> datetime:
    # Keeps last_updated >= created_at even if the clock steps backwards
    if created_at is not None and created_at > now:
        return created_at
    return now


class InMemoryPreferenceStore:
    """Dict-backed store guarded by a single lock held only inside each call."""

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._records: dict[str, PreferenceRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, user_id: str) -> PreferenceRecord | None:
        with self._lock:
            return self._records.get(user_id)

    def create(self, record: PreferenceRecord) -> PreferenceRecord:
        now = self._clock()
        stamped = dataclasses.replace(record, created_at=now, last_updated=now)
        with self._lock:
            if record.user_id in self._records:
                raise ConflictError(f"Preferences already exist for user {record.user_id}")
            self._records[record.user_id] = stamped
        return stamped

    def update(self, user_id: str, changes: Mapping[str, Any]) -> PreferenceRecord:
        _check_changes(changes)
        with self._lock:
            current = self._records.get(user_id)
            if current is None:
                raise NotFoundError(f"No preferences found for user {user_id}")
            updated = dataclasses.replace(
                current, **changes, last_updated=_bumped(current.created_at, self._clock())
            )
            self._records[user_id] = updated
        return updated

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._records.pop(user_id, None) is not None

    def ping(self) -> bool:
        return True


class SqlPreferenceStore:
    """SQLAlchemy-backed store: one short transaction per operation."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = _utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, user_id: str) -> PreferenceRecord | None:
        with self._session_factory() as db:
            row = db.get(UserPreference, user_id)
            return row.to_record() if row else None

    def create(self, record: PreferenceRecord) -> PreferenceRecord:
        now = self._clock()
        stamped = dataclasses.replace(record, created_at=now, last_updated=now)
        try:
            with self._session_factory.begin() as db:
                if db.get(UserPreference, record.user_id) is not None:
                    raise ConflictError(f"Preferences already exist for user {record.user_id}")
                db.add(UserPreference.from_record(stamped))
        except IntegrityError as exc:
            # Lost a race with a concurrent create for the same user
            raise ConflictError(f"Preferences already exist for user {record.user_id}") from exc
        logger.debug("Preferences created for user %s", record.user_id)
        return stamped

    def update(self, user_id: str, changes: Mapping[str, Any]) -> PreferenceRecord:
        _check_changes(changes)
        with self._session_factory.begin() as db:
            row = db.get(UserPreference, user_id, with_for_update=True)
            if row is None:
                raise NotFoundError(f"No preferences found for user {user_id}")
            for name, value in changes.items():
                setattr(row, name, value)
            row.last_updated = _bumped(row.to_record().created_at, self._clock())
            db.flush()
            return row.to_record()

    def delete(self, user_id: str) -> bool:
        with self._session_factory.begin() as db:
            deleted = db.query(UserPreference).filter(UserPreference.user_id == user_id).delete()
        return bool(deleted)

    def ping(self) -> bool:
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))
        return True
