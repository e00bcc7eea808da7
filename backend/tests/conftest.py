"""Shared test fixtures."""

import os

# Must be set before notifyhub.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORE_BACKEND", "memory")

import logging
import threading
import time
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from notifyhub.database.base import Base
from notifyhub.notifications.engine import DispatchEngine
from notifyhub.notifications.models import DeliveryLog
from notifyhub.notifications.senders import SendResult
from notifyhub.notifications.store import InMemoryDeliveryLogStore
from notifyhub.preferences.models import Frequency, PreferenceRecord, UserPreference
from notifyhub.preferences.store import InMemoryPreferenceStore

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [DeliveryLog, UserPreference]


class StubSender:
    """Channel sender double: returns a fixed result, raises, or stalls."""

    def __init__(self) -> None:
        self.result = SendResult.ok()
        self.exc: BaseException | None = None
        self.delay = 0.0
        self.messages = []
        self._lock = threading.Lock()

    def send(self, message):
        with self._lock:
            self.messages.append(message)
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


class StepClock:
    """Deterministic clock moving ``step`` seconds per call (negative steps run backwards)."""

    def __init__(self, start: datetime | None = None, step: float = 1.0) -> None:
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


@pytest.fixture
def session_factory():
    """In-memory SQLite database shared across sessions.

    Note: SQLite drops timezone info and ignores FOR UPDATE, but works for
    store logic testing.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def backwards_clock():
    """Clock stepping one second into the past per call, as after an NTP correction."""
    return StepClock(step=-1.0)


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore()


@pytest.fixture
def log_store():
    return InMemoryDeliveryLogStore()


@pytest.fixture
def stub_sender():
    return StubSender()


@pytest.fixture
def dispatch_engine(preference_store, log_store, stub_sender):
    engine = DispatchEngine(preference_store, log_store, stub_sender, send_timeout=1.0, max_workers=4)
    try:
        yield engine
    finally:
        engine.shutdown(wait=True)


def make_preference(user_id: str = "u1", **overrides) -> PreferenceRecord:
    fields = {
        "user_id": user_id,
        "email": f"{user_id}@example.com",
        "marketing": True,
        "newsletter": True,
        "updates": True,
        "frequency": Frequency.DAILY,
        "channel_email": True,
        "channel_sms": True,
        "channel_push": True,
    }
    fields.update(overrides)
    return PreferenceRecord(**fields)


@pytest.fixture
def preference_factory():
    return make_preference


@pytest.fixture
def isolated_logging(tmp_path, monkeypatch):
    """Point setup_logging() at a temp dir and restore logger handlers afterwards."""
    from notifyhub.config import settings

    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    loggers = [logging.getLogger(), logging.getLogger("notifyhub.notifications")]
    saved = [(lg, lg.handlers[:], lg.level) for lg in loggers]
    yield tmp_path / "logs"
    for lg, handlers, level in saved:
        for handler in lg.handlers:
            if handler not in handlers:
                handler.close()
        lg.handlers[:] = handlers
        lg.setLevel(level)
