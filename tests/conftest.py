"""Shared test fixtures for flowcore tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- A fixed "now" and helpers that place sessions relative to it
- Manual monotonic clock for cache TTL tests
- Ready-made stores, sources and learners

Usage:
    def test_something(now, make_session):
        session = make_session(days_ago=1, hour=9, minutes=25)
        ...
"""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, time, timedelta
from pathlib import Path

import pytest

from flowcore.config_models import EngineConfig, InvalidationConfig
from flowcore.learning.profile_learner import ProfileLearner
from flowcore.memory.store import MemoryStore
from flowcore.models import SessionRecord, SettingsSnapshot
from flowcore.sources import (
    InMemoryPresetSource,
    InMemorySessionSource,
    InMemoryTaskSource,
    StaticSettingsSource,
)
from flowcore.storage import InMemoryStore, StorageError


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent

# Wednesday, 2 PM
FIXED_NOW = datetime(2026, 3, 4, 14, 0)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


class FailingStore(InMemoryStore):
    """Reads work, every write raises StorageError."""

    def set(self, key: str, value: bytes) -> None:
        raise StorageError(f"disk full while writing '{key}'")

    def delete(self, key: str) -> None:
        raise StorageError(f"disk full while deleting '{key}'")


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


# ─────────────────────────────────────────────────────────────────────────────
# Time Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


def session_at(
    now: datetime,
    days_ago: int = 0,
    hour: int = 9,
    minutes: float = 25,
    session_id: str | None = None,
    label: str | None = None,
) -> SessionRecord:
    day = now.date() - timedelta(days=days_ago)
    return SessionRecord(
        id=session_id or f"s-{days_ago}-{hour}-{minutes}",
        date=datetime.combine(day, time(hour)),
        duration_seconds=minutes * 60,
        label=label,
    )


@pytest.fixture
def make_session(now: datetime) -> Callable[..., SessionRecord]:
    """Factory placing a session ``days_ago`` days before the fixed now."""
    counter = {"n": 0}

    def factory(days_ago: int = 0, hour: int = 9, minutes: float = 25, label: str | None = None):
        counter["n"] += 1
        return session_at(now, days_ago, hour, minutes, session_id=f"s{counter['n']}", label=label)

    return factory


# ─────────────────────────────────────────────────────────────────────────────
# Component Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def memory_store(store: InMemoryStore, now: datetime) -> MemoryStore:
    return MemoryStore(store, clock=lambda: now)


@pytest.fixture
def profile_learner(store: InMemoryStore, now: datetime) -> ProfileLearner:
    return ProfileLearner(store, clock=lambda: now)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Defaults, but with debouncing off so invalidation is synchronous."""
    return EngineConfig(invalidation=InvalidationConfig(debounce_ms=0))


@pytest.fixture
def sources() -> dict:
    return {
        "sessions": InMemorySessionSource(),
        "tasks": InMemoryTaskSource(),
        "presets": InMemoryPresetSource(),
        "settings": StaticSettingsSource(SettingsSnapshot(daily_goal_minutes=60, display_name="Sam Lee")),
    }
