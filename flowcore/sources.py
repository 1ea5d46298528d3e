"""
Collaborator Interfaces

The engine reads the app's live data through these narrow interfaces and is
told about changes through plain subscribe/notify callbacks. Each source is
owned by the host app; the in-memory implementations below back the CLI and
the test suite.

Usage:
    from flowcore.sources import InMemorySessionSource

    sessions = InMemorySessionSource()
    unsubscribe = sessions.subscribe(lambda: print("sessions changed"))
    sessions.add_session(record)   # prints "sessions changed"
    unsubscribe()
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any, Optional

from flowcore.models import (
    FocusState,
    PresetRecord,
    SessionRecord,
    SettingsSnapshot,
    TaskRecord,
)

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


class ChangeNotifier:
    """Minimal subscribe/notify hook shared by all change streams."""

    def __init__(self) -> None:
        self._subscribers: list[ChangeCallback] = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes it."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def notify_changed(self) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Change subscriber {callback!r} failed: {e}")


# =============================================================================
# Interfaces
# =============================================================================

class SessionSource(ChangeNotifier, ABC):
    @abstractmethod
    def current_sessions(self) -> list[SessionRecord]:
        """Snapshot of every recorded focus session."""


class TaskSource(ChangeNotifier, ABC):
    @abstractmethod
    def current_tasks(self) -> list[TaskRecord]:
        """Snapshot of every task."""

    @abstractmethod
    def is_completed(self, task_id: str, day: date) -> bool:
        """Whether the task was completed on the given calendar day."""


class PresetSource(ChangeNotifier, ABC):
    @abstractmethod
    def current_presets(self) -> list[PresetRecord]:
        """Snapshot of every focus preset."""

    @property
    @abstractmethod
    def active_preset_id(self) -> Optional[str]:
        """Id of the preset currently selected, if any."""


class SettingsSource(ABC):
    @abstractmethod
    def current(self) -> SettingsSnapshot:
        """Read-only settings snapshot."""


class FocusStateSource(ABC):
    @abstractmethod
    def current(self) -> FocusState:
        """Live focus session state."""


# =============================================================================
# In-memory implementations
# =============================================================================

class InMemorySessionSource(SessionSource):
    def __init__(self, sessions: Iterable[SessionRecord] = ()):
        super().__init__()
        self._sessions = list(sessions)

    def current_sessions(self) -> list[SessionRecord]:
        return list(self._sessions)

    def add_session(self, session: SessionRecord) -> None:
        self._sessions.append(session)
        self.notify_changed()

    def replace(self, sessions: Iterable[SessionRecord]) -> None:
        self._sessions = list(sessions)
        self.notify_changed()


class InMemoryTaskSource(TaskSource):
    def __init__(self, tasks: Iterable[TaskRecord] = ()):
        super().__init__()
        self._tasks = list(tasks)
        self._completions: set[tuple[str, date]] = set()

    def current_tasks(self) -> list[TaskRecord]:
        return list(self._tasks)

    def is_completed(self, task_id: str, day: date) -> bool:
        if (task_id, day) in self._completions:
            return True
        return any(t.id == task_id and t.is_completed_on(day) for t in self._tasks)

    def add_task(self, task: TaskRecord) -> None:
        self._tasks.append(task)
        self.notify_changed()

    def mark_completed(self, task_id: str, day: date) -> None:
        self._completions.add((task_id, day))
        self.notify_changed()

    def replace(self, tasks: Iterable[TaskRecord]) -> None:
        self._tasks = list(tasks)
        self.notify_changed()


class InMemoryPresetSource(PresetSource):
    def __init__(self, presets: Iterable[PresetRecord] = (), active_preset_id: Optional[str] = None):
        super().__init__()
        self._presets = list(presets)
        self._active_preset_id = active_preset_id

    def current_presets(self) -> list[PresetRecord]:
        return list(self._presets)

    @property
    def active_preset_id(self) -> Optional[str]:
        return self._active_preset_id

    def set_active(self, preset_id: Optional[str]) -> None:
        self._active_preset_id = preset_id
        self.notify_changed()

    def replace(self, presets: Iterable[PresetRecord]) -> None:
        self._presets = list(presets)
        self.notify_changed()


class StaticSettingsSource(SettingsSource):
    def __init__(self, settings: Optional[SettingsSnapshot] = None):
        self.settings = settings or SettingsSnapshot()

    def current(self) -> SettingsSnapshot:
        return self.settings


class StaticFocusStateSource(FocusStateSource):
    def __init__(self, state: Optional[FocusState] = None):
        self.state = state or FocusState()

    def current(self) -> FocusState:
        return self.state


def sources_from_snapshot(data: dict[str, Any]) -> dict[str, Any]:
    """
    Build in-memory sources from a JSON-style snapshot document.

    Expected keys (all optional): ``settings``, ``sessions``, ``tasks``,
    ``presets``, ``active_preset_id``, ``focus``.
    """
    focus = data.get("focus") or {}
    return {
        "sessions": InMemorySessionSource(
            SessionRecord.from_dict(s) for s in data.get("sessions", [])
        ),
        "tasks": InMemoryTaskSource(TaskRecord.from_dict(t) for t in data.get("tasks", [])),
        "presets": InMemoryPresetSource(
            (PresetRecord.from_dict(p) for p in data.get("presets", [])),
            active_preset_id=data.get("active_preset_id"),
        ),
        "settings": StaticSettingsSource(SettingsSnapshot.from_dict(data.get("settings", {}))),
        "focus": StaticFocusStateSource(
            FocusState(
                is_active=bool(focus.get("is_active", False)),
                is_paused=bool(focus.get("is_paused", False)),
                remaining_minutes=int(focus.get("remaining_minutes", 0)),
            )
        ),
    }
