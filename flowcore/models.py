"""
Activity Records

Read-only snapshots of the data owned by the app's external stores
(focus sessions, tasks, presets, settings). The engine never mutates these;
it only reads collections of them through the source interfaces in
``flowcore.sources``.

Usage:
    from flowcore.models import SessionRecord, TaskRecord, RepeatRule

    session = SessionRecord(id="s1", date=datetime.now(), duration_seconds=1500)
    task = TaskRecord(id="t1", title="Email Sam", duration_minutes=10)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def align_datetime(value: Optional[datetime], reference: datetime) -> Optional[datetime]:
    """
    Express ``value`` the way ``reference`` is expressed.

    A naive reference is local wall-clock time, so aware values are converted
    to local time and stripped. An aware reference gets naive values tagged
    with its zone and aware values converted into it.
    """
    if value is None:
        return None
    if reference.tzinfo is None:
        return value if value.tzinfo is None else value.astimezone().replace(tzinfo=None)
    if value.tzinfo is None:
        return value.replace(tzinfo=reference.tzinfo)
    return value.astimezone(reference.tzinfo)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


class RepeatRule(StrEnum):
    """How a task recurs across calendar days."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM_DAYS = "custom_days"

    @property
    def display_name(self) -> str:
        if self is RepeatRule.NONE:
            return "No repeat"
        if self is RepeatRule.CUSTOM_DAYS:
            return "Custom"
        return self.value.capitalize()


@dataclass(frozen=True)
class SessionRecord:
    """A completed focus session."""

    id: str
    date: datetime
    duration_seconds: float
    label: Optional[str] = None

    @property
    def minutes(self) -> int:
        return int(self.duration_seconds // 60)

    def aligned_to(self, now: datetime) -> SessionRecord:
        aligned = align_datetime(self.date, now)
        return self if aligned is self.date else replace(self, date=aligned)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "duration_seconds": self.duration_seconds,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(
            id=str(data["id"]),
            date=_parse_datetime(data["date"]),
            duration_seconds=float(data.get("duration_seconds", 0)),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class TaskRecord:
    """
    A user task, possibly repeating.

    ``completion_log`` holds the calendar days on which this task was marked
    complete; a repeating task is completed per occurrence, not once.
    """

    id: str
    title: str
    duration_minutes: int = 0
    reminder_date: Optional[datetime] = None
    repeat_rule: RepeatRule = RepeatRule.NONE
    completion_log: frozenset[date] = field(default_factory=frozenset)
    created_at: Optional[datetime] = None
    # ISO weekday numbers (Monday=0) for RepeatRule.CUSTOM_DAYS
    custom_weekdays: frozenset[int] = field(default_factory=frozenset)

    def is_completed_on(self, day: date) -> bool:
        return day in self.completion_log

    def aligned_to(self, now: datetime) -> TaskRecord:
        reminder = align_datetime(self.reminder_date, now)
        created = align_datetime(self.created_at, now)
        if reminder is self.reminder_date and created is self.created_at:
            return self
        return replace(self, reminder_date=reminder, created_at=created)

    def occurs_on(self, day: date) -> bool:
        """Whether this task is scheduled on the given calendar day."""
        anchor_source = self.reminder_date or self.created_at
        if anchor_source is None:
            # Undated one-off task without a creation stamp: never scheduled
            return False
        anchor = anchor_source.date()

        if self.repeat_rule != RepeatRule.NONE and day < anchor:
            return False

        if self.repeat_rule == RepeatRule.NONE:
            return day == anchor
        if self.repeat_rule == RepeatRule.DAILY:
            return True
        if self.repeat_rule == RepeatRule.WEEKLY:
            return day.weekday() == anchor.weekday()
        if self.repeat_rule == RepeatRule.MONTHLY:
            return day.day == anchor.day
        if self.repeat_rule == RepeatRule.YEARLY:
            return (day.month, day.day) == (anchor.month, anchor.day)
        return day.weekday() in self.custom_weekdays

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "duration_minutes": self.duration_minutes,
            "reminder_date": self.reminder_date.isoformat() if self.reminder_date else None,
            "repeat_rule": self.repeat_rule.value,
            "completion_log": sorted(d.isoformat() for d in self.completion_log),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "custom_weekdays": sorted(self.custom_weekdays),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskRecord:
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            duration_minutes=int(data.get("duration_minutes", 0)),
            reminder_date=_parse_datetime(data.get("reminder_date")),
            repeat_rule=RepeatRule(data.get("repeat_rule", "none")),
            completion_log=frozenset(_parse_date(d) for d in data.get("completion_log", [])),
            created_at=_parse_datetime(data.get("created_at")),
            custom_weekdays=frozenset(int(d) for d in data.get("custom_weekdays", [])),
        )


@dataclass(frozen=True)
class PresetRecord:
    """A named focus preset."""

    id: str
    name: str
    duration_seconds: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PresetRecord:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            duration_seconds=int(data.get("duration_seconds", 0)),
        )


@dataclass(frozen=True)
class SettingsSnapshot:
    """Read-only view of the user's app settings."""

    daily_goal_minutes: int = 60
    display_name: Optional[str] = None
    theme: str = "forest"
    sound_enabled: bool = True
    haptics_enabled: bool = True

    @property
    def first_name(self) -> str:
        name = (self.display_name or "").strip()
        return name.split(" ")[0] if name else "there"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SettingsSnapshot:
        return cls(
            daily_goal_minutes=int(data.get("daily_goal_minutes", 60)),
            display_name=data.get("display_name"),
            theme=data.get("theme", "forest"),
            sound_enabled=bool(data.get("sound_enabled", True)),
            haptics_enabled=bool(data.get("haptics_enabled", True)),
        )


@dataclass(frozen=True)
class FocusState:
    """Whether a focus session is running right now."""

    is_active: bool = False
    is_paused: bool = False
    remaining_minutes: int = 0

    @property
    def is_running(self) -> bool:
        return self.is_active and not self.is_paused


@dataclass
class ActionContext:
    """Extra details accompanying an executed assistant action."""

    duration: Optional[int] = None
    task_type: Optional[str] = None
    preset_name: Optional[str] = None
    was_successful: bool = True
