"""
Memory Records

Persisted data structures owned by MemoryStore. Every record converts to and
from a plain dict so the codec can store it as JSON.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional, TypeVar

T = TypeVar("T")


def trim_fifo(items: list[T], cap: int) -> list[T]:
    """Keep the newest ``cap`` items, evicting from the front."""
    if len(items) <= cap:
        return items
    return items[len(items) - cap:]


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class MotivationStyle(StrEnum):
    """How the assistant motivates, self-tuned from feedback."""

    ENCOURAGING = "encouraging"
    DIRECT = "direct"
    BALANCED = "balanced"

    @property
    def display_name(self) -> str:
        return {
            MotivationStyle.ENCOURAGING: "Encouraging & supportive",
            MotivationStyle.DIRECT: "Direct & concise",
            MotivationStyle.BALANCED: "Balanced",
        }[self]


class ConversationSatisfaction(StrEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class InsightType(StrEnum):
    PRODUCTIVITY_PATTERN = "productivity_pattern"
    FOCUS_PREFERENCE = "focus_preference"
    TASK_BEHAVIOR = "task_behavior"
    PROGRESS_MILESTONE = "progress_milestone"
    STREAK_ACHIEVEMENT = "streak_achievement"
    LEARNING_MOMENT = "learning_moment"


@dataclass
class UserPreferences:
    """Preferences learned over time."""

    prefers_short_responses: bool = True
    likes_emojis: bool = True
    prefers_morning_focus: Optional[bool] = None
    prefers_task_reminders: bool = True
    preferred_task_duration: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefers_short_responses": self.prefers_short_responses,
            "likes_emojis": self.likes_emojis,
            "prefers_morning_focus": self.prefers_morning_focus,
            "prefers_task_reminders": self.prefers_task_reminders,
            "preferred_task_duration": self.preferred_task_duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserPreferences:
        return cls(
            prefers_short_responses=bool(data.get("prefers_short_responses", True)),
            likes_emojis=bool(data.get("likes_emojis", True)),
            prefers_morning_focus=data.get("prefers_morning_focus"),
            prefers_task_reminders=bool(data.get("prefers_task_reminders", True)),
            preferred_task_duration=data.get("preferred_task_duration"),
        )


@dataclass
class Memory:
    """
    Core long-horizon memory.

    ``total_sessions`` counts app launches and only ever grows. The string
    lists are bounded; MemoryStore trims them from the front on every write.
    """

    preferred_focus_duration: Optional[int] = None
    peak_hours: list[int] = field(default_factory=list)
    recent_goals: list[str] = field(default_factory=list)
    total_conversations: int = 0
    positive_interactions: int = 0
    negative_interactions: int = 0
    motivation_style: MotivationStyle = MotivationStyle.BALANCED
    last_session_date: Optional[datetime] = None
    total_sessions: int = 0
    longest_streak: int = 0
    last_tip_date: Optional[datetime] = None
    user_name: Optional[str] = None
    learned_facts: list[str] = field(default_factory=list)
    user_goals: list[str] = field(default_factory=list)
    user_challenges: list[str] = field(default_factory=list)
    preferences: UserPreferences = field(default_factory=UserPreferences)

    @property
    def positive_ratio(self) -> float:
        total = self.positive_interactions + self.negative_interactions
        return self.positive_interactions / max(1, total)

    def to_dict(self) -> dict[str, Any]:
        return {
            "preferred_focus_duration": self.preferred_focus_duration,
            "peak_hours": list(self.peak_hours),
            "recent_goals": list(self.recent_goals),
            "total_conversations": self.total_conversations,
            "positive_interactions": self.positive_interactions,
            "negative_interactions": self.negative_interactions,
            "motivation_style": self.motivation_style.value,
            "last_session_date": _iso(self.last_session_date),
            "total_sessions": self.total_sessions,
            "longest_streak": self.longest_streak,
            "last_tip_date": _iso(self.last_tip_date),
            "user_name": self.user_name,
            "learned_facts": list(self.learned_facts),
            "user_goals": list(self.user_goals),
            "user_challenges": list(self.user_challenges),
            "preferences": self.preferences.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Memory:
        return cls(
            preferred_focus_duration=data.get("preferred_focus_duration"),
            peak_hours=[int(h) for h in data.get("peak_hours", [])],
            recent_goals=list(data.get("recent_goals", [])),
            total_conversations=int(data.get("total_conversations", 0)),
            positive_interactions=int(data.get("positive_interactions", 0)),
            negative_interactions=int(data.get("negative_interactions", 0)),
            motivation_style=MotivationStyle(data.get("motivation_style", "balanced")),
            last_session_date=_dt(data.get("last_session_date")),
            total_sessions=int(data.get("total_sessions", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            last_tip_date=_dt(data.get("last_tip_date")),
            user_name=data.get("user_name"),
            learned_facts=list(data.get("learned_facts", [])),
            user_goals=list(data.get("user_goals", [])),
            user_challenges=list(data.get("user_challenges", [])),
            preferences=UserPreferences.from_dict(data.get("preferences") or {}),
        )


@dataclass
class LearnedPatterns:
    """Action histograms learned from what the assistant executes."""

    action_frequency: dict[str, int] = field(default_factory=dict)
    hourly_action_patterns: dict[int, dict[str, int]] = field(default_factory=dict)
    preferred_focus_durations: list[int] = field(default_factory=list)
    common_task_types: dict[str, int] = field(default_factory=dict)
    # Monday=0
    day_of_week_patterns: dict[int, dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_frequency": dict(self.action_frequency),
            "hourly_action_patterns": {
                str(h): dict(actions) for h, actions in self.hourly_action_patterns.items()
            },
            "preferred_focus_durations": list(self.preferred_focus_durations),
            "common_task_types": dict(self.common_task_types),
            "day_of_week_patterns": {
                str(d): dict(actions) for d, actions in self.day_of_week_patterns.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnedPatterns:
        return cls(
            action_frequency={k: int(v) for k, v in data.get("action_frequency", {}).items()},
            hourly_action_patterns={
                int(h): {a: int(c) for a, c in actions.items()}
                for h, actions in data.get("hourly_action_patterns", {}).items()
            },
            preferred_focus_durations=[int(d) for d in data.get("preferred_focus_durations", [])],
            common_task_types={k: int(v) for k, v in data.get("common_task_types", {}).items()},
            day_of_week_patterns={
                int(d): {a: int(c) for a, c in actions.items()}
                for d, actions in data.get("day_of_week_patterns", {}).items()
            },
        )


@dataclass
class ConversationSummary:
    """One assistant turn, condensed for long-term memory."""

    date: datetime
    user_intent: str
    ai_response_summary: str = ""
    actions_executed: list[str] = field(default_factory=list)
    satisfaction: Optional[ConversationSatisfaction] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "user_intent": self.user_intent,
            "ai_response_summary": self.ai_response_summary,
            "actions_executed": list(self.actions_executed),
            "satisfaction": self.satisfaction.value if self.satisfaction else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationSummary:
        satisfaction = data.get("satisfaction")
        return cls(
            id=str(data["id"]),
            date=_dt(data["date"]),
            user_intent=data.get("user_intent", ""),
            ai_response_summary=data.get("ai_response_summary", ""),
            actions_executed=list(data.get("actions_executed", [])),
            satisfaction=ConversationSatisfaction(satisfaction) if satisfaction else None,
        )


@dataclass
class SessionInsight:
    """A noteworthy observation kept for long-term pattern learning."""

    insight_type: InsightType
    message: str
    date: datetime = field(default_factory=datetime.now)
    data: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "insight_type": self.insight_type.value,
            "message": self.message,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionInsight:
        return cls(
            id=str(data["id"]),
            date=_dt(data["date"]),
            insight_type=InsightType(data["insight_type"]),
            message=data.get("message", ""),
            data={str(k): str(v) for k, v in (data.get("data") or {}).items()},
        )
