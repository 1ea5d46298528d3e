"""
Tool: Profile Learner
Purpose: Infer a long-lived productivity persona and learn what works for the user

Features:
- Persona inference from the last 50 sessions (needs at least 10)
- Success patterns merged by (hour, weekday, action)
- Effective motivations and ineffective approaches, both bounded
- Feature usage counters
- Periodic refresh on a configurable interval
- Prompt section rendering ("=== USER PROFILE ===")

The profile is persisted as one blob under ``flow_user_profile_v1``. All
mutations go through ``update()``, which applies the change to a copy under
the lock, swaps it in and writes it while still holding the lock.

Usage:
    from flowcore.learning.profile_learner import ProfileLearner
    from flowcore.storage import InMemoryStore

    learner = ProfileLearner(InMemoryStore())
    learner.infer_persona(sessions)
    learner.record_success_pattern("start_focus", "completed session")
    print(learner.build_profile_context())
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Optional

from flowcore.config_models import ProfileConfig
from flowcore.learning.behavior_analyzer import format_hour, peak_hours
from flowcore.memory.records import trim_fifo
from flowcore.models import SessionRecord
from flowcore.storage import PersistentStore, StorageError, decode_record, encode_record

logger = logging.getLogger(__name__)

PROFILE_KEY = "flow_user_profile_v1"

MORNING_HOURS = range(5, 12)
EVENING_HOURS = range(18, 24)

WEEKDAY_ABBREVIATIONS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


# =============================================================================
# Profile enums
# =============================================================================

class ProductivityPersona(StrEnum):
    MORNING_WARRIOR = "morning_warrior"
    NIGHT_OWL = "night_owl"
    SPRINT_WORKER = "sprint_worker"
    MARATHON_RUNNER = "marathon_runner"
    FLEXIBLE_ADAPTER = "flexible_adapter"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def description(self) -> str:
        return {
            ProductivityPersona.MORNING_WARRIOR: "Most productive in early hours, front-loads important work",
            ProductivityPersona.NIGHT_OWL: "Peak performance in evening/night hours",
            ProductivityPersona.SPRINT_WORKER: "Prefers short, intense bursts of focus",
            ProductivityPersona.MARATHON_RUNNER: "Thrives in longer, sustained focus sessions",
            ProductivityPersona.FLEXIBLE_ADAPTER: "Productive across various times and session lengths",
            ProductivityPersona.UNKNOWN: "Still learning your patterns",
        }[self]

    @property
    def suggested_session_minutes(self) -> Optional[int]:
        if self == ProductivityPersona.SPRINT_WORKER:
            return 15
        if self == ProductivityPersona.MARATHON_RUNNER:
            return 45
        return None


class MotivationStyle(StrEnum):
    ENCOURAGING = "encouraging"
    DIRECT = "direct"
    GENTLE = "gentle"
    BALANCED = "balanced"
    DATA_FOCUSED = "data_focused"


class CelebrationLevel(StrEnum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    ENTHUSIASTIC = "enthusiastic"


class ResponseStyle(StrEnum):
    CONCISE = "concise"
    DETAILED = "detailed"

    @property
    def description(self) -> str:
        if self == ResponseStyle.CONCISE:
            return "Short, to-the-point responses"
        return "More context and explanation"

    @property
    def max_words(self) -> int:
        return 30 if self == ResponseStyle.CONCISE else 75


class NudgeFrequency(StrEnum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    FREQUENT = "frequent"

    @property
    def max_nudges_per_day(self) -> int:
        return {
            NudgeFrequency.MINIMAL: 2,
            NudgeFrequency.MODERATE: 5,
            NudgeFrequency.FREQUENT: 10,
        }[self]


class ActionBias(StrEnum):
    AUTO = "auto"  # execute when the intent is clear
    SUGGEST = "suggest"  # execute on confirmation
    ASK = "ask"


class EngagementType(StrEnum):
    STARTED_SESSION = "started_session"
    COMPLETED_GOAL = "completed_goal"
    POSITIVE_FEEDBACK = "positive_feedback"
    CONTINUED_CONVERSATION = "continued_conversation"


# =============================================================================
# Records
# =============================================================================

def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class MotivationRecord:
    """A phrase that was followed by engagement."""

    phrase: str
    context: str
    engagement_type: EngagementType
    date: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "phrase": self.phrase,
            "context": self.context,
            "engagement_type": self.engagement_type.value,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MotivationRecord:
        return cls(
            id=str(data["id"]),
            phrase=data.get("phrase", ""),
            context=data.get("context", ""),
            engagement_type=EngagementType(data["engagement_type"]),
            date=_dt(data["date"]),
        )


@dataclass
class SuccessPattern:
    """A (time, action) combination that led to a good outcome. Weekday: Monday=0."""

    hour_of_day: int
    day_of_week: int
    action: str
    outcome: str
    last_occurred: datetime
    count: int = 1
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def key(self) -> tuple[int, int, str]:
        return (self.hour_of_day, self.day_of_week, self.action)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hour_of_day": self.hour_of_day,
            "day_of_week": self.day_of_week,
            "action": self.action,
            "outcome": self.outcome,
            "count": self.count,
            "last_occurred": self.last_occurred.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SuccessPattern:
        return cls(
            id=str(data["id"]),
            hour_of_day=int(data["hour_of_day"]),
            day_of_week=int(data["day_of_week"]),
            action=data["action"],
            outcome=data.get("outcome", ""),
            count=int(data.get("count", 1)),
            last_occurred=_dt(data["last_occurred"]),
        )


@dataclass
class UserProfile:
    persona: ProductivityPersona = ProductivityPersona.UNKNOWN
    motivation_style: MotivationStyle = MotivationStyle.BALANCED
    celebration_preference: CelebrationLevel = CelebrationLevel.MODERATE

    peak_hours: list[int] = field(default_factory=list)
    preferred_session_length: int = 25
    common_task_categories: dict[str, int] = field(default_factory=dict)
    average_sessions_per_day: float = 0.0
    goal_completion_rate: float = 0.0

    response_style: ResponseStyle = ResponseStyle.CONCISE
    nudge_frequency: NudgeFrequency = NudgeFrequency.MODERATE
    action_bias: ActionBias = ActionBias.SUGGEST

    effective_motivations: list[MotivationRecord] = field(default_factory=list)
    ineffective_approaches: list[str] = field(default_factory=list)
    feature_usage: dict[str, int] = field(default_factory=dict)
    success_patterns: list[SuccessPattern] = field(default_factory=list)

    last_updated: Optional[datetime] = None
    last_analyzed_at: Optional[datetime] = None
    profile_version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "persona": self.persona.value,
            "motivation_style": self.motivation_style.value,
            "celebration_preference": self.celebration_preference.value,
            "peak_hours": list(self.peak_hours),
            "preferred_session_length": self.preferred_session_length,
            "common_task_categories": dict(self.common_task_categories),
            "average_sessions_per_day": self.average_sessions_per_day,
            "goal_completion_rate": self.goal_completion_rate,
            "response_style": self.response_style.value,
            "nudge_frequency": self.nudge_frequency.value,
            "action_bias": self.action_bias.value,
            "effective_motivations": [m.to_dict() for m in self.effective_motivations],
            "ineffective_approaches": list(self.ineffective_approaches),
            "feature_usage": dict(self.feature_usage),
            "success_patterns": [p.to_dict() for p in self.success_patterns],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_analyzed_at": self.last_analyzed_at.isoformat() if self.last_analyzed_at else None,
            "profile_version": self.profile_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        return cls(
            persona=ProductivityPersona(data.get("persona", "unknown")),
            motivation_style=MotivationStyle(data.get("motivation_style", "balanced")),
            celebration_preference=CelebrationLevel(data.get("celebration_preference", "moderate")),
            peak_hours=[int(h) for h in data.get("peak_hours", [])],
            preferred_session_length=int(data.get("preferred_session_length", 25)),
            common_task_categories={
                k: int(v) for k, v in data.get("common_task_categories", {}).items()
            },
            average_sessions_per_day=float(data.get("average_sessions_per_day", 0.0)),
            goal_completion_rate=float(data.get("goal_completion_rate", 0.0)),
            response_style=ResponseStyle(data.get("response_style", "concise")),
            nudge_frequency=NudgeFrequency(data.get("nudge_frequency", "moderate")),
            action_bias=ActionBias(data.get("action_bias", "suggest")),
            effective_motivations=[
                MotivationRecord.from_dict(m) for m in data.get("effective_motivations", [])
            ],
            ineffective_approaches=list(data.get("ineffective_approaches", [])),
            feature_usage={k: int(v) for k, v in data.get("feature_usage", {}).items()},
            success_patterns=[SuccessPattern.from_dict(p) for p in data.get("success_patterns", [])],
            last_updated=_dt(data.get("last_updated")),
            last_analyzed_at=_dt(data.get("last_analyzed_at")),
            profile_version=int(data.get("profile_version", 1)),
        )


# =============================================================================
# Learner
# =============================================================================

ProfileMutator = Callable[[UserProfile], Optional[UserProfile]]


class ProfileLearner:
    """
    Owns the persisted UserProfile.

    Args:
        store: Blob store the profile is persisted to.
        config: Bounds and thresholds; defaults match args/flowcore.yaml.
        clock: Returns the current local time; injectable for tests.
    """

    def __init__(
        self,
        store: PersistentStore,
        config: Optional[ProfileConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.config = config or ProfileConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._profile = self._load()

    @property
    def profile(self) -> UserProfile:
        """Current profile. Treat as read-only; change it through ``update()``."""
        return self._profile

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> UserProfile:
        try:
            blob = self.store.get(PROFILE_KEY)
        except StorageError as e:
            logger.warning(f"Could not read user profile, starting fresh: {e}")
            return UserProfile()

        profile = decode_record(blob, UserProfile, key=PROFILE_KEY) or UserProfile()
        self._enforce_bounds(profile)
        return profile

    def _persist(self, profile: UserProfile) -> None:
        try:
            self.store.set(PROFILE_KEY, encode_record(profile))
        except StorageError as e:
            # In-memory profile stays authoritative for this process
            logger.error(f"Failed to persist user profile: {e}")

    def _enforce_bounds(self, profile: UserProfile) -> None:
        cfg = self.config
        profile.peak_hours = profile.peak_hours[:3]
        profile.effective_motivations = trim_fifo(
            profile.effective_motivations, cfg.max_effective_motivations
        )
        profile.ineffective_approaches = trim_fifo(
            profile.ineffective_approaches, cfg.max_ineffective_approaches
        )
        if len(profile.success_patterns) > cfg.max_success_patterns:
            # Lowest-count, oldest patterns go first
            ranked = sorted(
                profile.success_patterns,
                key=lambda p: (p.count, p.last_occurred),
                reverse=True,
            )
            profile.success_patterns = ranked[: cfg.max_success_patterns]

    def update(self, mutator: ProfileMutator) -> UserProfile:
        """
        Apply ``mutator`` to a copy of the profile and persist the result.

        The mutator may change the copy in place or return a replacement.
        Returns the new profile.
        """
        with self._lock:
            working = copy.deepcopy(self._profile)
            result = mutator(working)
            new_profile = result if result is not None else working
            new_profile.last_updated = self._clock()
            self._enforce_bounds(new_profile)
            self._profile = new_profile
            self._persist(new_profile)
            return new_profile

    def reset(self) -> None:
        with self._lock:
            self._profile = UserProfile()
            try:
                self.store.delete(PROFILE_KEY)
            except StorageError as e:
                logger.error(f"Failed to delete user profile: {e}")

    # -------------------------------------------------------------------------
    # Persona detection
    # -------------------------------------------------------------------------

    def infer_persona(
        self, sessions: Iterable[SessionRecord], now: Optional[datetime] = None
    ) -> Optional[ProductivityPersona]:
        """
        Infer the persona from the most recent sessions.

        Returns None and leaves the profile untouched when there are fewer
        sessions than ``min_sessions_for_persona``.
        """
        cfg = self.config
        now = now or self._clock()
        all_sessions = sorted((s.aligned_to(now) for s in sessions), key=lambda s: s.date)
        if len(all_sessions) < cfg.min_sessions_for_persona:
            return None

        window = all_sessions[-cfg.analysis_window_sessions:]

        average_minutes = sum(s.minutes for s in window) // len(window)
        morning = sum(1 for s in window if s.date.hour in MORNING_HOURS)
        evening = sum(1 for s in window if s.date.hour in EVENING_HOURS)

        if morning > evening * 2:
            persona = ProductivityPersona.MORNING_WARRIOR
        elif evening > morning * 2:
            persona = ProductivityPersona.NIGHT_OWL
        elif average_minutes <= 20:
            persona = ProductivityPersona.SPRINT_WORKER
        elif average_minutes >= 40:
            persona = ProductivityPersona.MARATHON_RUNNER
        else:
            persona = ProductivityPersona.FLEXIBLE_ADAPTER

        top_hours = peak_hours(window, 3)
        month_ago = now - timedelta(days=30)
        per_day = round(sum(1 for s in all_sessions if s.date >= month_ago) / 30.0, 2)

        def apply(profile: UserProfile) -> None:
            profile.persona = persona
            profile.peak_hours = top_hours
            profile.preferred_session_length = average_minutes
            profile.average_sessions_per_day = per_day
            profile.last_analyzed_at = now

        self.update(apply)
        logger.info(f"Inferred persona {persona.value} from {len(window)} sessions")
        return persona

    def refresh_if_due(self, sessions: Iterable[SessionRecord], now: Optional[datetime] = None) -> bool:
        """Re-run persona inference if the refresh interval has elapsed. Returns True if it ran."""
        now = now or self._clock()
        last = self._profile.last_analyzed_at
        interval = timedelta(hours=self.config.refresh_interval_hours)
        if last is not None and now - last < interval:
            return False
        return self.infer_persona(sessions, now) is not None

    # -------------------------------------------------------------------------
    # Learning from interactions
    # -------------------------------------------------------------------------

    def record_effective_motivation(
        self, phrase: str, context: str, engagement_type: EngagementType
    ) -> None:
        record = MotivationRecord(
            phrase=phrase,
            context=context,
            engagement_type=EngagementType(engagement_type),
            date=self._clock(),
        )
        self.update(lambda p: p.effective_motivations.append(record))

    def record_ineffective_approach(self, approach: str) -> None:
        def apply(profile: UserProfile) -> None:
            if approach not in profile.ineffective_approaches:
                profile.ineffective_approaches.append(approach)

        self.update(apply)

    def track_feature_usage(self, feature: str) -> None:
        def apply(profile: UserProfile) -> None:
            profile.feature_usage[feature] = profile.feature_usage.get(feature, 0) + 1

        self.update(apply)

    def track_task_category(self, category: str) -> None:
        def apply(profile: UserProfile) -> None:
            profile.common_task_categories[category] = (
                profile.common_task_categories.get(category, 0) + 1
            )

        self.update(apply)

    def record_goal_completion_rate(self, rate: float) -> None:
        clamped = min(max(rate, 0.0), 1.0)
        self.update(lambda p: setattr(p, "goal_completion_rate", clamped))

    def record_success_pattern(self, action: str, outcome: str, now: Optional[datetime] = None) -> SuccessPattern:
        """
        Record that ``action`` led to ``outcome`` at the current hour and weekday.

        An existing pattern with the same (hour, weekday, action) has its count
        bumped and its outcome and timestamp refreshed; otherwise a new
        pattern with count 1 is appended.
        """
        now = now or self._clock()
        key = (now.hour, now.weekday(), action)
        recorded: list[SuccessPattern] = []

        def apply(profile: UserProfile) -> None:
            for pattern in profile.success_patterns:
                if pattern.key == key:
                    pattern.count += 1
                    pattern.outcome = outcome
                    pattern.last_occurred = now
                    recorded.append(pattern)
                    return
            pattern = SuccessPattern(
                hour_of_day=now.hour,
                day_of_week=now.weekday(),
                action=action,
                outcome=outcome,
                last_occurred=now,
            )
            profile.success_patterns.append(pattern)
            recorded.append(pattern)

        self.update(apply)
        return recorded[0]

    # -------------------------------------------------------------------------
    # Context building
    # -------------------------------------------------------------------------

    def build_profile_context(self) -> str:
        profile = self._profile
        lines = ["=== USER PROFILE ==="]

        if profile.persona != ProductivityPersona.UNKNOWN:
            lines.append(f"Productivity type: {profile.persona.label}")
            lines.append(f"  -> {profile.persona.description}")

        lines.append(
            f"Response preference: {profile.response_style.value} ({profile.response_style.description})"
        )
        lines.append(f"Keep replies under {profile.response_style.max_words} words")
        lines.append(
            f"Nudges: {profile.nudge_frequency.value} "
            f"(at most {profile.nudge_frequency.max_nudges_per_day} per day)"
        )
        lines.append(f"Motivation style: {profile.motivation_style.value}")
        lines.append(f"Celebration level: {profile.celebration_preference.value}")

        if profile.peak_hours:
            lines.append(f"Peak hours: {', '.join(format_hour(h) for h in profile.peak_hours)}")
        if profile.preferred_session_length > 0:
            lines.append(f"Preferred session: {profile.preferred_session_length} min")

        if profile.effective_motivations:
            recent = [m.phrase for m in profile.effective_motivations[-3:]]
            lines.append(f"Motivations that work: {'; '.join(recent)}")
        if profile.ineffective_approaches:
            lines.append(f"Avoid: {', '.join(profile.ineffective_approaches[:3])}")

        top_patterns = sorted(profile.success_patterns, key=lambda p: p.count, reverse=True)[:3]
        if top_patterns:
            lines.append("Success patterns:")
            for pattern in top_patterns:
                lines.append(
                    f"  - {format_hour(pattern.hour_of_day)} "
                    f"{WEEKDAY_ABBREVIATIONS[pattern.day_of_week % 7]}: "
                    f"{pattern.action} -> {pattern.outcome} (x{pattern.count})"
                )

        return "\n".join(lines)
