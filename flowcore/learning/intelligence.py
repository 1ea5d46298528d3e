"""
Intelligence Report Types

Value objects produced by the BehaviorAnalyzer. Everything here is immutable
and converts to a plain dict, so two reports built from the same snapshot
and ``now`` compare (and serialize) identically.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional


class PerformanceTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"

    @property
    def description(self) -> str:
        return {
            PerformanceTrend.IMPROVING: "Improving - activity up vs the previous days",
            PerformanceTrend.STABLE: "Stable - consistent activity",
            PerformanceTrend.DECLINING: "Declining - activity down vs the previous days",
        }[self]


class Momentum(StrEnum):
    STRONG = "strong"
    BUILDING = "building"
    STEADY = "steady"
    NEEDS_BOOST = "needs_boost"

    @property
    def description(self) -> str:
        return {
            Momentum.STRONG: "Strong - on a roll!",
            Momentum.BUILDING: "Building - gaining traction",
            Momentum.STEADY: "Steady - maintaining pace",
            Momentum.NEEDS_BOOST: "Needs boost - let's get started!",
        }[self]


class ActivityLevel(StrEnum):
    VERY_ACTIVE = "very_active"  # 3+ sessions today
    ACTIVE = "active"  # 1-2 sessions today
    RETURNING = "returning"  # none today, last one < 24h ago
    INACTIVE = "inactive"

    @property
    def description(self) -> str:
        return {
            ActivityLevel.VERY_ACTIVE: "Very active today",
            ActivityLevel.ACTIVE: "Active today",
            ActivityLevel.RETURNING: "Returning (no sessions yet today)",
            ActivityLevel.INACTIVE: "Inactive",
        }[self]


class EnergyLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def description(self) -> str:
        return {
            EnergyLevel.HIGH: "High (good time to focus)",
            EnergyLevel.MEDIUM: "Medium",
            EnergyLevel.LOW: "Low (consider a break)",
        }[self]


class StreakRisk(StrEnum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def description(self) -> str:
        return {
            StreakRisk.NONE: "None",
            StreakRisk.LOW: "Low",
            StreakRisk.MEDIUM: "Medium - keep an eye on it",
            StreakRisk.HIGH: "High - needs attention today!",
        }[self]


class SuggestedTone(StrEnum):
    ENERGETIC = "energetic"
    SUPPORTIVE = "supportive"
    ENCOURAGING = "encouraging"
    GENTLE = "gentle"
    URGENT = "urgent"

    @property
    def description(self) -> str:
        return {
            SuggestedTone.ENERGETIC: "Energetic & action-oriented",
            SuggestedTone.SUPPORTIVE: "Supportive & collaborative",
            SuggestedTone.ENCOURAGING: "Encouraging & motivating",
            SuggestedTone.GENTLE: "Gentle & understanding",
            SuggestedTone.URGENT: "Urgent but supportive",
        }[self]


class OpportunityKind(StrEnum):
    GOAL_WITHIN_REACH = "goal_within_reach"
    HALFWAY_TO_GOAL = "halfway_to_goal"
    QUICK_WIN_AVAILABLE = "quick_win_available"
    STREAK_EXTENSION = "streak_extension"
    PEAK_HOUR_ACTIVE = "peak_hour_active"
    MILESTONE_APPROACHING = "milestone_approaching"


class RiskKind(StrEnum):
    STREAK_AT_RISK = "streak_at_risk"
    TASK_OVERDUE = "task_overdue"
    UNUSUAL_INACTIVITY = "unusual_inactivity"
    POTENTIAL_BURNOUT = "potential_burnout"


@dataclass(frozen=True)
class Opportunity:
    kind: OpportunityKind
    minutes_left: Optional[int] = None
    task_name: Optional[str] = None
    current_streak: Optional[int] = None
    milestone: Optional[int] = None
    minutes_away: Optional[int] = None

    @property
    def description(self) -> str:
        if self.kind == OpportunityKind.GOAL_WITHIN_REACH:
            return f"Goal within reach - just {self.minutes_left} min left!"
        if self.kind == OpportunityKind.HALFWAY_TO_GOAL:
            return f"Halfway there - {self.minutes_left} min to goal"
        if self.kind == OpportunityKind.QUICK_WIN_AVAILABLE:
            return f"Quick win: '{self.task_name}' is a short task"
        if self.kind == OpportunityKind.STREAK_EXTENSION:
            return f"Extend your {self.current_streak}-day streak with a bonus session"
        if self.kind == OpportunityKind.PEAK_HOUR_ACTIVE:
            return "Peak productivity hour - great time to start!"
        return f"{self.milestone} min milestone is {self.minutes_away} min away!"

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class RiskAlert:
    kind: RiskKind
    days_at_stake: Optional[int] = None
    task_name: Optional[str] = None
    hours_since: Optional[int] = None

    @property
    def description(self) -> str:
        if self.kind == RiskKind.STREAK_AT_RISK:
            return f"{self.days_at_stake}-day streak at risk - need focus time today!"
        if self.kind == RiskKind.TASK_OVERDUE:
            return f"Task '{self.task_name}' is overdue"
        if self.kind == RiskKind.UNUSUAL_INACTIVITY:
            return f"No activity for {self.hours_since} hours - everything okay?"
        return "Heavy day yesterday, no activity today - take it easy if needed"

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class PerformanceInsight:
    today_minutes: int
    today_percentage: int
    today_sessions: int
    week_average_minutes: int
    comparison_to_average: Optional[int]
    trend: Optional[PerformanceTrend]
    momentum: Momentum
    days_hit_goal_this_week: int
    current_streak: int


@dataclass(frozen=True)
class BehavioralPatterns:
    peak_hours: tuple[int, ...]
    is_in_peak_window: bool
    preferred_duration: Optional[int]
    best_day_of_week: Optional[str]
    average_sessions_per_day: float
    completion_rate: float


@dataclass(frozen=True)
class UserStateInference:
    activity_level: ActivityLevel
    estimated_energy: EnergyLevel
    streak_risk: StreakRisk
    suggested_tone: SuggestedTone
    hours_since_last_session: Optional[float]


@dataclass(frozen=True)
class IntelligenceReport:
    performance: PerformanceInsight
    patterns: BehavioralPatterns
    user_state: UserStateInference
    opportunities: tuple[Opportunity, ...]
    risks: tuple[RiskAlert, ...]
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        performance = asdict(self.performance)
        performance["trend"] = self.performance.trend.value if self.performance.trend else None
        performance["momentum"] = self.performance.momentum.value

        patterns = asdict(self.patterns)
        patterns["peak_hours"] = list(self.patterns.peak_hours)

        user_state = asdict(self.user_state)
        for key in ("activity_level", "estimated_energy", "streak_risk", "suggested_tone"):
            user_state[key] = getattr(self.user_state, key).value

        return {
            "performance": performance,
            "patterns": patterns,
            "user_state": user_state,
            "opportunities": [o.to_dict() for o in self.opportunities],
            "risks": [r.to_dict() for r in self.risks],
            "generated_at": self.generated_at.isoformat(),
        }
