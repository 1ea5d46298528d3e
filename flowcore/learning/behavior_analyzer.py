"""
Tool: Behavior Analyzer
Purpose: Turn a snapshot of focus sessions and tasks into classified signals

Pure analysis: no stores, no clock, no hidden state. Every function takes
the snapshot and an explicit ``now``; identical inputs always produce an
identical IntelligenceReport, which is what makes the signals unit-testable.

Signals produced:
- Performance: today's minutes vs goal, 7-day average, trend, momentum, streak
- Patterns: peak hours, best weekday, preferred session length, completion rate
- User state: activity level, estimated energy, streak risk, suggested tone
- Opportunities: goal proximity, quick wins, streak extension, peak hour, milestones
- Risks: streak at risk, overdue task, unusual inactivity, burnout

Usage:
    from flowcore.learning.behavior_analyzer import ActivitySnapshot, BehaviorAnalyzer

    snapshot = ActivitySnapshot(sessions=tuple(sessions), daily_goal_minutes=60)
    report = BehaviorAnalyzer().generate_report(snapshot, now=datetime.now())
    print(render_report(report))
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Optional

from flowcore.config_models import AnalyzerConfig
from flowcore.learning.intelligence import (
    ActivityLevel,
    BehavioralPatterns,
    EnergyLevel,
    IntelligenceReport,
    Momentum,
    Opportunity,
    OpportunityKind,
    PerformanceInsight,
    PerformanceTrend,
    RiskAlert,
    RiskKind,
    StreakRisk,
    SuggestedTone,
    UserStateInference,
)
from flowcore.models import SessionRecord, TaskRecord

# Day name mapping (Monday = 0)
DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# Energy lookup: (time-of-day bucket, sessions today capped at 3) -> level
ENERGY_TABLE: dict[tuple[str, int], EnergyLevel] = {
    ("morning", 0): EnergyLevel.HIGH,
    ("morning", 1): EnergyLevel.MEDIUM,
    ("morning", 2): EnergyLevel.MEDIUM,
    ("morning", 3): EnergyLevel.MEDIUM,
    ("afternoon", 0): EnergyLevel.MEDIUM,
    ("afternoon", 1): EnergyLevel.MEDIUM,
    ("afternoon", 2): EnergyLevel.MEDIUM,
    ("afternoon", 3): EnergyLevel.LOW,
    ("evening", 0): EnergyLevel.MEDIUM,
    ("evening", 1): EnergyLevel.MEDIUM,
    ("evening", 2): EnergyLevel.LOW,
    ("evening", 3): EnergyLevel.LOW,
    ("night", 0): EnergyLevel.LOW,
    ("night", 1): EnergyLevel.LOW,
    ("night", 2): EnergyLevel.LOW,
    ("night", 3): EnergyLevel.LOW,
}


@dataclass(frozen=True)
class ActivitySnapshot:
    """Everything the analyzer reads, captured at one instant."""

    sessions: tuple[SessionRecord, ...] = ()
    tasks: tuple[TaskRecord, ...] = ()
    completed_today: frozenset[str] = field(default_factory=frozenset)
    daily_goal_minutes: int = 60
    preferred_focus_duration: Optional[int] = None

    def aligned_to(self, now: datetime) -> ActivitySnapshot:
        """The same snapshot with timestamps comparable to ``now``."""
        return replace(
            self,
            sessions=tuple(s.aligned_to(now) for s in self.sessions),
            tasks=tuple(t.aligned_to(now) for t in self.tasks),
        )


# =============================================================================
# Building blocks
# =============================================================================

def daily_minutes(sessions: Iterable[SessionRecord]) -> dict[date, int]:
    """Focused minutes per calendar day (seconds summed, then floored)."""
    seconds: dict[date, float] = defaultdict(float)
    for session in sessions:
        seconds[session.date.date()] += session.duration_seconds
    return {day: int(total // 60) for day, total in seconds.items()}


def goal_percentage(minutes: int, goal_minutes: int) -> int:
    return (minutes * 100) // goal_minutes if goal_minutes > 0 else 0


def calculate_streak(sessions: Iterable[SessionRecord], now: datetime, limit_days: int = 365) -> int:
    """
    Consecutive calendar days with at least one session.

    Counts back from today, or from yesterday when today has no session yet
    (an unfinished today does not break the streak).
    """
    active_days = {s.date.date() for s in sessions}
    check = now.date()
    if check not in active_days:
        check -= timedelta(days=1)

    streak = 0
    for _ in range(limit_days):
        if check not in active_days:
            break
        streak += 1
        check -= timedelta(days=1)
    return streak


def detect_trend(
    sessions: Iterable[SessionRecord], now: datetime, threshold_percent: int = 20
) -> Optional[PerformanceTrend]:
    """
    Compare the last 3 days (today included) with the 3 days before.

    Returns None when the earlier window has no minutes, since a percentage
    change from zero means nothing.
    """
    per_day = daily_minutes(sessions)
    today = now.date()
    recent = sum(per_day.get(today - timedelta(days=offset), 0) for offset in range(0, 3))
    previous = sum(per_day.get(today - timedelta(days=offset), 0) for offset in range(3, 6))

    if previous <= 0:
        return None

    change = (recent - previous) * 100
    if change >= threshold_percent * previous:
        return PerformanceTrend.IMPROVING
    if change <= -threshold_percent * previous:
        return PerformanceTrend.DECLINING
    return PerformanceTrend.STABLE


def determine_momentum(
    today_percentage: int, streak: int, trend: Optional[PerformanceTrend]
) -> Momentum:
    """First matching rule wins."""
    if streak >= 7 and today_percentage >= 50:
        return Momentum.STRONG
    if streak >= 3 or (trend == PerformanceTrend.IMPROVING and today_percentage >= 25):
        return Momentum.BUILDING
    if trend == PerformanceTrend.DECLINING or (streak == 0 and today_percentage == 0):
        return Momentum.NEEDS_BOOST
    return Momentum.STEADY


def peak_hours(sessions: Iterable[SessionRecord], count: int = 3) -> list[int]:
    """
    Most frequent session-start hours.

    Ties on session count go to the hour with more total minutes, then to
    the earlier hour.
    """
    hour_counts: dict[int, int] = defaultdict(int)
    hour_seconds: dict[int, float] = defaultdict(float)
    for session in sessions:
        hour = session.date.hour
        hour_counts[hour] += 1
        hour_seconds[hour] += session.duration_seconds

    ranked = sorted(
        hour_counts,
        key=lambda h: (-hour_counts[h], -int(hour_seconds[h] // 60), h),
    )
    return ranked[:count]


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def _energy_bucket(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def estimate_energy(hour: int, today_session_count: int) -> EnergyLevel:
    return ENERGY_TABLE[(_energy_bucket(hour), min(max(today_session_count, 0), 3))]


def calculate_streak_risk(streak: int, today_percentage: int, hour: int) -> StreakRisk:
    if streak == 0 or today_percentage >= 100:
        return StreakRisk.NONE
    if hour >= 21 and today_percentage < 50:
        return StreakRisk.HIGH
    if hour >= 18 and today_percentage < 25:
        return StreakRisk.HIGH
    if hour >= 15 and today_percentage == 0:
        return StreakRisk.MEDIUM
    return StreakRisk.LOW


def determine_suggested_tone(
    activity_level: ActivityLevel, energy: EnergyLevel, streak_risk: StreakRisk
) -> SuggestedTone:
    if streak_risk == StreakRisk.HIGH:
        return SuggestedTone.URGENT
    if activity_level == ActivityLevel.VERY_ACTIVE and energy == EnergyLevel.LOW:
        # Might be pushing too hard
        return SuggestedTone.GENTLE
    if activity_level == ActivityLevel.INACTIVE:
        return SuggestedTone.ENCOURAGING
    if energy == EnergyLevel.HIGH and activity_level == ActivityLevel.ACTIVE:
        return SuggestedTone.ENERGETIC
    return SuggestedTone.SUPPORTIVE


def most_common_duration(sessions: Iterable[SessionRecord]) -> Optional[int]:
    """Most common session length, bucketed down to 5 minutes."""
    counts: dict[int, int] = defaultdict(int)
    for session in sessions:
        counts[(session.minutes // 5) * 5] += 1
    if not counts:
        return None
    return min(counts, key=lambda d: (-counts[d], d))


def hours_since_last_session(sessions: Iterable[SessionRecord], now: datetime) -> Optional[float]:
    latest = max((s.date for s in sessions), default=None)
    if latest is None:
        return None
    return max(0.0, (now - latest).total_seconds() / 3600)


def format_hour(hour: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    display = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display}{period}"


# =============================================================================
# Analyzer
# =============================================================================

class BehaviorAnalyzer:
    """
    Stateless report generator.

    The config only carries thresholds; nothing is remembered between calls.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    def generate_report(self, snapshot: ActivitySnapshot, now: datetime) -> IntelligenceReport:
        snapshot = snapshot.aligned_to(now)
        return IntelligenceReport(
            performance=self.analyze_performance(snapshot, now),
            patterns=self.detect_patterns(snapshot, now),
            user_state=self.infer_user_state(snapshot, now),
            opportunities=tuple(self.detect_opportunities(snapshot, now)),
            risks=tuple(self.detect_risks(snapshot, now)),
            generated_at=now,
        )

    # -------------------------------------------------------------------------
    # Performance
    # -------------------------------------------------------------------------

    def streak(self, snapshot: ActivitySnapshot, now: datetime) -> int:
        sessions = [s.aligned_to(now) for s in snapshot.sessions]
        return calculate_streak(sessions, now, self.config.streak_walk_limit_days)

    def analyze_performance(self, snapshot: ActivitySnapshot, now: datetime) -> PerformanceInsight:
        snapshot = snapshot.aligned_to(now)
        per_day = daily_minutes(snapshot.sessions)
        today = now.date()
        goal = snapshot.daily_goal_minutes

        today_minutes = per_day.get(today, 0)
        today_percentage = goal_percentage(today_minutes, goal)
        today_sessions = sum(1 for s in snapshot.sessions if s.date.date() == today)

        # Average over the 7 days before today
        previous_week = [per_day.get(today - timedelta(days=offset), 0) for offset in range(1, 8)]
        average = sum(previous_week) // len(previous_week)
        comparison = int((today_minutes - average) * 100 / average) if average > 0 else None

        trend = detect_trend(snapshot.sessions, now, self.config.trend_threshold_percent)
        streak = self.streak(snapshot, now)

        days_hit_goal = sum(
            1
            for offset in range(0, 7)
            if per_day.get(today - timedelta(days=offset), 0) >= goal
        )

        return PerformanceInsight(
            today_minutes=today_minutes,
            today_percentage=today_percentage,
            today_sessions=today_sessions,
            week_average_minutes=average,
            comparison_to_average=comparison,
            trend=trend,
            momentum=determine_momentum(today_percentage, streak, trend),
            days_hit_goal_this_week=days_hit_goal,
            current_streak=streak,
        )

    # -------------------------------------------------------------------------
    # Patterns
    # -------------------------------------------------------------------------

    def detect_patterns(self, snapshot: ActivitySnapshot, now: datetime) -> BehavioralPatterns:
        snapshot = snapshot.aligned_to(now)
        sessions = snapshot.sessions
        peaks = peak_hours(sessions, self.config.peak_hour_count)

        preferred = snapshot.preferred_focus_duration
        if preferred is None:
            preferred = most_common_duration(sessions)

        # Best weekday by average minutes per session
        weekday_sessions: dict[int, int] = defaultdict(int)
        weekday_minutes: dict[int, int] = defaultdict(int)
        for session in sessions:
            weekday = session.date.weekday()
            weekday_sessions[weekday] += 1
            weekday_minutes[weekday] += session.minutes
        best_day = None
        if weekday_sessions:
            best = max(
                sorted(weekday_sessions),
                key=lambda d: weekday_minutes[d] // weekday_sessions[d],
            )
            best_day = DAY_NAMES[best]

        window_start = now - timedelta(days=30)
        recent_count = sum(1 for s in sessions if s.date >= window_start)

        return BehavioralPatterns(
            peak_hours=tuple(peaks),
            is_in_peak_window=now.hour in peaks,
            preferred_duration=preferred,
            best_day_of_week=best_day,
            average_sessions_per_day=round(recent_count / 30.0, 2),
            completion_rate=self._completion_rate(snapshot, now),
        )

    def _completion_rate(self, snapshot: ActivitySnapshot, now: datetime) -> float:
        """Share of active days in the last 30 that reached the goal."""
        per_day = daily_minutes(snapshot.sessions)
        today = now.date()
        active = 0
        hit = 0
        for offset in range(0, 30):
            minutes = per_day.get(today - timedelta(days=offset), 0)
            if minutes > 0:
                active += 1
                if minutes >= snapshot.daily_goal_minutes:
                    hit += 1
        return round(hit / active, 2) if active else 0.0

    # -------------------------------------------------------------------------
    # User state
    # -------------------------------------------------------------------------

    def infer_user_state(self, snapshot: ActivitySnapshot, now: datetime) -> UserStateInference:
        snapshot = snapshot.aligned_to(now)
        today = now.date()
        today_sessions = [s for s in snapshot.sessions if s.date.date() == today]
        since_last = hours_since_last_session(snapshot.sessions, now)

        if len(today_sessions) >= 3:
            activity = ActivityLevel.VERY_ACTIVE
        elif today_sessions:
            activity = ActivityLevel.ACTIVE
        elif since_last is not None and since_last < 24:
            activity = ActivityLevel.RETURNING
        else:
            activity = ActivityLevel.INACTIVE

        energy = estimate_energy(now.hour, len(today_sessions))

        today_minutes = daily_minutes(today_sessions).get(today, 0)
        percentage = goal_percentage(today_minutes, snapshot.daily_goal_minutes)
        risk = calculate_streak_risk(self.streak(snapshot, now), percentage, now.hour)

        return UserStateInference(
            activity_level=activity,
            estimated_energy=energy,
            streak_risk=risk,
            suggested_tone=determine_suggested_tone(activity, energy, risk),
            hours_since_last_session=round(since_last, 2) if since_last is not None else None,
        )

    # -------------------------------------------------------------------------
    # Opportunities and risks
    # -------------------------------------------------------------------------

    def detect_opportunities(self, snapshot: ActivitySnapshot, now: datetime) -> list[Opportunity]:
        """Every matching opportunity, in a fixed order. Predicates are independent."""
        snapshot = snapshot.aligned_to(now)
        cfg = self.config
        opportunities: list[Opportunity] = []
        per_day = daily_minutes(snapshot.sessions)
        today = now.date()
        goal = snapshot.daily_goal_minutes

        today_minutes = per_day.get(today, 0)
        remaining = max(0, goal - today_minutes)
        percentage = goal_percentage(today_minutes, goal)

        if 75 <= percentage < 100:
            opportunities.append(
                Opportunity(OpportunityKind.GOAL_WITHIN_REACH, minutes_left=remaining)
            )
        elif 50 <= percentage < 75:
            opportunities.append(
                Opportunity(OpportunityKind.HALFWAY_TO_GOAL, minutes_left=remaining)
            )

        quick_task = next(
            (
                t
                for t in snapshot.tasks
                if 0 < t.duration_minutes <= cfg.quick_win_max_minutes
                and t.id not in snapshot.completed_today
            ),
            None,
        )
        if quick_task is not None:
            opportunities.append(
                Opportunity(OpportunityKind.QUICK_WIN_AVAILABLE, task_name=quick_task.title)
            )

        streak = self.streak(snapshot, now)
        if streak > 0 and percentage >= 100:
            opportunities.append(
                Opportunity(OpportunityKind.STREAK_EXTENSION, current_streak=streak)
            )

        peaks = peak_hours(snapshot.sessions, cfg.peak_hour_count)
        has_session_today = any(s.date.date() == today for s in snapshot.sessions)
        if now.hour in peaks and not has_session_today:
            opportunities.append(Opportunity(OpportunityKind.PEAK_HOUR_ACTIVE))

        lifetime_minutes = int(sum(s.duration_seconds for s in snapshot.sessions) // 60)
        for milestone in sorted(cfg.milestones):
            away = milestone - lifetime_minutes
            if 0 < away <= cfg.milestone_window_minutes:
                opportunities.append(
                    Opportunity(
                        OpportunityKind.MILESTONE_APPROACHING,
                        milestone=milestone,
                        minutes_away=away,
                    )
                )
                break

        return opportunities

    def detect_risks(self, snapshot: ActivitySnapshot, now: datetime) -> list[RiskAlert]:
        """Every matching risk, in a fixed order. Predicates are independent."""
        snapshot = snapshot.aligned_to(now)
        cfg = self.config
        risks: list[RiskAlert] = []
        per_day = daily_minutes(snapshot.sessions)
        today = now.date()
        hour = now.hour

        today_minutes = per_day.get(today, 0)
        percentage = goal_percentage(today_minutes, snapshot.daily_goal_minutes)
        streak = self.streak(snapshot, now)

        if (streak >= 3 and percentage < 50 and hour >= 18) or (
            streak >= 7 and percentage < 75 and hour >= 20
        ):
            risks.append(RiskAlert(RiskKind.STREAK_AT_RISK, days_at_stake=streak))

        overdue = [
            t
            for t in snapshot.tasks
            if t.reminder_date is not None
            and t.reminder_date < now
            and t.id not in snapshot.completed_today
        ]
        if overdue:
            earliest = min(overdue, key=lambda t: t.reminder_date)
            risks.append(RiskAlert(RiskKind.TASK_OVERDUE, task_name=earliest.title))

        since_last = hours_since_last_session(snapshot.sessions, now)
        if since_last is not None and since_last > cfg.inactivity_hours:
            risks.append(RiskAlert(RiskKind.UNUSUAL_INACTIVITY, hours_since=int(since_last)))

        yesterday_minutes = per_day.get(today - timedelta(days=1), 0)
        if (
            yesterday_minutes > cfg.burnout_minutes
            and today_minutes == 0
            and hour >= cfg.burnout_after_hour
        ):
            risks.append(RiskAlert(RiskKind.POTENTIAL_BURNOUT))

        return risks


def render_report(report: IntelligenceReport, max_items: int = 3) -> str:
    """Format a report as the INTELLIGENT INSIGHTS prompt section."""
    perf = report.performance
    patterns = report.patterns
    state = report.user_state

    lines = ["=== INTELLIGENT INSIGHTS ===", "", "PERFORMANCE ANALYSIS:"]

    progress = f"- Today's progress: {perf.today_percentage}%"
    if perf.comparison_to_average is not None:
        direction = "above" if perf.comparison_to_average > 0 else "below"
        progress += f" ({abs(perf.comparison_to_average)}% {direction} your average)"
    lines.append(progress)
    if perf.trend is not None:
        lines.append(f"- Trend: {perf.trend.description}")
    lines.append(f"- Momentum: {perf.momentum.description}")
    lines.append(f"- Streak: {perf.current_streak} days")

    if patterns.peak_hours or patterns.preferred_duration is not None:
        lines.extend(["", "BEHAVIORAL PATTERNS:"])
        if patterns.peak_hours:
            lines.append(f"- Peak hours: {', '.join(format_hour(h) for h in patterns.peak_hours)}")
        if patterns.preferred_duration is not None:
            lines.append(f"- Preferred session: {patterns.preferred_duration} min")
        if patterns.best_day_of_week:
            lines.append(f"- Best day: {patterns.best_day_of_week}")
        if patterns.is_in_peak_window:
            lines.append("- Currently IN peak productivity window!")

    lines.extend([
        "",
        "USER STATE:",
        f"- Activity level: {state.activity_level.description}",
        f"- Likely energy: {state.estimated_energy.description}",
        f"- Streak risk: {state.streak_risk.description}",
        f"- Suggested approach: {state.suggested_tone.description}",
    ])

    if report.opportunities:
        lines.extend(["", "OPPORTUNITIES:"])
        lines.extend(f"- {o.description}" for o in report.opportunities[:max_items])

    if report.risks:
        lines.extend(["", "RISK ALERTS:"])
        lines.extend(f"- {r.description}" for r in report.risks[:max_items])

    return "\n".join(lines)
