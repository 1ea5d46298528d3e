"""Tests for flowcore/learning/profile_learner.py

Key behaviors:
- Persona inference needs at least 10 sessions and reads the last 50
- Success patterns merge by (hour, weekday, action) and evict weakest first
- Motivation and approach lists are bounded FIFO
- The profile survives a round trip through the store
- Storage failures are logged and the in-memory profile stands
"""

from datetime import datetime, timedelta

import pytest

from flowcore.config_models import ProfileConfig
from flowcore.learning.profile_learner import (
    PROFILE_KEY,
    EngagementType,
    NudgeFrequency,
    ProductivityPersona,
    ProfileLearner,
    ResponseStyle,
)


def sessions_at(make_session, count, hour, minutes=25, start_days_ago=0):
    return [make_session(start_days_ago + i, hour=hour, minutes=minutes) for i in range(count)]


# ─────────────────────────────────────────────────────────────────────────────
# Persona inference
# ─────────────────────────────────────────────────────────────────────────────


class TestInferPersona:
    """Tests for persona classification."""

    def test_too_few_sessions_changes_nothing(self, profile_learner, store, make_session):
        """Should return None and leave the store untouched below 10 sessions."""
        result = profile_learner.infer_persona(sessions_at(make_session, 9, hour=9))

        assert result is None
        assert profile_learner.profile.persona == ProductivityPersona.UNKNOWN
        assert store.get(PROFILE_KEY) is None

    def test_morning_warrior(self, profile_learner, make_session):
        persona = profile_learner.infer_persona(sessions_at(make_session, 10, hour=9))
        assert persona == ProductivityPersona.MORNING_WARRIOR
        assert profile_learner.profile.peak_hours == [9]

    def test_night_owl(self, profile_learner, make_session):
        persona = profile_learner.infer_persona(sessions_at(make_session, 10, hour=20))
        assert persona == ProductivityPersona.NIGHT_OWL

    def test_sprint_worker(self, profile_learner, make_session):
        sessions = sessions_at(make_session, 5, hour=9, minutes=15) + sessions_at(
            make_session, 5, hour=20, minutes=15, start_days_ago=5
        )
        assert profile_learner.infer_persona(sessions) == ProductivityPersona.SPRINT_WORKER
        assert profile_learner.profile.preferred_session_length == 15

    def test_marathon_runner(self, profile_learner, make_session):
        sessions = sessions_at(make_session, 5, hour=9, minutes=45) + sessions_at(
            make_session, 5, hour=20, minutes=45, start_days_ago=5
        )
        assert profile_learner.infer_persona(sessions) == ProductivityPersona.MARATHON_RUNNER

    def test_flexible_adapter(self, profile_learner, make_session):
        sessions = sessions_at(make_session, 5, hour=9, minutes=30) + sessions_at(
            make_session, 5, hour=20, minutes=30, start_days_ago=5
        )
        assert profile_learner.infer_persona(sessions) == ProductivityPersona.FLEXIBLE_ADAPTER

    def test_midday_sessions_count_for_neither_bucket(self, profile_learner, make_session):
        sessions = sessions_at(make_session, 10, hour=14, minutes=30)
        assert profile_learner.infer_persona(sessions) == ProductivityPersona.FLEXIBLE_ADAPTER

    def test_only_last_fifty_sessions_are_read(self, profile_learner, make_session):
        """Older evening marathons fall outside the window."""
        recent = sessions_at(make_session, 50, hour=9, minutes=25)
        old = sessions_at(make_session, 10, hour=20, minutes=90, start_days_ago=50)

        persona = profile_learner.infer_persona(old + recent)

        assert persona == ProductivityPersona.MORNING_WARRIOR
        assert profile_learner.profile.preferred_session_length == 25

    def test_records_analysis_time(self, profile_learner, now, make_session):
        profile_learner.infer_persona(sessions_at(make_session, 10, hour=9))
        assert profile_learner.profile.last_analyzed_at == now
        assert profile_learner.profile.average_sessions_per_day == pytest.approx(0.33)


class TestRefreshIfDue:
    """Tests for interval-gated persona refresh."""

    def test_runs_when_never_analyzed(self, profile_learner, now, make_session):
        assert profile_learner.refresh_if_due(sessions_at(make_session, 10, hour=9), now) is True

    def test_skips_within_interval(self, profile_learner, now, make_session):
        sessions = sessions_at(make_session, 10, hour=9)
        profile_learner.infer_persona(sessions, now)

        assert profile_learner.refresh_if_due(sessions, now + timedelta(hours=1)) is False
        assert profile_learner.refresh_if_due(sessions, now + timedelta(hours=7)) is True
        assert profile_learner.profile.last_analyzed_at == now + timedelta(hours=7)

    def test_due_but_too_few_sessions(self, profile_learner, now, make_session):
        assert profile_learner.refresh_if_due(sessions_at(make_session, 3, hour=9), now) is False


# ─────────────────────────────────────────────────────────────────────────────
# Success patterns
# ─────────────────────────────────────────────────────────────────────────────


class TestSuccessPatterns:
    """Tests for merge-by-key and bounded eviction."""

    def test_same_key_merges(self, profile_learner, now):
        profile_learner.record_success_pattern("start_focus", "started", now)
        later = now + timedelta(minutes=20)
        merged = profile_learner.record_success_pattern("start_focus", "completed", later)

        patterns = profile_learner.profile.success_patterns
        assert len(patterns) == 1
        assert merged.count == 2
        assert patterns[0].outcome == "completed"
        assert patterns[0].last_occurred == later

    def test_different_hour_is_separate(self, profile_learner, now):
        profile_learner.record_success_pattern("start_focus", "completed", now)
        profile_learner.record_success_pattern("start_focus", "completed", now + timedelta(hours=1))
        assert len(profile_learner.profile.success_patterns) == 2

    def test_no_duplicate_keys(self, profile_learner, now):
        for i in range(10):
            profile_learner.record_success_pattern(f"action_{i % 3}", "ok", now)
        keys = [p.key for p in profile_learner.profile.success_patterns]
        assert len(keys) == len(set(keys)) == 3

    def test_overflow_evicts_lowest_count_then_oldest(self, store, now):
        learner = ProfileLearner(store, ProfileConfig(max_success_patterns=3), clock=lambda: now)
        learner.record_success_pattern("a", "ok", now)
        learner.record_success_pattern("b", "ok", now + timedelta(minutes=1))
        learner.record_success_pattern("c", "ok", now + timedelta(minutes=2))
        learner.record_success_pattern("a", "ok", now + timedelta(minutes=3))
        learner.record_success_pattern("d", "ok", now + timedelta(minutes=4))

        actions = sorted(p.action for p in learner.profile.success_patterns)
        assert actions == ["a", "c", "d"]


# ─────────────────────────────────────────────────────────────────────────────
# Motivations, approaches, usage
# ─────────────────────────────────────────────────────────────────────────────


class TestInteractionLearning:
    """Tests for bounded interaction records."""

    def test_motivations_are_fifo_bounded(self, profile_learner):
        for i in range(35):
            profile_learner.record_effective_motivation(
                f"phrase {i}", "morning", EngagementType.STARTED_SESSION
            )
        motivations = profile_learner.profile.effective_motivations
        assert len(motivations) == 30
        assert motivations[0].phrase == "phrase 5"
        assert motivations[-1].phrase == "phrase 34"

    def test_ineffective_approaches_dedup(self, profile_learner):
        profile_learner.record_ineffective_approach("long lectures")
        profile_learner.record_ineffective_approach("long lectures")
        assert profile_learner.profile.ineffective_approaches == ["long lectures"]

    def test_ineffective_approaches_bounded(self, profile_learner):
        for i in range(25):
            profile_learner.record_ineffective_approach(f"approach {i}")
        approaches = profile_learner.profile.ineffective_approaches
        assert len(approaches) == 20
        assert approaches[0] == "approach 5"

    def test_feature_usage_counts(self, profile_learner):
        for _ in range(3):
            profile_learner.track_feature_usage("start_focus")
        profile_learner.track_feature_usage("create_task")
        assert profile_learner.profile.feature_usage == {"start_focus": 3, "create_task": 1}

    def test_task_categories(self, profile_learner):
        profile_learner.track_task_category("email")
        profile_learner.track_task_category("email")
        assert profile_learner.profile.common_task_categories == {"email": 2}

    def test_goal_completion_rate_is_clamped(self, profile_learner):
        profile_learner.record_goal_completion_rate(1.4)
        assert profile_learner.profile.goal_completion_rate == 1.0

    def test_update_sets_last_updated(self, profile_learner, now):
        profile_learner.track_feature_usage("x")
        assert profile_learner.profile.last_updated == now

    def test_mutator_may_return_replacement(self, profile_learner):
        def swap(profile):
            profile.response_style = ResponseStyle.DETAILED
            return profile

        result = profile_learner.update(swap)
        assert result is profile_learner.profile
        assert profile_learner.profile.response_style == ResponseStyle.DETAILED


# ─────────────────────────────────────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────────────────────────────────────


class TestPersistence:
    """Tests for storage round trips and failures."""

    def test_profile_survives_reload(self, store, now, make_session):
        first = ProfileLearner(store, clock=lambda: now)
        first.infer_persona(sessions_at(make_session, 10, hour=20))
        first.record_success_pattern("start_focus", "completed", now)
        first.record_effective_motivation("You got this", "evening", EngagementType.COMPLETED_GOAL)

        second = ProfileLearner(store, clock=lambda: now)
        assert second.profile.to_dict() == first.profile.to_dict()
        assert second.profile.persona == ProductivityPersona.NIGHT_OWL

    def test_corrupt_blob_starts_fresh(self, store, now):
        store.set(PROFILE_KEY, b"{not json")
        learner = ProfileLearner(store, clock=lambda: now)
        assert learner.profile.persona == ProductivityPersona.UNKNOWN

    def test_write_failure_keeps_memory_state(self, failing_store, now):
        learner = ProfileLearner(failing_store, clock=lambda: now)
        learner.track_feature_usage("start_focus")
        assert learner.profile.feature_usage == {"start_focus": 1}

    def test_reset(self, profile_learner, store):
        profile_learner.track_feature_usage("start_focus")
        assert store.get(PROFILE_KEY) is not None

        profile_learner.reset()

        assert store.get(PROFILE_KEY) is None
        assert profile_learner.profile.feature_usage == {}


# ─────────────────────────────────────────────────────────────────────────────
# Context rendering
# ─────────────────────────────────────────────────────────────────────────────


class TestBuildProfileContext:
    """Tests for the USER PROFILE prompt section."""

    def test_fresh_profile(self, profile_learner):
        text = profile_learner.build_profile_context()
        assert text.startswith("=== USER PROFILE ===")
        assert "Productivity type" not in text
        assert "Response preference: concise (Short, to-the-point responses)" in text
        assert "Keep replies under 30 words" in text
        assert "Nudges: moderate (at most 5 per day)" in text

    def test_detailed_style_and_minimal_nudges(self, profile_learner):
        def apply(profile):
            profile.response_style = ResponseStyle.DETAILED
            profile.nudge_frequency = NudgeFrequency.MINIMAL

        profile_learner.update(apply)
        text = profile_learner.build_profile_context()

        assert "Keep replies under 75 words" in text
        assert "Nudges: minimal (at most 2 per day)" in text

    def test_learned_profile(self, profile_learner, now, make_session):
        profile_learner.infer_persona(sessions_at(make_session, 10, hour=9))
        profile_learner.record_success_pattern("start_focus", "completed", now)
        profile_learner.record_ineffective_approach("guilt trips")

        text = profile_learner.build_profile_context()

        assert "Productivity type: Morning Warrior" in text
        assert "Peak hours: 9AM" in text
        assert "Avoid: guilt trips" in text
        assert "  - 2PM Wed: start_focus -> completed (x1)" in text

    def test_persona_session_hints(self):
        assert ProductivityPersona.SPRINT_WORKER.suggested_session_minutes == 15
        assert ProductivityPersona.MARATHON_RUNNER.suggested_session_minutes == 45
        assert ProductivityPersona.NIGHT_OWL.suggested_session_minutes is None
