"""
Tool: Memory Store
Purpose: Long-horizon memory of how the user works with the assistant

Owns four persisted aggregates:
- Memory: counters, motivation style, learned facts/goals/challenges
- LearnedPatterns: which actions run when, preferred focus durations
- ConversationSummary list (last 50)
- SessionInsight list (last 100)

Every mutation goes through ``update()`` (or its patterns/list
counterparts): the change is applied to a copy under the store lock, the
copy is swapped in, and the blob is written before the lock is released.
Bounded collections are trimmed on every write and again on load.

Usage:
    from flowcore.memory import MemoryStore
    from flowcore.storage import SqliteStore

    memory = MemoryStore(SqliteStore("data/flowcore.db"))
    memory.record_app_launch()
    memory.learn_from_action("start_focus", ActionContext(duration=25))
    print(memory.build_memory_context(sessions))
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Optional

from flowcore.config_models import MemoryLimitsConfig
from flowcore.learning.behavior_analyzer import format_hour, peak_hours
from flowcore.memory.records import (
    ConversationSatisfaction,
    ConversationSummary,
    LearnedPatterns,
    Memory,
    MotivationStyle,
    SessionInsight,
    trim_fifo,
)
from flowcore.models import ActionContext, SessionRecord
from flowcore.storage import (
    PersistentStore,
    StorageError,
    decode_list,
    decode_record,
    encode_list,
    encode_record,
)

logger = logging.getLogger(__name__)

MEMORY_KEY = "flow_memory_v3"
PATTERNS_KEY = "flow_learned_patterns_v2"
SUMMARIES_KEY = "flow_conversation_summaries_v2"
INSIGHTS_KEY = "flow_session_insights"
LEGACY_MEMORY_KEY = "flow_memory_v1"

# Feedback ratio thresholds for motivation style
DIRECT_BELOW_RATIO = 0.5
ENCOURAGING_ABOVE_RATIO = 0.8

MemoryMutator = Callable[[Memory], Optional[Memory]]


def format_action_name(action: str) -> str:
    return action.replace("_", " ").title()


class MemoryStore:
    """
    Persisted memory for one user.

    Args:
        store: Blob store backing all four aggregates.
        limits: Collection bounds; defaults match args/flowcore.yaml.
        clock: Returns the current local time; injectable for tests.
    """

    def __init__(
        self,
        store: PersistentStore,
        limits: Optional[MemoryLimitsConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.limits = limits or MemoryLimitsConfig()
        self._clock = clock
        self._lock = threading.RLock()

        self._memory = self._load_memory()
        self._patterns = self._read(PATTERNS_KEY, decode_record, LearnedPatterns) or LearnedPatterns()
        self._summaries: list[ConversationSummary] = (
            self._read(SUMMARIES_KEY, decode_list, ConversationSummary) or []
        )
        self._insights: list[SessionInsight] = (
            self._read(INSIGHTS_KEY, decode_list, SessionInsight) or []
        )
        self._enforce_bounds()

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def patterns(self) -> LearnedPatterns:
        return self._patterns

    @property
    def conversation_summaries(self) -> list[ConversationSummary]:
        return list(self._summaries)

    @property
    def session_insights(self) -> list[SessionInsight]:
        return list(self._insights)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _read(self, key: str, decoder: Callable[..., Any], cls: type) -> Any:
        try:
            blob = self.store.get(key)
        except StorageError as e:
            logger.warning(f"Could not read '{key}', starting from defaults: {e}")
            return None
        return decoder(blob, cls, key=key)

    def _load_memory(self) -> Memory:
        current = self._read(MEMORY_KEY, decode_record, Memory)
        legacy = self._read(LEGACY_MEMORY_KEY, decode_record, Memory)

        if legacy is not None:
            if current is None:
                logger.info(f"Migrating memory from '{LEGACY_MEMORY_KEY}' to '{MEMORY_KEY}'")
                current = legacy
                self._write(MEMORY_KEY, encode_record(current))
            self._delete(LEGACY_MEMORY_KEY)

        return current or Memory()

    def _write(self, key: str, blob: bytes) -> None:
        try:
            self.store.set(key, blob)
        except StorageError as e:
            # In-memory state stays authoritative for this process
            logger.error(f"Failed to persist '{key}': {e}")

    def _delete(self, key: str) -> None:
        try:
            self.store.delete(key)
        except StorageError as e:
            logger.error(f"Failed to delete '{key}': {e}")

    def _trim_memory(self, memory: Memory) -> None:
        limits = self.limits
        memory.learned_facts = trim_fifo(memory.learned_facts, limits.max_learned_facts)
        memory.user_goals = trim_fifo(memory.user_goals, limits.max_user_goals)
        memory.user_challenges = trim_fifo(memory.user_challenges, limits.max_user_challenges)
        memory.recent_goals = trim_fifo(memory.recent_goals, limits.max_recent_goals)

    def _enforce_bounds(self) -> None:
        self._trim_memory(self._memory)
        self._patterns.preferred_focus_durations = trim_fifo(
            self._patterns.preferred_focus_durations, self.limits.max_focus_durations
        )
        self._summaries = trim_fifo(self._summaries, self.limits.max_conversation_summaries)
        self._insights = trim_fifo(self._insights, self.limits.max_session_insights)

    # -------------------------------------------------------------------------
    # Mutation choke points
    # -------------------------------------------------------------------------

    def update(self, mutator: MemoryMutator) -> Memory:
        """
        Apply ``mutator`` to a copy of the memory and persist the result.

        The mutator may change the copy in place or return a replacement.
        Returns the new memory.
        """
        with self._lock:
            working = copy.deepcopy(self._memory)
            result = mutator(working)
            new_memory = result if result is not None else working
            self._trim_memory(new_memory)
            self._memory = new_memory
            self._write(MEMORY_KEY, encode_record(new_memory))
            return new_memory

    def _update_patterns(self, mutator: Callable[[LearnedPatterns], None]) -> LearnedPatterns:
        with self._lock:
            working = copy.deepcopy(self._patterns)
            mutator(working)
            working.preferred_focus_durations = trim_fifo(
                working.preferred_focus_durations, self.limits.max_focus_durations
            )
            self._patterns = working
            self._write(PATTERNS_KEY, encode_record(working))
            return working

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def record_app_launch(self, now: Optional[datetime] = None) -> Memory:
        """Count one app launch. Call once per process start."""
        now = now or self._clock()

        def apply(memory: Memory) -> None:
            memory.last_session_date = now
            memory.total_sessions += 1

        return self.update(apply)

    def record_streak(self, streak: int) -> Memory:
        """Raise ``longest_streak`` if ``streak`` beats it."""

        def apply(memory: Memory) -> None:
            memory.longest_streak = max(memory.longest_streak, streak)

        return self.update(apply)

    def clear_all(self) -> None:
        """Forget everything (privacy reset)."""
        with self._lock:
            self._memory = Memory()
            self._patterns = LearnedPatterns()
            self._summaries = []
            self._insights = []
            for key in (MEMORY_KEY, PATTERNS_KEY, SUMMARIES_KEY, INSIGHTS_KEY):
                self._delete(key)
        logger.info("Cleared all assistant memory")

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def learn_from_action(
        self,
        action: str,
        context: Optional[ActionContext] = None,
        now: Optional[datetime] = None,
    ) -> LearnedPatterns:
        """Update action histograms (and focus duration preference) for an executed action."""
        context = context or ActionContext()
        now = now or self._clock()
        hour = now.hour
        weekday = now.weekday()

        def apply(patterns: LearnedPatterns) -> None:
            patterns.action_frequency[action] = patterns.action_frequency.get(action, 0) + 1

            hourly = patterns.hourly_action_patterns.setdefault(hour, {})
            hourly[action] = hourly.get(action, 0) + 1

            daily = patterns.day_of_week_patterns.setdefault(weekday, {})
            daily[action] = daily.get(action, 0) + 1

            if action == "start_focus" and context.duration:
                patterns.preferred_focus_durations.append(context.duration)

            if action == "create_task" and context.task_type:
                patterns.common_task_types[context.task_type] = (
                    patterns.common_task_types.get(context.task_type, 0) + 1
                )

        with self._lock:
            patterns = self._update_patterns(apply)
            if action == "start_focus" and context.duration:
                durations = patterns.preferred_focus_durations
                average = sum(durations) // len(durations)
                self.update(lambda m: setattr(m, "preferred_focus_duration", average))
        return patterns

    def record_feedback(self, positive: bool) -> Memory:
        """
        Count a thumbs up/down and retune the motivation style.

        A positive ratio below 0.5 switches to direct, above 0.8 to
        encouraging; in between the current style is kept.
        """

        def apply(memory: Memory) -> None:
            if positive:
                memory.positive_interactions += 1
            else:
                memory.negative_interactions += 1

            ratio = memory.positive_ratio
            if ratio < DIRECT_BELOW_RATIO:
                memory.motivation_style = MotivationStyle.DIRECT
            elif ratio > ENCOURAGING_ABOVE_RATIO:
                memory.motivation_style = MotivationStyle.ENCOURAGING

        return self.update(apply)

    def record_conversation_summary(
        self,
        user_intent: str,
        ai_response: str = "",
        actions_executed: Iterable[str] = (),
        satisfaction: Optional[ConversationSatisfaction] = None,
        now: Optional[datetime] = None,
    ) -> ConversationSummary:
        summary = ConversationSummary(
            date=now or self._clock(),
            user_intent=user_intent,
            ai_response_summary=ai_response[: self.limits.response_summary_chars],
            actions_executed=list(actions_executed),
            satisfaction=ConversationSatisfaction(satisfaction) if satisfaction else None,
        )

        with self._lock:
            summaries = trim_fifo(
                self._summaries + [summary], self.limits.max_conversation_summaries
            )
            self._summaries = summaries
            self._write(SUMMARIES_KEY, encode_list(summaries))

            def bump(memory: Memory) -> None:
                memory.total_conversations += 1

            self.update(bump)
        return summary

    def record_insight(self, insight: SessionInsight) -> None:
        with self._lock:
            insights = trim_fifo(self._insights + [insight], self.limits.max_session_insights)
            self._insights = insights
            self._write(INSIGHTS_KEY, encode_list(insights))

    def _learn_unique(self, field_name: str, value: str) -> Memory:
        value = value.strip()
        if not value:
            return self._memory

        def apply(memory: Memory) -> None:
            items: list[str] = getattr(memory, field_name)
            if value not in items:
                items.append(value)

        return self.update(apply)

    def learn_user_name(self, name: str) -> Memory:
        name = name.strip()
        if not name:
            return self._memory
        return self.update(lambda m: setattr(m, "user_name", name))

    def learn_fact(self, fact: str) -> Memory:
        return self._learn_unique("learned_facts", fact)

    def learn_goal(self, goal: str) -> Memory:
        return self._learn_unique("user_goals", goal)

    def learn_challenge(self, challenge: str) -> Memory:
        return self._learn_unique("user_challenges", challenge)

    def add_recent_goal(self, goal: str) -> Memory:
        return self._learn_unique("recent_goals", goal)

    # -------------------------------------------------------------------------
    # Derived helpers
    # -------------------------------------------------------------------------

    def peak_productivity_hours(self, sessions: Iterable[SessionRecord]) -> list[int]:
        return peak_hours(sessions, 3)

    def most_used_actions(self, limit: int = 5) -> list[str]:
        frequency = self._patterns.action_frequency
        ranked = sorted(frequency, key=lambda a: (-frequency[a], a))
        return ranked[:limit]

    def suggested_action_for_hour(self, hour: int) -> Optional[str]:
        actions = self._patterns.hourly_action_patterns.get(hour)
        if not actions:
            return None
        return min(actions, key=lambda a: (-actions[a], a))

    def preferred_focus_duration(self) -> Optional[int]:
        durations = self._patterns.preferred_focus_durations
        if not durations:
            return None
        return sum(durations) // len(durations)

    @property
    def is_returning_user(self) -> bool:
        return self._memory.total_sessions > 1

    def days_since_last_session(self, now: Optional[datetime] = None) -> Optional[int]:
        last = self._memory.last_session_date
        if last is None:
            return None
        return max(0, ((now or self._clock()) - last).days)

    def personalized_greeting(self, now: Optional[datetime] = None, assistant_name: str = "Flow") -> str:
        hour = (now or self._clock()).hour
        if hour < 12:
            time_greeting = "Good morning"
        elif hour < 17:
            time_greeting = "Good afternoon"
        else:
            time_greeting = "Good evening"

        memory = self._memory
        if memory.user_name:
            return f"{time_greeting}, {memory.user_name}!"
        if memory.total_conversations > 10:
            return f"{time_greeting}! Great to see you back."
        if memory.total_conversations > 0:
            return f"{time_greeting}! Welcome back."
        return f"{time_greeting}! I'm {assistant_name}, your AI assistant."

    def build_memory_context(self, sessions: Iterable[SessionRecord]) -> str:
        """Render the USER MEMORY prompt section."""
        memory = self._memory
        lines = [
            "=== USER MEMORY ===",
            f"Conversations so far: {memory.total_conversations}",
            f"Positive interactions: {memory.positive_interactions}",
            f"Motivation style preference: {memory.motivation_style.display_name}",
        ]

        if memory.user_name:
            lines.append(f"Name: {memory.user_name}")
        if memory.preferred_focus_duration is not None:
            lines.append(f"Preferred focus duration: {memory.preferred_focus_duration} minutes")

        hours = self.peak_productivity_hours(sessions)
        if hours:
            lines.append(f"Peak productivity hours: {', '.join(format_hour(h) for h in hours)}")
        if memory.longest_streak > 0:
            lines.append(f"Longest streak: {memory.longest_streak} days")

        if memory.recent_goals:
            lines.append(f"Recent goals mentioned: {', '.join(memory.recent_goals[:3])}")
        if memory.user_goals:
            lines.append(f"Goals: {'; '.join(memory.user_goals[-3:])}")
        if memory.user_challenges:
            lines.append(f"Challenges: {'; '.join(memory.user_challenges[-3:])}")
        if memory.learned_facts:
            lines.append(f"Known facts: {'; '.join(memory.learned_facts[-5:])}")

        topics = [s.user_intent for s in self._summaries[-5:]]
        if topics:
            lines.append(f"Recent conversation topics: {'; '.join(topics)}")

        top_actions = self.most_used_actions(3)
        if top_actions:
            lines.append(f"Most used features: {', '.join(format_action_name(a) for a in top_actions)}")

        return "\n".join(lines)
