"""
Tool: Context Assembler
Purpose: Public entry point that builds the assistant's system prompt

Composes the cached tiers, a freshly computed intelligence section and the
live focus state into one bounded prompt, and routes write-path events
(conversation outcomes, feedback, executed actions) into MemoryStore and
ProfileLearner.

Read path:
    build_context() -> FULL tier -> header + settings + progress
        + intelligence (fresh) + task + preset + memory + focus state

Write path:
    record_conversation_outcome / record_feedback / learn_from_action
        -> MemoryStore / ProfileLearner -> invalidate MEMORY (cascades to FULL)

Usage:
    from flowcore.context.assembler import ContextAssembler

    assembler = ContextAssembler.from_config(
        sessions=sessions, tasks=tasks, presets=presets, settings=settings,
    )
    prompt = assembler.build_context()
    assembler.record_feedback(positive=True)
    assembler.close()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Optional, TypeVar

from flowcore import PROJECT_ROOT
from flowcore.config_models import EngineConfig, load_config
from flowcore.context.cache import CacheTier, ContextCache, ttls_from_config
from flowcore.context.invalidation import InvalidationWiring
from flowcore.context.sections import (
    build_focus_state_section,
    build_header,
    build_preset_section,
    build_progress_section,
    build_settings_section,
    build_task_section,
    truncate,
)
from flowcore.learning.behavior_analyzer import ActivitySnapshot, BehaviorAnalyzer, render_report
from flowcore.learning.intelligence import IntelligenceReport
from flowcore.learning.profile_learner import ProfileLearner
from flowcore.memory.records import ConversationSatisfaction
from flowcore.memory.store import MemoryStore
from flowcore.models import ActionContext, SettingsSnapshot
from flowcore.sources import (
    FocusStateSource,
    PresetSource,
    SessionSource,
    SettingsSource,
    StaticFocusStateSource,
    TaskSource,
)
from flowcore.storage import InMemoryStore, PersistentStore, SqliteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_store(config: EngineConfig) -> PersistentStore:
    """Instantiate the configured storage backend."""
    if config.storage.backend == "memory":
        return InMemoryStore()
    path = Path(config.storage.path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return SqliteStore(path)


class ContextAssembler:
    """
    Builds the prompt and records interaction outcomes.

    Construct with explicit collaborators (tests do this) or through
    ``from_config()``. Construction counts one app launch in MemoryStore.

    Args:
        sessions, tasks, presets, settings: Live data sources.
        memory: Long-horizon memory store.
        profile: Persona/profile learner.
        analyzer: Report generator; defaults to one built from ``config``.
        focus: Live focus-session state; defaults to "nothing running".
        config: Engine configuration; defaults to built-in defaults.
        clock: Local wall clock used for all "now" decisions.
        monotonic: Clock used for cache TTLs.
    """

    def __init__(
        self,
        sessions: SessionSource,
        tasks: TaskSource,
        presets: PresetSource,
        settings: SettingsSource,
        memory: MemoryStore,
        profile: ProfileLearner,
        analyzer: Optional[BehaviorAnalyzer] = None,
        focus: Optional[FocusStateSource] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EngineConfig()
        self.sessions = sessions
        self.tasks = tasks
        self.presets = presets
        self.settings = settings
        self.focus = focus or StaticFocusStateSource()
        self.memory = memory
        self.profile = profile
        self.analyzer = analyzer or BehaviorAnalyzer(self.config.analyzer)
        self._clock = clock

        self.cache = ContextCache(
            builders={
                CacheTier.TASK: self._build_task_tier,
                CacheTier.PROGRESS: self._build_progress_tier,
                CacheTier.PRESET: self._build_preset_tier,
                CacheTier.MEMORY: self._build_memory_tier,
                CacheTier.FULL: self._build_full_context,
            },
            ttls=ttls_from_config(self.config.cache.ttl),
            clock=monotonic,
        )
        self.invalidation = InvalidationWiring(
            self.cache,
            sessions,
            tasks,
            presets,
            debounce_seconds=self.config.invalidation.debounce_ms / 1000.0,
        )
        self.invalidation.add_listener("sessions", self._on_sessions_changed)

        self.memory.record_app_launch(self._clock())

    @classmethod
    def from_config(
        cls,
        sessions: SessionSource,
        tasks: TaskSource,
        presets: PresetSource,
        settings: SettingsSource,
        focus: Optional[FocusStateSource] = None,
        config: Optional[EngineConfig] = None,
        config_path: Optional[Path] = None,
        store: Optional[PersistentStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> ContextAssembler:
        """Composition root: load config, open storage, wire everything."""
        config = config or load_config(config_path)
        store = store or create_store(config)
        return cls(
            sessions=sessions,
            tasks=tasks,
            presets=presets,
            settings=settings,
            memory=MemoryStore(store, config.memory, clock=clock),
            profile=ProfileLearner(store, config.profile, clock=clock),
            analyzer=BehaviorAnalyzer(config.analyzer),
            focus=focus,
            config=config,
            clock=clock,
        )

    def close(self) -> None:
        self.invalidation.close()
        self.memory.store.close()

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def build_context(self) -> str:
        """The full system prompt, at most ``context.max_characters`` long."""
        return self.cache.get(CacheTier.FULL)

    def invalidate_cache(self) -> None:
        self.cache.invalidate_all()

    def snapshot(self, now: Optional[datetime] = None) -> ActivitySnapshot:
        """
        Read every source once. A source that fails is logged and read as
        empty (or default settings), so reports degrade instead of raising.
        """
        now = now or self._clock()
        today = now.date()
        tasks = self._read("tasks", lambda: tuple(self.tasks.current_tasks()), ())
        return ActivitySnapshot(
            sessions=self._read("sessions", lambda: tuple(self.sessions.current_sessions()), ()),
            tasks=tasks,
            completed_today=self._read(
                "task completions",
                lambda: frozenset(t.id for t in tasks if self.tasks.is_completed(t.id, today)),
                frozenset(),
            ),
            daily_goal_minutes=self._read(
                "settings",
                lambda: self.settings.current().daily_goal_minutes,
                SettingsSnapshot().daily_goal_minutes,
            ),
            preferred_focus_duration=self.memory.preferred_focus_duration(),
        )

    @staticmethod
    def _read(what: str, read: Callable[[], T], default: T) -> T:
        try:
            return read()
        except Exception as e:
            logger.warning(f"Failed to read {what}, continuing without it: {e}")
            return default

    def generate_intelligence_report(self, now: Optional[datetime] = None) -> IntelligenceReport:
        now = now or self._clock()
        return self.analyzer.generate_report(self.snapshot(now), now)

    def _build_task_tier(self) -> str:
        return build_task_section(self.tasks.current_tasks(), self.tasks.is_completed, self._clock())

    def _build_progress_tier(self) -> str:
        return build_progress_section(
            self.sessions.current_sessions(),
            self.settings.current().daily_goal_minutes,
            self._clock(),
            self.config.analyzer.streak_walk_limit_days,
        )

    def _build_preset_tier(self) -> str:
        return build_preset_section(self.presets.current_presets(), self.presets.active_preset_id)

    def _build_memory_tier(self) -> str:
        sessions = self.sessions.current_sessions()
        return "\n\n".join([
            self.profile.build_profile_context(),
            self.memory.build_memory_context(sessions),
        ])

    def _build_intelligence_section(self, now: datetime) -> str:
        try:
            report = self.generate_intelligence_report(now)
            return render_report(report, self.config.analyzer.max_signals_rendered)
        except Exception as e:
            logger.warning(f"Failed to build intelligence section: {e}")
            return ""

    def _build_focus_section(self) -> str:
        try:
            return build_focus_state_section(self.focus.current())
        except Exception as e:
            logger.warning(f"Failed to read focus state: {e}")
            return ""

    def _build_full_context(self) -> str:
        now = self._clock()
        ctx = self.config.context
        settings = self.settings.current()

        sections = [
            build_header(settings, now, ctx.assistant_name, ctx.app_name),
            build_settings_section(settings),
            self.cache.get(CacheTier.PROGRESS),
            self._build_intelligence_section(now),
            self.cache.get(CacheTier.TASK),
            self.cache.get(CacheTier.PRESET),
            self.cache.get(CacheTier.MEMORY),
            self._build_focus_section(),
        ]
        return truncate("\n\n".join(s for s in sections if s), ctx.max_characters)

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def record_conversation_outcome(
        self,
        intent: str,
        actions_executed: Iterable[str] = (),
        satisfaction: Optional[ConversationSatisfaction] = None,
        response_text: str = "",
    ) -> None:
        actions = list(actions_executed)
        self.memory.record_conversation_summary(
            user_intent=intent,
            ai_response=response_text,
            actions_executed=actions,
            satisfaction=satisfaction,
            now=self._clock(),
        )
        if satisfaction == ConversationSatisfaction.POSITIVE:
            now = self._clock()
            for action in actions:
                self.profile.record_success_pattern(action, "positive conversation", now)
        self.cache.invalidate(CacheTier.MEMORY)

    def record_feedback(self, positive: bool) -> None:
        self.memory.record_feedback(positive)
        self.cache.invalidate(CacheTier.MEMORY)

    def learn_from_action(self, action: str, context: Optional[ActionContext] = None) -> None:
        context = context or ActionContext()
        now = self._clock()
        self.memory.learn_from_action(action, context, now)
        self.profile.track_feature_usage(action)
        if context.task_type:
            self.profile.track_task_category(context.task_type)
        if context.was_successful:
            self.profile.record_success_pattern(action, "completed", now)
        self.cache.invalidate(CacheTier.MEMORY)

    def _on_sessions_changed(self) -> None:
        """Runs after the debounced session invalidation."""
        now = self._clock()
        sessions = self.sessions.current_sessions()
        self.memory.record_streak(self.analyzer.streak(ActivitySnapshot(sessions=tuple(sessions)), now))
        self.profile.refresh_if_due(sessions, now)
        self.cache.invalidate(CacheTier.MEMORY)
