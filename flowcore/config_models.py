from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from flowcore import CONFIG_PATH, DATA_DIR

logger = logging.getLogger(__name__)


# =============================================================================
# Context cache (args/flowcore.yaml -> cache)
# =============================================================================

class CacheTTLConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    task_seconds: float = Field(default=30.0, gt=0)
    progress_seconds: float = Field(default=60.0, gt=0)
    preset_seconds: float = Field(default=120.0, gt=0)
    memory_seconds: float = Field(default=180.0, gt=0)
    full_seconds: float = Field(default=15.0, gt=0)

    @model_validator(mode="after")
    def check_ordering(self) -> "CacheTTLConfig":
        # full <= task < progress < preset < memory
        if not (
            self.full_seconds <= self.task_seconds
            < self.progress_seconds
            < self.preset_seconds
            < self.memory_seconds
        ):
            raise ValueError(
                "cache TTLs must satisfy full <= task < progress < preset < memory, got "
                f"full={self.full_seconds} task={self.task_seconds} "
                f"progress={self.progress_seconds} preset={self.preset_seconds} "
                f"memory={self.memory_seconds}"
            )
        return self


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    ttl: CacheTTLConfig = Field(default_factory=CacheTTLConfig)


class InvalidationConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    debounce_ms: int = Field(default=100, ge=0)


# =============================================================================
# Behavior analysis
# =============================================================================

class AnalyzerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    trend_threshold_percent: int = Field(default=20, ge=1)
    streak_walk_limit_days: int = Field(default=365, ge=1)
    quick_win_max_minutes: int = Field(default=15, ge=1)
    milestones: list[int] = Field(default_factory=lambda: [100, 500, 1000, 2500, 5000, 10000])
    milestone_window_minutes: int = Field(default=30, ge=1)
    inactivity_hours: float = Field(default=48.0, gt=0)
    burnout_minutes: int = Field(default=180, ge=1)
    burnout_after_hour: int = Field(default=12, ge=0, le=23)
    peak_hour_count: int = Field(default=3, ge=1, le=24)
    max_signals_rendered: int = Field(default=3, ge=1)


# =============================================================================
# Memory and profile learning
# =============================================================================

class MemoryLimitsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_learned_facts: int = Field(default=20, ge=1)
    max_user_goals: int = Field(default=10, ge=1)
    max_user_challenges: int = Field(default=10, ge=1)
    max_recent_goals: int = Field(default=10, ge=1)
    max_focus_durations: int = Field(default=20, ge=1)
    max_conversation_summaries: int = Field(default=50, ge=1)
    max_session_insights: int = Field(default=100, ge=1)
    response_summary_chars: int = Field(default=200, ge=1)


class ProfileConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    min_sessions_for_persona: int = Field(default=10, ge=1)
    analysis_window_sessions: int = Field(default=50, ge=1)
    refresh_interval_hours: float = Field(default=6.0, ge=0)
    max_effective_motivations: int = Field(default=30, ge=1)
    max_ineffective_approaches: int = Field(default=20, ge=1)
    max_success_patterns: int = Field(default=50, ge=1)


# =============================================================================
# Prompt assembly and storage
# =============================================================================

class ContextConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    assistant_name: str = Field(default="Flow")
    app_name: str = Field(default="FocusFlow")
    max_characters: int = Field(default=24000, ge=100)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    backend: str = Field(default="sqlite", pattern="^(sqlite|memory)$")
    path: str = Field(default=str(DATA_DIR / "flowcore.db"))


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    cache: CacheConfig = Field(default_factory=CacheConfig)
    invalidation: InvalidationConfig = Field(default_factory=InvalidationConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    memory: MemoryLimitsConfig = Field(default_factory=MemoryLimitsConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load and validate the engine configuration.

    Reads the ``flowcore`` section of the YAML file (or the whole document if
    there is no such section). A missing file yields defaults; an unreadable
    or invalid file is logged and also yields defaults, so a bad config never
    blocks context building.
    """
    yaml_path = Path(path) if path is not None else CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        if isinstance(raw, dict) and "flowcore" in raw:
            raw = raw["flowcore"] or {}

        return EngineConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return EngineConfig()
