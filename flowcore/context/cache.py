"""
Tiered Context Cache

Five independently expiring prompt sections. Each tier is rebuilt lazily on
read by its builder; nothing inside the cache subscribes to data changes.

Tiers (default TTL):
    task      30s   today's tasks
    progress  60s   goal, streak, sessions
    preset   120s   focus presets
    memory   180s   memory + profile sections
    full      15s   the whole assembled prompt

Invalidating task, progress, preset or memory also drops ``full``, so the
assembled prompt can never be younger than its parts.

Race rule:
    Every tier has a generation counter that ``invalidate`` bumps. A rebuild
    records the generation before calling the builder (outside the lock) and
    only stores its result if the generation is unchanged afterwards. A
    result built from pre-invalidation data is still returned to its caller
    but never cached.

Usage:
    cache = ContextCache(
        builders={CacheTier.TASK: build_tasks, ...},
        ttls=ttls_from_config(config.cache.ttl),
    )
    text = cache.get(CacheTier.TASK)
    cache.invalidate(CacheTier.TASK)   # also drops FULL
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, Optional, TypeVar

from flowcore.config_models import CacheTTLConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheTier(StrEnum):
    TASK = "task"
    PROGRESS = "progress"
    PRESET = "preset"
    MEMORY = "memory"
    FULL = "full"


# Tiers whose invalidation also invalidates FULL
CASCADING_TIERS = frozenset({CacheTier.TASK, CacheTier.PROGRESS, CacheTier.PRESET, CacheTier.MEMORY})

DEFAULT_PLACEHOLDERS: dict[CacheTier, str] = {
    CacheTier.TASK: "=== TASKS ===\n(task data temporarily unavailable)",
    CacheTier.PROGRESS: "=== PROGRESS ===\n(progress data temporarily unavailable)",
    CacheTier.PRESET: "=== FOCUS PRESETS ===\n(preset data temporarily unavailable)",
    CacheTier.MEMORY: "=== USER MEMORY ===\n(memory temporarily unavailable)",
    CacheTier.FULL: "(context temporarily unavailable)",
}


def ttls_from_config(config: CacheTTLConfig) -> dict[CacheTier, float]:
    return {
        CacheTier.TASK: config.task_seconds,
        CacheTier.PROGRESS: config.progress_seconds,
        CacheTier.PRESET: config.preset_seconds,
        CacheTier.MEMORY: config.memory_seconds,
        CacheTier.FULL: config.full_seconds,
    }


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    computed_at: float
    ttl: float
    generation: int

    def is_expired(self, now: float) -> bool:
        return now - self.computed_at >= self.ttl

    def age(self, now: float) -> float:
        return now - self.computed_at


@dataclass
class TierStats:
    hits: int = 0
    misses: int = 0
    failures: int = 0
    discarded: int = 0  # rebuilds dropped because the tier was invalidated mid-build
    invalidations: int = 0


class ContextCache:
    """
    Thread-safe TTL cache over string-producing builders.

    Args:
        builders: One zero-argument builder per tier.
        ttls: Seconds each tier's value stays fresh.
        clock: Monotonic clock in seconds; injectable for tests.
        placeholders: Text served when a builder raises.
    """

    def __init__(
        self,
        builders: Mapping[CacheTier, Callable[[], str]],
        ttls: Optional[Mapping[CacheTier, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        placeholders: Optional[Mapping[CacheTier, str]] = None,
    ):
        missing = [tier.value for tier in CacheTier if tier not in builders]
        if missing:
            raise ValueError(f"No builder registered for tiers: {', '.join(missing)}")

        self._builders = dict(builders)
        self._ttls = {**ttls_from_config(CacheTTLConfig()), **(ttls or {})}
        self._clock = clock
        self._placeholders = {**DEFAULT_PLACEHOLDERS, **(placeholders or {})}

        self._entries: dict[CacheTier, CacheEntry[str]] = {}
        self._generations: dict[CacheTier, int] = {tier: 0 for tier in CacheTier}
        self._stats: dict[CacheTier, TierStats] = {tier: TierStats() for tier in CacheTier}
        self._lock = threading.RLock()

    def get(self, tier: CacheTier) -> str:
        """Serve a live entry or rebuild it synchronously."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(tier)
            if entry is not None and not entry.is_expired(now):
                self._stats[tier].hits += 1
                return entry.value
            self._stats[tier].misses += 1
            generation = self._generations[tier]

        # Build outside the lock so other tiers (and FULL's nested reads) are not blocked
        try:
            value = self._builders[tier]()
        except Exception as e:
            with self._lock:
                self._stats[tier].failures += 1
            logger.warning(f"Context tier '{tier.value}' failed to build, serving placeholder: {e}")
            return self._placeholders[tier]

        with self._lock:
            if self._generations[tier] == generation:
                self._entries[tier] = CacheEntry(
                    value=value,
                    computed_at=now,
                    ttl=self._ttls[tier],
                    generation=generation,
                )
            else:
                self._stats[tier].discarded += 1
                logger.debug(
                    f"Discarding stale rebuild of '{tier.value}' "
                    f"(generation {generation} -> {self._generations[tier]})"
                )
        return value

    def peek(self, tier: CacheTier) -> Optional[CacheEntry[str]]:
        """The stored entry, expired or not, without building."""
        with self._lock:
            return self._entries.get(tier)

    def generation(self, tier: CacheTier) -> int:
        with self._lock:
            return self._generations[tier]

    def invalidate(self, tier: CacheTier) -> None:
        with self._lock:
            self._drop(tier)
            if tier in CASCADING_TIERS:
                self._drop(CacheTier.FULL)

    def invalidate_all(self) -> None:
        with self._lock:
            for tier in CacheTier:
                self._drop(tier)

    def _drop(self, tier: CacheTier) -> None:
        """Must hold _lock."""
        self._generations[tier] += 1
        self._stats[tier].invalidations += 1
        self._entries.pop(tier, None)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            result: dict[str, Any] = {}
            for tier in CacheTier:
                entry = self._entries.get(tier)
                counters = self._stats[tier]
                result[tier.value] = {
                    "hits": counters.hits,
                    "misses": counters.misses,
                    "failures": counters.failures,
                    "discarded": counters.discarded,
                    "invalidations": counters.invalidations,
                    "generation": self._generations[tier],
                    "ttl_seconds": self._ttls[tier],
                    "cached": entry is not None and not entry.is_expired(now),
                    "age_seconds": round(entry.age(now), 3) if entry is not None else None,
                }
            return result
