"""Tests for flowcore/context/cache.py

Key behaviors:
- A tier is served from cache strictly before its TTL and rebuilt at or after it
- Invalidating a component tier also drops FULL; FULL does not cascade down
- A failing builder yields a placeholder that is never cached
- A rebuild that raced an invalidation is returned but not stored
"""

import pytest

from flowcore.config_models import CacheTTLConfig
from flowcore.context.cache import (
    DEFAULT_PLACEHOLDERS,
    CacheEntry,
    CacheTier,
    ContextCache,
    ttls_from_config,
)


class CountingBuilders:
    """One builder per tier that counts its calls and returns 'tier#n'."""

    def __init__(self):
        self.calls = {tier: 0 for tier in CacheTier}

    def builder(self, tier):
        def build():
            self.calls[tier] += 1
            return f"{tier.value}#{self.calls[tier]}"

        return build

    def mapping(self):
        return {tier: self.builder(tier) for tier in CacheTier}


@pytest.fixture
def builders():
    return CountingBuilders()


@pytest.fixture
def cache(builders, manual_clock):
    return ContextCache(builders.mapping(), clock=manual_clock)


# ─────────────────────────────────────────────────────────────────────────────
# Freshness
# ─────────────────────────────────────────────────────────────────────────────


class TestFreshness:
    """Tests for TTL-based serving."""

    def test_first_get_builds(self, cache, builders):
        assert cache.get(CacheTier.TASK) == "task#1"
        assert builders.calls[CacheTier.TASK] == 1

    def test_served_from_cache_before_ttl(self, cache, builders, manual_clock):
        cache.get(CacheTier.TASK)
        manual_clock.advance(29.9)
        assert cache.get(CacheTier.TASK) == "task#1"
        assert builders.calls[CacheTier.TASK] == 1

    def test_rebuilt_exactly_at_ttl(self, cache, builders, manual_clock):
        cache.get(CacheTier.TASK)
        manual_clock.advance(30)
        assert cache.get(CacheTier.TASK) == "task#2"

    def test_each_tier_has_its_own_ttl(self, cache, builders, manual_clock):
        for tier in CacheTier:
            cache.get(tier)
        manual_clock.advance(60)

        cache.get(CacheTier.PROGRESS)
        cache.get(CacheTier.PRESET)
        cache.get(CacheTier.MEMORY)

        assert builders.calls[CacheTier.PROGRESS] == 2
        assert builders.calls[CacheTier.PRESET] == 1
        assert builders.calls[CacheTier.MEMORY] == 1

    def test_custom_ttls_merge_over_defaults(self, builders, manual_clock):
        cache = ContextCache(builders.mapping(), ttls={CacheTier.TASK: 5}, clock=manual_clock)
        cache.get(CacheTier.TASK)
        cache.get(CacheTier.PRESET)
        manual_clock.advance(5)
        cache.get(CacheTier.TASK)
        cache.get(CacheTier.PRESET)
        assert builders.calls[CacheTier.TASK] == 2
        assert builders.calls[CacheTier.PRESET] == 1

    def test_entry_expiry_boundary(self):
        entry = CacheEntry(value="x", computed_at=100.0, ttl=10.0, generation=0)
        assert entry.is_expired(109.99) is False
        assert entry.is_expired(110.0) is True
        assert entry.age(104.0) == 4.0

    def test_ttls_from_config(self):
        ttls = ttls_from_config(CacheTTLConfig())
        assert ttls[CacheTier.FULL] == 15.0
        assert ttls[CacheTier.MEMORY] == 180.0


# ─────────────────────────────────────────────────────────────────────────────
# Invalidation
# ─────────────────────────────────────────────────────────────────────────────


class TestInvalidation:
    """Tests for explicit invalidation and the FULL cascade."""

    @pytest.mark.parametrize(
        "tier", [CacheTier.TASK, CacheTier.PROGRESS, CacheTier.PRESET, CacheTier.MEMORY]
    )
    def test_component_invalidation_cascades_to_full(self, cache, tier):
        cache.get(tier)
        cache.get(CacheTier.FULL)

        cache.invalidate(tier)

        assert cache.peek(tier) is None
        assert cache.peek(CacheTier.FULL) is None

    def test_full_does_not_cascade_down(self, cache):
        cache.get(CacheTier.TASK)
        cache.get(CacheTier.FULL)

        cache.invalidate(CacheTier.FULL)

        assert cache.peek(CacheTier.TASK) is not None
        assert cache.peek(CacheTier.FULL) is None

    def test_other_components_untouched(self, cache):
        cache.get(CacheTier.TASK)
        cache.get(CacheTier.PRESET)
        cache.invalidate(CacheTier.TASK)
        assert cache.peek(CacheTier.PRESET) is not None

    def test_invalidate_bumps_generation(self, cache):
        before = cache.generation(CacheTier.TASK)
        cache.invalidate(CacheTier.TASK)
        assert cache.generation(CacheTier.TASK) == before + 1
        assert cache.generation(CacheTier.FULL) == 1

    def test_invalidate_all(self, cache, builders):
        for tier in CacheTier:
            cache.get(tier)
        cache.invalidate_all()
        for tier in CacheTier:
            assert cache.peek(tier) is None
        assert cache.get(CacheTier.MEMORY) == "memory#2"

    def test_next_get_after_invalidation_rebuilds(self, cache, builders, manual_clock):
        cache.get(CacheTier.TASK)
        manual_clock.advance(1)
        cache.invalidate(CacheTier.TASK)
        assert cache.get(CacheTier.TASK) == "task#2"


# ─────────────────────────────────────────────────────────────────────────────
# Failures and races
# ─────────────────────────────────────────────────────────────────────────────


class TestBuilderFailure:
    """Tests for placeholder fallback."""

    def test_placeholder_served_and_not_cached(self, builders, manual_clock):
        state = {"fail": True}

        def flaky():
            if state["fail"]:
                raise RuntimeError("task store offline")
            return "tasks ok"

        mapping = builders.mapping()
        mapping[CacheTier.TASK] = flaky
        cache = ContextCache(mapping, clock=manual_clock)

        assert cache.get(CacheTier.TASK) == DEFAULT_PLACEHOLDERS[CacheTier.TASK]
        assert cache.peek(CacheTier.TASK) is None

        state["fail"] = False
        assert cache.get(CacheTier.TASK) == "tasks ok"
        assert cache.stats()["task"]["failures"] == 1

    def test_custom_placeholder(self, builders, manual_clock):
        mapping = builders.mapping()
        mapping[CacheTier.PRESET] = lambda: 1 / 0
        cache = ContextCache(
            mapping, clock=manual_clock, placeholders={CacheTier.PRESET: "no presets"}
        )
        assert cache.get(CacheTier.PRESET) == "no presets"

    def test_missing_builder_rejected(self, builders):
        mapping = builders.mapping()
        del mapping[CacheTier.MEMORY]
        with pytest.raises(ValueError, match="memory"):
            ContextCache(mapping)


class TestRebuildRace:
    """Tests for generation-checked stores."""

    def test_invalidated_during_build_is_returned_not_cached(self, builders, manual_clock):
        holder = {}
        calls = {"n": 0}

        def racing_build():
            calls["n"] += 1
            if calls["n"] == 1:
                # Data changes while the first rebuild is in flight
                holder["cache"].invalidate(CacheTier.TASK)
            return f"tasks v{calls['n']}"

        mapping = builders.mapping()
        mapping[CacheTier.TASK] = racing_build
        cache = ContextCache(mapping, clock=manual_clock)
        holder["cache"] = cache

        assert cache.get(CacheTier.TASK) == "tasks v1"
        assert cache.peek(CacheTier.TASK) is None
        assert cache.stats()["task"]["discarded"] == 1

        assert cache.get(CacheTier.TASK) == "tasks v2"
        assert cache.peek(CacheTier.TASK).value == "tasks v2"

    def test_full_builder_may_read_other_tiers(self, builders, manual_clock):
        holder = {}
        mapping = builders.mapping()
        mapping[CacheTier.FULL] = lambda: " | ".join(
            holder["cache"].get(t) for t in (CacheTier.TASK, CacheTier.PRESET)
        )
        cache = ContextCache(mapping, clock=manual_clock)
        holder["cache"] = cache

        assert cache.get(CacheTier.FULL) == "task#1 | preset#1"
        assert cache.peek(CacheTier.TASK).value == "task#1"


class TestStats:
    def test_hits_and_misses(self, cache):
        cache.get(CacheTier.TASK)
        cache.get(CacheTier.TASK)
        stats = cache.stats()["task"]
        assert (stats["hits"], stats["misses"]) == (1, 1)
        assert stats["cached"] is True
        assert stats["age_seconds"] == 0.0
        assert cache.stats()["full"]["cached"] is False
