"""Tests for flowcore/context/invalidation.py

Key behaviors:
- Each change stream invalidates exactly its tier (plus FULL via cascade)
- A burst of notifications inside the debounce window is one invalidation
- A debounce of 0 invalidates synchronously
- Listeners run after the invalidation; one failing listener does not stop others
"""

import threading

import pytest

from flowcore.context.cache import CacheTier, ContextCache
from flowcore.context.invalidation import Debouncer, InvalidationWiring
from flowcore.models import PresetRecord, TaskRecord


@pytest.fixture
def cache(manual_clock):
    return ContextCache({tier: (lambda t=tier: t.value) for tier in CacheTier}, clock=manual_clock)


def make_wiring(cache, sources, debounce_seconds=0.0):
    return InvalidationWiring(
        cache,
        sources["sessions"],
        sources["tasks"],
        sources["presets"],
        debounce_seconds=debounce_seconds,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Debouncer
# ─────────────────────────────────────────────────────────────────────────────


class TestDebouncer:
    """Tests for the trailing-edge debounce primitive."""

    def test_zero_delay_runs_immediately(self):
        calls = []
        debouncer = Debouncer(0, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.trigger()
        assert calls == [1, 1]
        assert debouncer.pending is False

    def test_burst_collapses_to_one_on_flush(self):
        calls = []
        debouncer = Debouncer(10, lambda: calls.append(1))
        for _ in range(5):
            debouncer.trigger()

        assert debouncer.pending is True
        assert calls == []
        assert debouncer.flush() is True
        assert calls == [1]
        assert debouncer.flush() is False

    def test_cancel_drops_pending(self):
        calls = []
        debouncer = Debouncer(10, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.cancel()
        assert debouncer.pending is False
        assert debouncer.flush() is False
        assert calls == []

    def test_fires_after_delay(self):
        fired = threading.Event()
        debouncer = Debouncer(0.05, fired.set)
        debouncer.trigger()
        assert fired.wait(timeout=2.0)
        assert debouncer.pending is False

    def test_failing_action_is_contained(self):
        def boom():
            raise RuntimeError("boom")

        Debouncer(0, boom, name="boom").trigger()


# ─────────────────────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────────────────────


class TestStreamMapping:
    """Tests for stream -> tier invalidation."""

    def test_session_change_invalidates_progress_and_full(self, cache, sources, make_session):
        make_wiring(cache, sources)
        for tier in CacheTier:
            cache.get(tier)

        sources["sessions"].add_session(make_session(0))

        assert cache.peek(CacheTier.PROGRESS) is None
        assert cache.peek(CacheTier.FULL) is None
        assert cache.peek(CacheTier.TASK) is not None
        assert cache.peek(CacheTier.PRESET) is not None
        assert cache.peek(CacheTier.MEMORY) is not None

    def test_task_change_invalidates_task(self, cache, sources):
        make_wiring(cache, sources)
        cache.get(CacheTier.TASK)
        sources["tasks"].add_task(TaskRecord(id="t1", title="Email"))
        assert cache.generation(CacheTier.TASK) == 1
        assert cache.generation(CacheTier.PROGRESS) == 0

    def test_preset_change_invalidates_preset(self, cache, sources):
        make_wiring(cache, sources)
        sources["presets"].replace([PresetRecord(id="p1", name="Deep Work", duration_seconds=3000)])
        assert cache.generation(CacheTier.PRESET) == 1
        assert cache.generation(CacheTier.FULL) == 1

    def test_burst_is_one_invalidation(self, cache, sources, make_session):
        wiring = make_wiring(cache, sources, debounce_seconds=10)
        for _ in range(3):
            sources["sessions"].add_session(make_session(0))

        assert cache.generation(CacheTier.PROGRESS) == 0
        assert wiring.pending_streams() == ["sessions"]

        wiring.flush()

        assert cache.generation(CacheTier.PROGRESS) == 1
        assert wiring.pending_streams() == []
        wiring.close()

    def test_real_timer_fires(self, cache, sources, make_session):
        wiring = make_wiring(cache, sources, debounce_seconds=0.05)
        fired = threading.Event()
        wiring.add_listener("sessions", fired.set)

        sources["sessions"].add_session(make_session(0))

        assert fired.wait(timeout=2.0)
        assert cache.generation(CacheTier.PROGRESS) == 1
        wiring.close()


class TestListeners:
    """Tests for post-invalidation listeners."""

    def test_listener_runs_after_invalidation(self, cache, sources, make_session):
        wiring = make_wiring(cache, sources)
        seen = []
        wiring.add_listener("sessions", lambda: seen.append(cache.generation(CacheTier.PROGRESS)))
        sources["sessions"].add_session(make_session(0))
        assert seen == [1]

    def test_failing_listener_does_not_block_others(self, cache, sources, make_session):
        wiring = make_wiring(cache, sources)
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        wiring.add_listener("sessions", broken)
        wiring.add_listener("sessions", lambda: calls.append("ok"))
        sources["sessions"].add_session(make_session(0))

        assert calls == ["ok"]

    def test_unknown_stream_rejected(self, cache, sources):
        wiring = make_wiring(cache, sources)
        with pytest.raises(ValueError, match="Unknown change stream"):
            wiring.add_listener("settings", lambda: None)


class TestClose:
    def test_close_unsubscribes(self, cache, sources, make_session):
        wiring = make_wiring(cache, sources)
        wiring.close()
        sources["sessions"].add_session(make_session(0))
        assert cache.generation(CacheTier.PROGRESS) == 0

    def test_close_drops_pending_and_is_idempotent(self, cache, sources):
        wiring = make_wiring(cache, sources, debounce_seconds=10)
        sources["tasks"].add_task(TaskRecord(id="t1", title="Email"))
        wiring.close()
        wiring.close()
        assert wiring.pending_streams() == []
        assert cache.generation(CacheTier.TASK) == 0
