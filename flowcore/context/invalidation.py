"""
Cache Invalidation Wiring

Subscribes to the session, task and preset change streams and turns bursts
of change notifications into a single cache invalidation per stream.

Mapping:
    sessions -> progress
    tasks    -> task
    presets  -> preset
(each of which cascades to ``full`` inside the cache)

Each stream is debounced on the trailing edge: a notification (re)starts a
timer and only the last one in a burst fires. ``flush()`` fires anything
pending immediately, which is what tests and shutdown use.

Usage:
    wiring = InvalidationWiring(cache, sessions, tasks, presets, debounce_seconds=0.1)
    wiring.add_listener("sessions", profile_learner_refresh)
    ...
    wiring.close()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from functools import partial
from typing import Optional

from flowcore.context.cache import CacheTier, ContextCache
from flowcore.sources import PresetSource, SessionSource, TaskSource

logger = logging.getLogger(__name__)

STREAM_TIERS: dict[str, CacheTier] = {
    "sessions": CacheTier.PROGRESS,
    "tasks": CacheTier.TASK,
    "presets": CacheTier.PRESET,
}


class Debouncer:
    """Trailing-edge debounce around a zero-argument action."""

    def __init__(self, delay_seconds: float, action: Callable[[], None], name: str = ""):
        self.delay_seconds = delay_seconds
        self.name = name
        self._action = action
        self._timer: Optional[threading.Timer] = None
        self._token = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        if self.delay_seconds <= 0:
            self._run()
            return

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._token += 1
            timer = threading.Timer(self.delay_seconds, self._fire, args=(self._token,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, token: int) -> None:
        with self._lock:
            # A later trigger or a flush superseded this timer
            if token != self._token or self._timer is None:
                return
            self._timer = None
        self._run()

    def flush(self) -> bool:
        """Run a pending action now. Returns True if one was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._token += 1
        self._run()
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._token += 1

    def _run(self) -> None:
        try:
            self._action()
        except Exception as e:
            logger.warning(f"Debounced action '{self.name}' failed: {e}")


class InvalidationWiring:
    """
    Connects upstream change streams to ContextCache invalidation.

    Args:
        cache: Cache whose tiers are invalidated.
        sessions, tasks, presets: Change sources to subscribe to.
        debounce_seconds: Trailing-edge debounce window per stream; 0 disables it.
    """

    def __init__(
        self,
        cache: ContextCache,
        sessions: SessionSource,
        tasks: TaskSource,
        presets: PresetSource,
        debounce_seconds: float = 0.1,
    ):
        self.cache = cache
        self._listeners: dict[str, list[Callable[[], None]]] = {name: [] for name in STREAM_TIERS}
        self._debouncers = {
            name: Debouncer(debounce_seconds, partial(self._fire, name), name=name)
            for name in STREAM_TIERS
        }
        self._unsubscribers = [
            sessions.subscribe(self._debouncers["sessions"].trigger),
            tasks.subscribe(self._debouncers["tasks"].trigger),
            presets.subscribe(self._debouncers["presets"].trigger),
        ]
        self._closed = False

    def add_listener(self, stream: str, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the stream's (debounced) invalidation fires."""
        if stream not in self._listeners:
            raise ValueError(f"Unknown change stream '{stream}', expected one of {sorted(STREAM_TIERS)}")
        self._listeners[stream].append(callback)

    def _fire(self, stream: str) -> None:
        tier = STREAM_TIERS[stream]
        logger.debug(f"'{stream}' changed, invalidating '{tier.value}'")
        self.cache.invalidate(tier)
        for listener in list(self._listeners[stream]):
            try:
                listener()
            except Exception as e:
                logger.warning(f"Listener on '{stream}' changes failed: {e}")

    def pending_streams(self) -> list[str]:
        return [name for name, debouncer in self._debouncers.items() if debouncer.pending]

    def flush(self) -> None:
        for debouncer in self._debouncers.values():
            debouncer.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        for debouncer in self._debouncers.values():
            debouncer.cancel()
