"""Debounced task scheduling for event-driven recomputation.

Bursts of change events for the same key (e.g. one room receiving several
booking updates in a row) collapse into a single handler call once the key
has been quiet for ``window_seconds``. Each new event cancels the pending
timer for its key and starts a fresh one; the latest payload wins.

Timers come from a factory so tests can drive them by hand. The default
factory uses daemon ``threading.Timer`` objects.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from staydesk.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 0.5


class Timer(Protocol):
    """Minimal timer contract (satisfied by threading.Timer)."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def _thread_timer(interval: float, fn: Callable[[], None]) -> Timer:
    timer = threading.Timer(interval, fn)
    timer.daemon = True
    return timer


@dataclass
class _Pending:
    timer: Timer
    payload: Any
    generation: int


class Debouncer:
    """Coalesce triggers per key and run ``handler(key, payload)`` once per quiet window."""

    def __init__(
        self,
        handler: Callable[[str, Any], None],
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        if window_seconds < 0:
            raise ValueError("window_seconds must be >= 0")
        self._handler = handler
        self._window = window_seconds
        self._timer_factory = timer_factory or _thread_timer
        self._pending: dict[str, _Pending] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window

    def trigger(self, key: str, payload: Any = None) -> None:
        """Schedule ``key``, superseding any pending run for it."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous = self._pending.get(key)
            if previous is not None:
                previous.timer.cancel()
            timer = self._timer_factory(self._window, lambda: self._fire(key, generation))
            self._pending[key] = _Pending(timer=timer, payload=payload, generation=generation)
        timer.start()

    def pending(self) -> list[str]:
        """Keys with a scheduled, not yet executed run."""
        with self._lock:
            return sorted(self._pending)

    def cancel(self, key: str | None = None) -> int:
        """Drop pending runs for ``key`` (or all keys). Returns how many were dropped."""
        with self._lock:
            keys = list(self._pending) if key is None else [key]
            dropped = 0
            for k in keys:
                entry = self._pending.pop(k, None)
                if entry is not None:
                    entry.timer.cancel()
                    dropped += 1
        return dropped

    def flush(self, key: str | None = None) -> int:
        """Run pending handlers now instead of waiting for their window.

        Runs on the calling thread, so handler errors propagate to the caller.
        """
        with self._lock:
            keys = list(self._pending) if key is None else [key]
            due: list[tuple[str, Any]] = []
            for k in keys:
                entry = self._pending.pop(k, None)
                if entry is not None:
                    entry.timer.cancel()
                    due.append((k, entry.payload))
        for k, payload in due:
            self._handler(k, payload)
        return len(due)

    def _fire(self, key: str, generation: int) -> None:
        with self._lock:
            entry = self._pending.get(key)
            # superseded or already flushed/cancelled
            if entry is None or entry.generation != generation:
                return
            del self._pending[key]
        self._run(key, entry.payload)

    def _run(self, key: str, payload: Any) -> None:
        try:
            self._handler(key, payload)
        except Exception:
            # Timer threads have no caller to propagate to.
            logger.exception(
                "debounced handler failed",
                extra={"extra_fields": {"key": key}},
            )
