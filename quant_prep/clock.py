from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle:
    """Owned handle for one recurring callback registered with a scheduler."""

    def __init__(self, *, interval_s: float, callback: Callable[[], None], first_due_s: float) -> None:
        self._interval_s = float(interval_s)
        self._callback = callback
        self._next_due_s = float(first_due_s)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def cancel(self) -> None:
        # Idempotent; a cancelled handle never fires again.
        self._active = False

    def _fire_due(self, now_s: float) -> int:
        fired = 0
        while self._active and self._next_due_s <= now_s:
            self._next_due_s += self._interval_s
            fired += 1
            self._callback()
        return fired


class Scheduler(Protocol):
    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class ClockScheduler:
    """Recurring callbacks driven by an injected Clock.

    Nothing fires on its own: the host loop calls :meth:`pump` (once per frame
    in the UI, explicitly in tests). Every interval that has fully elapsed
    since registration fires its callback once, oldest first, so a slow frame
    catches up instead of dropping ticks.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._handles: list[TimerHandle] = []

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        handle = TimerHandle(
            interval_s=interval_s,
            callback=callback,
            first_due_s=self._clock.now() + float(interval_s),
        )
        self._handles.append(handle)
        return handle

    def pending(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def pump(self) -> int:
        """Fire every due callback. Returns the number of callbacks fired."""

        now_s = self._clock.now()
        fired = 0
        # Callbacks may register or cancel handles; iterate over a copy.
        for handle in list(self._handles):
            fired += handle._fire_due(now_s)
        self._handles = [h for h in self._handles if h.active]
        return fired
