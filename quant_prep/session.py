from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, Overflow, Underflow, localcontext
from enum import Enum

from .clock import Scheduler, TimerHandle
from .history import HistoryEntry, HistoryStore, utc_now_iso
from .question_generator import (
    TIME_UP_QUESTION,
    GenerationConfig,
    Number,
    Question,
    RandomSource,
    SeededRng,
    generate,
)

logger = logging.getLogger(__name__)

SESSION_DURATION_S = 120
TICK_INTERVAL_S = 1.0
ANSWER_EPSILON = 1e-9
_EPSILON = Decimal(str(ANSWER_EPSILON))


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


class SessionEventKind(str, Enum):
    STARTED = "started"
    TICK = "tick"
    SCORED = "scored"
    FINISHED = "finished"
    PERSIST_FAILED = "persist_failed"


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the UI (pure data)."""

    username: str
    status: SessionStatus
    seconds_remaining: int
    score: int
    current_question: Question | None
    last_persist_error: str | None = None

    @property
    def display_text(self) -> str:
        return "" if self.current_question is None else self.current_question.display_text

    @property
    def accepting_answers(self) -> bool:
        return (
            self.status is SessionStatus.RUNNING
            and self.current_question is not None
            and self.current_question.is_answerable
        )


@dataclass(frozen=True, slots=True)
class SessionEvent:
    kind: SessionEventKind
    snapshot: SessionSnapshot
    error: Exception | None = None


SessionListener = Callable[[SessionEvent], None]


def parse_answer(raw: str) -> Decimal | None:
    """Parse typed text as a finite real number, or None if it is not one yet."""

    s = raw.strip()
    if not s:
        return None
    try:
        value = Decimal(s)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def answer_matches(value: Decimal, expected: Number) -> bool:
    # Compare in decimal against the expected value's shortest repr so the
    # tolerance applies to the digits the user typed, not to binary round-off.
    with localcontext() as ctx:
        # Huge typed exponents overflow to Infinity instead of raising.
        ctx.traps[Overflow] = False
        ctx.traps[Underflow] = False
        diff = abs(value - Decimal(str(expected)))
    return diff.is_finite() and diff <= _EPSILON


class SessionController:
    """Timed mental-math run: IDLE -> RUNNING -> FINISHED -> RUNNING ...

    - The countdown is a recurring 1-second callback obtained from the injected
      scheduler. At most one timer handle is held at a time and it is cancelled
      exactly once: on natural finish, on a preempting restart, or on cancel().
    - tick() and submit_answer() are serialized by a re-entrant lock; listeners
      are notified after the lock is released.
    - The history entry is written before FINISHED becomes observable. A store
      failure is reported (log, snapshot, PERSIST_FAILED event) and never
      prevents the session from finishing.
    """

    def __init__(
        self,
        *,
        username: str,
        history: HistoryStore,
        scheduler: Scheduler,
        rng: RandomSource | None = None,
        seed: int | None = None,
        duration_s: int = SESSION_DURATION_S,
        timestamp_fn: Callable[[], str] = utc_now_iso,
    ) -> None:
        if not str(username).strip():
            raise ValueError("username must be non-empty")
        if duration_s <= 0:
            raise ValueError("duration_s must be > 0")

        self._username = str(username).strip()
        self._history = history
        self._scheduler = scheduler
        self._rng: RandomSource = rng if rng is not None else SeededRng(seed)
        self._duration_s = int(duration_s)
        self._timestamp_fn = timestamp_fn

        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []

        self._status = SessionStatus.IDLE
        self._seconds_remaining = 0
        self._score = 0
        self._config = GenerationConfig()
        self._current: Question | None = None
        self._timer: TimerHandle | None = None
        self._last_persist_error: str | None = None

    @property
    def username(self) -> str:
        return self._username

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def score(self) -> int:
        return self._score

    @property
    def seconds_remaining(self) -> int:
        return self._seconds_remaining

    @property
    def current_question(self) -> Question | None:
        return self._current

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @property
    def duration_s(self) -> int:
        return self._duration_s

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and self._timer.active

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a state-change listener. Returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def start(self, config: GenerationConfig) -> bool:
        """Begin a new run. Returns False (and changes nothing) while RUNNING."""

        with self._lock:
            if self._status is SessionStatus.RUNNING and self._seconds_remaining > 0:
                return False
            self._dispose_timer()
            self._config = config
            self._score = 0
            self._seconds_remaining = self._duration_s
            self._last_persist_error = None
            self._current = generate(config, self._rng)
            self._status = SessionStatus.RUNNING
            self._timer = self._scheduler.call_every(TICK_INTERVAL_S, self.tick)
            events = [SessionEvent(SessionEventKind.STARTED, self._snapshot_locked())]
        logger.info("Session started for %s (%ss)", self._username, self._duration_s)
        self._publish(events)
        return True

    def tick(self) -> None:
        with self._lock:
            if self._status is not SessionStatus.RUNNING:
                return
            self._seconds_remaining = max(0, self._seconds_remaining - 1)
            if self._seconds_remaining > 0:
                events = [SessionEvent(SessionEventKind.TICK, self._snapshot_locked())]
            else:
                events = self._finish_locked()
        self._publish(events)

    def submit_answer(self, raw: str) -> bool:
        """Check the current answer text. Returns True if it scored."""

        with self._lock:
            if self._status is not SessionStatus.RUNNING or self._current is None:
                return False
            expected = self._current.expected_answer
            if expected is None:
                return False
            value = parse_answer(raw)
            if value is None or not answer_matches(value, expected):
                return False
            self._score += 1
            self._current = generate(self._config, self._rng)
            events = [SessionEvent(SessionEventKind.SCORED, self._snapshot_locked())]
        self._publish(events)
        return True

    def cancel(self) -> None:
        """Abandon the current run without recording history."""

        with self._lock:
            if self._status is not SessionStatus.RUNNING:
                return
            self._dispose_timer()
            self._status = SessionStatus.IDLE
            self._seconds_remaining = 0
            self._current = None
        logger.info("Session cancelled for %s", self._username)

    def _finish_locked(self) -> list[SessionEvent]:
        self._dispose_timer()
        entry = HistoryEntry(timestamp=self._timestamp_fn(), score=self._score)
        error: Exception | None = None
        try:
            self._history.append(self._username, entry)
        except Exception as exc:
            error = exc
            self._last_persist_error = str(exc)
            logger.warning("Could not save score for %s: %s", self._username, exc)

        self._status = SessionStatus.FINISHED
        self._current = TIME_UP_QUESTION
        logger.info("Session finished for %s with score %d", self._username, self._score)

        snap = self._snapshot_locked()
        events: list[SessionEvent] = []
        if error is not None:
            events.append(SessionEvent(SessionEventKind.PERSIST_FAILED, snap, error))
        events.append(SessionEvent(SessionEventKind.FINISHED, snap))
        return events

    def _dispose_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _snapshot_locked(self) -> SessionSnapshot:
        return SessionSnapshot(
            username=self._username,
            status=self._status,
            seconds_remaining=self._seconds_remaining,
            score=self._score,
            current_question=self._current,
            last_persist_error=self._last_persist_error,
        )

    def _publish(self, events: list[SessionEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                listener(event)
