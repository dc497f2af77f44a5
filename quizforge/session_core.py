"""Mode capability contract and the machinery shared by every session.

A *mode* is a ``BaseSession`` subclass. Its class-level methods describe what
the mode can do with a bank (``supports_question``, ``validate``,
``filter_questions``, ``setup_info``); an instance is one session run with the
lifecycle ``configure -> start -> (current_item / submit_response)* ->
finish``. The controller only ever talks to a session through those six
lifecycle methods.

Sessions are headless and deterministic: time comes from the injected
``TimerQueue``'s clock, randomness from a ``SeededRng``.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, TypeVar

from .bank import Bank, Question
from .clock import TimerHandle, TimerQueue
from .results import ItemOutcome, SessionResult, Termination

T = TypeVar("T")

MODE_METHODS = ("supports_question", "validate", "filter_questions", "setup_info")
SESSION_METHODS = ("configure", "start", "current_item", "submit_response", "is_complete", "finish")


class ConfigurationError(ValueError):
    """Raised before a session launches when the requested setup cannot run."""


class Command(str, Enum):
    NEXT = "next"
    REVEAL = "reveal"
    CHECK = "check"


class SessionState(str, Enum):
    IDLE = "idle"
    CONFIGURED = "configured"
    RUNNING = "running"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class ModeMetadata:
    id: str
    name: str
    description: str
    icon: str = ""


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_supported: bool
    supported_count: int
    total_count: int
    reason: str | None = None
    percentage: int = 0


@dataclass(frozen=True, slots=True)
class ModeDefaults:
    """Setup-screen defaults for a mode. ``question_count`` is capped by the pool."""

    question_count: int = 20
    time_limit_minutes: float = 0.0
    max_mistakes: int = 0
    shuffle_questions: bool = True
    shuffle_answers: bool = False
    show_comments: bool = True
    repeat_unknown: bool = False
    pairs_per_stage: int = 0
    stage_advance_delay_s: float = 0.0


@dataclass(frozen=True, slots=True)
class SessionConfig:
    question_count: int
    categories: tuple[str, ...] | None = None  # None selects every category
    shuffle_questions: bool = True
    shuffle_answers: bool = False
    show_comments: bool = True
    time_limit_s: float = 0.0
    max_mistakes: int = 0
    repeat_unknown: bool = False
    pairs_per_stage: int = 0
    stage_advance_delay_s: float = 0.0


@dataclass(frozen=True, slots=True)
class Outcome:
    """Answer to a ``submit_response`` call.

    ``accepted`` is False when the response was refused (already answered,
    wrong moment, unknown target); a refused response changes nothing.
    """

    accepted: bool
    reason: str | None = None
    question_id: str | None = None
    is_correct: bool | None = None
    finished: bool = False

    @classmethod
    def rejected(cls, reason: str, *, question_id: str | None = None) -> "Outcome":
        return cls(accepted=False, reason=reason, question_id=question_id)


@dataclass(frozen=True, slots=True)
class CategoryCount:
    name: str
    count: int


@dataclass(frozen=True, slots=True)
class SetupInfo:
    mode_id: str
    max_items: int
    categories: tuple[CategoryCount, ...]
    uncategorized: int
    defaults: ModeDefaults


@dataclass(frozen=True, slots=True)
class SessionProgress:
    """View model for a rendering layer (pure data)."""

    mode_id: str
    state: SessionState
    position: int
    total: int
    answered: int
    correct: int
    mistakes: int
    max_mistakes: int
    time_remaining_s: float | None
    elapsed_s: float


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def shuffled(self, seq: Sequence[T]) -> list[T]:
        out = list(seq)
        self._rng.shuffle(out)
        return out


def round_half_up(x: float) -> int:
    # Matches the rounding people expect for percentages (50.5 -> 51).
    return int(math.floor(x + 0.5))


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100.0)


def chunk(items: Sequence[T], size: int) -> list[tuple[T, ...]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [tuple(items[i : i + size]) for i in range(0, len(items), size)]


class BaseSession:
    """Shared lifecycle for all modes.

    Subclasses set ``metadata`` and ``defaults``, implement
    ``supports_question`` and ``_handle_response`` and may hook ``_on_start``,
    ``_on_end`` and ``_mode_options``.
    """

    metadata: ClassVar[ModeMetadata]
    defaults: ClassVar[ModeDefaults] = ModeDefaults()

    def __init__(self, *, timers: TimerQueue, seed: int) -> None:
        self._timers = timers
        self._clock = timers.clock
        self._seed = int(seed)
        self._rng = SeededRng(self._seed)

        self._state = SessionState.IDLE
        self._bank: Bank | None = None
        self._config: SessionConfig | None = None
        self._items: tuple[Question, ...] = ()

        self._outcomes: list[ItemOutcome] = []
        self._mistakes = 0
        self._termination: Termination | None = None
        self._started_at_s: float | None = None
        self._ended_at_s: float | None = None

        self._owned_timers: list[TimerHandle] = []
        self._time_limit: TimerHandle | None = None
        self._result: SessionResult | None = None

    # ------------------------------------------------------------------
    # Mode capabilities (class level)

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        raise NotImplementedError

    @classmethod
    def validate(cls, bank: Bank) -> ValidationResult:
        if bank.malformed:
            return ValidationResult(
                is_supported=False,
                supported_count=0,
                total_count=0,
                reason="Bank has no question list",
            )
        total = len(bank.questions)
        supported = len(cls.filter_questions(bank.questions))
        if supported == 0:
            return ValidationResult(
                is_supported=False,
                supported_count=0,
                total_count=total,
                reason="No question in this bank is supported by this mode",
            )
        return ValidationResult(
            is_supported=True,
            supported_count=supported,
            total_count=total,
            percentage=percentage(supported, total),
        )

    @classmethod
    def filter_questions(cls, questions: Sequence[Question]) -> tuple[Question, ...]:
        return tuple(q for q in questions if cls.supports_question(q))

    @classmethod
    def setup_info(cls, questions: Sequence[Question]) -> SetupInfo:
        pool = cls.filter_questions(questions)
        counts: dict[str, int] = {}
        uncategorized = 0
        for q in pool:
            if q.category:
                counts[q.category] = counts.get(q.category, 0) + 1
            else:
                uncategorized += 1
        return SetupInfo(
            mode_id=cls.metadata.id,
            max_items=len(pool),
            categories=tuple(CategoryCount(name, counts[name]) for name in sorted(counts)),
            uncategorized=uncategorized,
            defaults=cls.defaults,
        )

    # ------------------------------------------------------------------
    # Session lifecycle

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> SessionConfig | None:
        return self._config

    @property
    def seed(self) -> int:
        return self._seed

    def selected_questions(self) -> tuple[Question, ...]:
        return self._items

    def configure(self, bank: Bank, raw_options: Mapping[str, Any] | None = None) -> SessionConfig:
        """Validate raw setup options against ``bank`` and freeze them."""

        if self._state in (SessionState.RUNNING, SessionState.DONE):
            raise ConfigurationError("Session has already started")

        options = dict(raw_options or {})
        d = self.defaults
        pool = self.filter_questions(bank.questions)
        if not pool:
            raise ConfigurationError(f"No questions in this bank work with {self.metadata.name}")

        categories = _parse_categories(options.get("categories"))
        candidates = _filter_by_categories(pool, categories)
        if not candidates:
            raise ConfigurationError("No questions match the selected categories")

        count = as_int(options.get("question_count"), d.question_count)
        if count < 1:
            raise ConfigurationError("question_count must be >= 1")
        count = min(count, len(candidates))

        time_limit_minutes = as_float(options.get("time_limit_minutes"), d.time_limit_minutes)
        if time_limit_minutes < 0:
            raise ConfigurationError("time_limit_minutes must be >= 0")
        max_mistakes = as_int(options.get("max_mistakes"), d.max_mistakes)
        if max_mistakes < 0:
            raise ConfigurationError("max_mistakes must be >= 0")

        config = SessionConfig(
            question_count=count,
            categories=categories,
            shuffle_questions=as_bool(options.get("shuffle_questions"), d.shuffle_questions),
            shuffle_answers=as_bool(options.get("shuffle_answers"), d.shuffle_answers),
            show_comments=as_bool(options.get("show_comments"), d.show_comments),
            time_limit_s=float(time_limit_minutes) * 60.0,
            max_mistakes=max_mistakes,
            **self._mode_options(options, count),
        )

        self._bank = bank
        self._config = config
        self._state = SessionState.CONFIGURED
        return config

    def start(self, config: SessionConfig | None = None) -> None:
        if self._state in (SessionState.RUNNING, SessionState.DONE):
            raise RuntimeError("Session has already started")
        if self._bank is None or self._config is None:
            raise ConfigurationError("configure() must be called before start()")
        cfg = config or self._config

        pool = _filter_by_categories(self.filter_questions(self._bank.questions), cfg.categories)
        if cfg.shuffle_questions:
            pool = tuple(self._rng.shuffled(pool))
        selected = tuple(pool[: cfg.question_count])
        if not selected:
            raise ConfigurationError("No questions left to run")

        self._config = cfg
        self._items = selected
        self._state = SessionState.RUNNING
        self._started_at_s = self._clock.now()
        if cfg.time_limit_s > 0:
            self._time_limit = self._schedule_later(cfg.time_limit_s, self._on_time_limit)
        self._on_start()

    def current_item(self) -> object | None:
        raise NotImplementedError

    def submit_response(self, response: object) -> Outcome:
        if self._state is not SessionState.RUNNING:
            return Outcome.rejected("not_running")
        return self._handle_response(response)

    def is_complete(self) -> bool:
        return self._state is SessionState.DONE

    def finish(self) -> SessionResult:
        """Finalize the run. Idempotent; ends a running session early."""

        if self._result is not None:
            return self._result
        if self._state in (SessionState.IDLE, SessionState.CONFIGURED):
            raise RuntimeError("Session was never started")
        if self._state is SessionState.RUNNING:
            self._end(Termination.ENDED_EARLY)
        self._cancel_timers()
        self._result = self._build_result()
        return self._result

    def progress(self) -> SessionProgress:
        cfg = self._config
        return SessionProgress(
            mode_id=self.metadata.id,
            state=self._state,
            position=self._position(),
            total=len(self._items),
            answered=self._answered_count(),
            correct=self._correct_count(),
            mistakes=self._mistakes,
            max_mistakes=0 if cfg is None else cfg.max_mistakes,
            time_remaining_s=self.time_remaining_s(),
            elapsed_s=self.elapsed_s(),
        )

    def time_remaining_s(self) -> float | None:
        if self._time_limit is None or self._state is not SessionState.RUNNING:
            return None
        return self._time_limit.remaining_s(self._clock.now())

    def elapsed_s(self) -> float:
        if self._started_at_s is None:
            return 0.0
        end = self._ended_at_s if self._ended_at_s is not None else self._clock.now()
        return max(0.0, end - self._started_at_s)

    def owned_timers(self) -> tuple[TimerHandle, ...]:
        return tuple(self._owned_timers)

    # ------------------------------------------------------------------
    # Hooks

    def _mode_options(self, options: Mapping[str, Any], question_count: int) -> dict[str, Any]:
        return {}

    def _on_start(self) -> None:
        pass

    def _on_end(self, termination: Termination) -> None:
        pass

    def _handle_response(self, response: object) -> Outcome:
        raise NotImplementedError

    def _position(self) -> int:
        return len(self._outcomes)

    def _answered_count(self) -> int:
        return sum(1 for o in self._outcomes if o.attempted)

    def _correct_count(self) -> int:
        return sum(1 for o in self._outcomes if o.is_correct)

    def _percentage(self) -> int:
        return percentage(self._correct_count(), len(self._items))

    def _result_extras(self) -> dict[str, Any]:
        return {}

    # ------------------------------------------------------------------
    # Helpers for subclasses

    def _schedule_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = self._timers.call_later(delay_s, callback)
        self._owned_timers.append(handle)
        return handle

    def _schedule_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = self._timers.call_every(interval_s, callback)
        self._owned_timers.append(handle)
        return handle

    def _register_mistake(self) -> bool:
        """Count a mistake. Returns True when the configured ceiling is reached."""

        self._mistakes += 1
        assert self._config is not None
        limit = self._config.max_mistakes
        return limit > 0 and self._mistakes >= limit

    def _end(self, termination: Termination) -> None:
        if self._state is not SessionState.RUNNING:
            return
        self._state = SessionState.DONE
        self._termination = termination
        self._ended_at_s = self._clock.now()
        self._cancel_timers()
        self._on_end(termination)

    def _on_time_limit(self) -> None:
        self._end(Termination.TIME_LIMIT)

    def _cancel_timers(self) -> None:
        for handle in self._owned_timers:
            handle.cancel()

    def _build_result(self) -> SessionResult:
        assert self._termination is not None
        return SessionResult(
            mode_id=self.metadata.id,
            total_items=len(self._items),
            answered_items=self._answered_count(),
            correct_count=self._correct_count(),
            mistake_count=self._mistakes,
            percentage=self._percentage(),
            elapsed_s=self.elapsed_s(),
            termination=self._termination,
            outcomes=tuple(self._outcomes),
            **self._result_extras(),
        )


def _parse_categories(value: object) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError("categories must be a list of names")
    names = tuple(sorted({str(v).strip() for v in value if str(v).strip()}))
    if not names:
        raise ConfigurationError("Select at least one category")
    return names


def _filter_by_categories(
    questions: Sequence[Question],
    categories: tuple[str, ...] | None,
) -> tuple[Question, ...]:
    if categories is None:
        return tuple(questions)
    wanted = set(categories)
    return tuple(q for q in questions if q.category in wanted)


def as_int(value: object, fallback: int) -> int:
    if value is None or isinstance(value, bool):
        return int(fallback)
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return int(fallback)
    return int(out) if math.isfinite(out) else int(fallback)


def as_float(value: object, fallback: float) -> float:
    if value is None or isinstance(value, bool):
        return float(fallback)
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return float(fallback)
    return out if math.isfinite(out) else float(fallback)


def as_bool(value: object, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    if isinstance(value, int):
        return value != 0
    return fallback
