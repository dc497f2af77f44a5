from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


class Termination(str, Enum):
    COMPLETED = "completed"
    TIME_LIMIT = "time_limit"
    MISTAKE_LIMIT = "mistake_limit"
    ENDED_EARLY = "ended_early"


class OutcomeStatus(str, Enum):
    CORRECT = "correct"
    WRONG = "wrong"
    KNOWN = "known"
    UNKNOWN = "unknown"
    # Matching distinguishes a wrong connection from no connection at all.
    WRONG_PICK = "wrong_pick"
    NO_PICK = "no_pick"
    NOT_REACHED = "not_reached"


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    question_id: str
    is_correct: bool
    status: OutcomeStatus
    response: str = ""
    expected: str = ""
    inconsistent: bool = False

    @property
    def attempted(self) -> bool:
        return self.status is not OutcomeStatus.NOT_REACHED


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Final, immutable summary of one session run.

    Built exactly once by ``finish()`` and handed to the controller, which is
    the only component that persists it.
    """

    mode_id: str
    total_items: int
    answered_items: int
    correct_count: int
    mistake_count: int
    percentage: int
    elapsed_s: float
    termination: Termination
    outcomes: tuple[ItemOutcome, ...] = ()
    known_cards: int | None = None
    stages_completed: int | None = None
    inconsistent_items: int = 0

    @property
    def time_limit_reached(self) -> bool:
        return self.termination is Termination.TIME_LIMIT

    @property
    def mistake_limit_reached(self) -> bool:
        return self.termination is Termination.MISTAKE_LIMIT

    @property
    def ended_early(self) -> bool:
        return self.termination is Termination.ENDED_EARLY


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One persisted session summary. ``to_dict`` uses the camelCase storage keys."""

    date: str
    mode: str
    score: int
    total: int
    percentage: int
    time_spent: int
    mistakes_count: int
    termination: str = Termination.COMPLETED.value

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date,
            "mode": self.mode,
            "score": self.score,
            "total": self.total,
            "percentage": self.percentage,
            "timeSpent": self.time_spent,
            "mistakesCount": self.mistakes_count,
            "termination": self.termination,
        }

    @classmethod
    def from_dict(cls, data: object) -> "HistoryEntry":
        """Strict parse; raises ValueError describing the first bad field."""

        if not isinstance(data, Mapping):
            raise ValueError("history entry is not an object")
        date = data.get("date")
        if not isinstance(date, str) or date.strip() == "":
            raise ValueError("history entry has no date")
        mode = data.get("mode", "")
        if not isinstance(mode, str):
            raise ValueError("history entry mode is not a string")
        termination = data.get("termination", Termination.COMPLETED.value)
        if not isinstance(termination, str):
            raise ValueError("history entry termination is not a string")
        return cls(
            date=date,
            mode=mode,
            score=_count(data, "score"),
            total=_count(data, "total"),
            percentage=_count(data, "percentage"),
            time_spent=_count(data, "timeSpent"),
            mistakes_count=_count(data, "mistakesCount"),
            termination=termination,
        )


@dataclass(slots=True)
class QuestionStat:
    attempts: int = 0
    correct: int = 0
    incorrect: int = 0

    @property
    def error_rate(self) -> float:
        return 0.0 if self.attempts <= 0 else self.incorrect / self.attempts

    def record(self, is_correct: bool) -> None:
        self.attempts += 1
        if is_correct:
            self.correct += 1
        else:
            self.incorrect += 1

    def to_dict(self) -> dict[str, int]:
        return {"attempts": self.attempts, "correct": self.correct, "incorrect": self.incorrect}

    @classmethod
    def from_dict(cls, data: object) -> "QuestionStat":
        if not isinstance(data, Mapping):
            raise ValueError("question stat is not an object")
        stat = cls(
            attempts=_count(data, "attempts"),
            correct=_count(data, "correct"),
            incorrect=_count(data, "incorrect"),
        )
        if stat.correct + stat.incorrect > stat.attempts:
            raise ValueError("question stat counts exceed attempts")
        return stat


@dataclass(frozen=True, slots=True)
class SaveReport:
    """What the persistence step managed to write for one finished session."""

    history_saved: bool
    stats_saved: bool
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def saved(self) -> bool:
        return self.history_saved and self.stats_saved


def history_entry_from_result(result: SessionResult, *, date: str | None = None) -> HistoryEntry:
    """Build the persisted summary for a finished session."""

    return HistoryEntry(
        date=date or utc_now_iso(),
        mode=str(result.mode_id),
        score=int(result.correct_count),
        total=int(result.total_items),
        percentage=int(result.percentage),
        time_spent=int(round(result.elapsed_s)),
        mistakes_count=int(result.mistake_count),
        termination=result.termination.value,
    )


def utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _count(data: Mapping[str, object], key: str) -> int:
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be a whole number")
    if value < 0:
        raise ValueError(f"{key} must be >= 0")
    return value
