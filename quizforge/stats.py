"""Read-side statistics over persisted results. Nothing here writes."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from .persistence import PersistenceError, ResultStore
from .results import HistoryEntry, QuestionStat
from .session_core import percentage, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HistorySummary:
    attempts: int = 0
    best: int = 0
    average: int = 0
    last: int = 0
    improvement: int = 0


@dataclass(frozen=True, slots=True)
class HardQuestion:
    question_id: str
    attempts: int
    correct: int
    incorrect: int
    error_rate: float


@dataclass(frozen=True, slots=True)
class BankSummary:
    bank_id: str
    history: HistorySummary
    question_count: int
    total_attempts: int


@dataclass(frozen=True, slots=True)
class GlobalSummary:
    banks: int = 0
    attempts: int = 0
    questions: int = 0
    correct: int = 0
    time_spent: int = 0
    average_percentage: int = 0


@dataclass(frozen=True, slots=True)
class ChartSeries:
    labels: tuple[str, ...] = ()
    values: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class StorageUsage:
    used: int
    limit: int

    @property
    def percentage(self) -> int:
        return percentage(self.used, self.limit)

    @property
    def used_kb(self) -> int:
        return round_half_up(self.used / 1024)


def _by_date(entries: Sequence[HistoryEntry]) -> list[HistoryEntry]:
    # Stable, so entries sharing a timestamp keep their stored order.
    return sorted(entries, key=lambda e: e.date)


def summarize_history(entries: Sequence[HistoryEntry]) -> HistorySummary:
    if not entries:
        return HistorySummary()
    ordered = _by_date(entries)
    scores = [e.percentage for e in ordered]
    return HistorySummary(
        attempts=len(scores),
        best=max(scores),
        average=round_half_up(sum(scores) / len(scores)),
        last=scores[-1],
        improvement=scores[-1] - scores[0],
    )


def rank_hardest(stats: Mapping[str, QuestionStat], limit: int = 10) -> list[HardQuestion]:
    if limit <= 0:
        return []
    ranked = [
        HardQuestion(
            question_id=qid,
            attempts=s.attempts,
            correct=s.correct,
            incorrect=s.incorrect,
            error_rate=s.error_rate,
        )
        for qid, s in stats.items()
        if s.attempts > 0
    ]
    ranked.sort(key=lambda h: (-h.error_rate, -h.attempts, h.question_id))
    return ranked[:limit]


def chart_series(entries: Sequence[HistoryEntry]) -> ChartSeries:
    """Oldest first; labels are ``day.month``."""

    labels: list[str] = []
    values: list[int] = []
    for e in _by_date(entries):
        labels.append(_day_month(e.date))
        values.append(e.percentage)
    return ChartSeries(labels=tuple(labels), values=tuple(values))


def _day_month(stamp: str) -> str:
    try:
        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    except ValueError:
        return stamp
    return f"{parsed.day}.{parsed.month}"


class StatsAggregator:
    """Summaries over a :class:`ResultStore`. Unreadable data counts as empty."""

    def __init__(self, results: ResultStore) -> None:
        self._results = results

    def history(self, bank_id: str) -> list[HistoryEntry]:
        try:
            return self._results.load_history(bank_id)
        except PersistenceError as exc:
            logger.warning("Ignoring unreadable history for %s: %s", bank_id, exc)
            return []

    def question_stats(self, bank_id: str) -> dict[str, QuestionStat]:
        try:
            return self._results.load_stats(bank_id)
        except PersistenceError as exc:
            logger.warning("Ignoring unreadable stats for %s: %s", bank_id, exc)
            return {}

    def bank_summary(self, bank_id: str) -> BankSummary:
        stats = self.question_stats(bank_id)
        return BankSummary(
            bank_id=bank_id,
            history=summarize_history(self.history(bank_id)),
            question_count=len(stats),
            total_attempts=sum(s.attempts for s in stats.values()),
        )

    def hardest_questions(self, bank_id: str, limit: int = 10) -> list[HardQuestion]:
        return rank_hardest(self.question_stats(bank_id), limit)

    def chart_series(self, bank_id: str) -> ChartSeries:
        return chart_series(self.history(bank_id))

    def global_summary(self) -> GlobalSummary:
        banks = attempts = questions = correct = time_spent = 0
        for bank_id in self._bank_ids():
            history = self.history(bank_id)
            if not history:
                continue
            banks += 1
            for e in history:
                attempts += 1
                questions += e.total
                correct += e.score
                time_spent += e.time_spent
        return GlobalSummary(
            banks=banks,
            attempts=attempts,
            questions=questions,
            correct=correct,
            time_spent=time_spent,
            average_percentage=percentage(correct, questions),
        )

    def storage_usage(self) -> StorageUsage:
        limit = self._results.config.storage_budget_bytes
        try:
            used = self._results.storage_used()
        except PersistenceError as exc:
            logger.warning("Could not measure storage: %s", exc)
            used = 0
        return StorageUsage(used=used, limit=limit)

    def _bank_ids(self) -> list[str]:
        try:
            return self._results.bank_ids()
        except PersistenceError as exc:
            logger.warning("Could not list stored banks: %s", exc)
            return []
