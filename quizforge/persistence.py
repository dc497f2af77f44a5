"""Result persistence over a key/value string store.

Per bank two keys are kept, ``<prefix>_<bank>_history`` (a JSON array of
history entries, newest last, capped) and ``<prefix>_<bank>_stats`` (a JSON
object of per-question counters). Every value goes through :func:`dumps`, so
writing back a value that was just read produces the same bytes.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from .config import AppConfig
from .results import (
    HistoryEntry,
    ItemOutcome,
    QuestionStat,
    SaveReport,
    SessionResult,
    history_entry_from_result,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    pass


class ImportFormatError(ValueError):
    pass


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def list_keys(self, prefix: str = "") -> list[str]:
        ...


class MemoryStore:
    """In-process store. Keys are listed in insertion order."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("value must be a string")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


@dataclass(frozen=True, slots=True)
class ImportReport:
    applied: tuple[str, ...] = ()
    rejected: Mapping[str, str] = field(default_factory=dict)  # bank id -> reason

    @property
    def ok(self) -> bool:
        return not self.rejected


def dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class ResultStore:
    def __init__(self, store: KeyValueStore, config: AppConfig | None = None) -> None:
        self._store = store
        self._config = config or AppConfig()

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # Raw access

    def _read(self, key: str) -> str | None:
        try:
            return self._store.get(key)
        except Exception as exc:
            raise PersistenceError(f"Could not read {key}: {exc}") from exc

    def _write(self, key: str, value: object) -> None:
        try:
            self._store.set(key, dumps(value))
        except Exception as exc:
            raise PersistenceError(f"Could not write {key}: {exc}") from exc

    def _remove(self, key: str) -> None:
        try:
            self._store.remove(key)
        except Exception as exc:
            raise PersistenceError(f"Could not remove {key}: {exc}") from exc

    def _keys(self) -> list[str]:
        try:
            return list(self._store.list_keys(f"{self._config.storage_prefix}_"))
        except Exception as exc:
            raise PersistenceError(f"Could not list keys: {exc}") from exc

    def _read_json(self, key: str) -> Any:
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(f"{key} does not hold valid JSON") from exc

    # ------------------------------------------------------------------
    # Reads

    def bank_ids(self) -> list[str]:
        prefix = f"{self._config.storage_prefix}_"
        ids: set[str] = set()
        for key in self._keys():
            body = key[len(prefix) :]
            for suffix in ("_history", "_stats"):
                if body.endswith(suffix) and len(body) > len(suffix):
                    ids.add(body[: -len(suffix)])
        return sorted(ids)

    def load_history(self, bank_id: str) -> list[HistoryEntry]:
        data = self._read_json(self._config.history_key(bank_id))
        if data is None:
            return []
        try:
            return _parse_history(data)
        except ValueError as exc:
            raise PersistenceError(f"History for {bank_id} is corrupt: {exc}") from exc

    def load_stats(self, bank_id: str) -> dict[str, QuestionStat]:
        data = self._read_json(self._config.stats_key(bank_id))
        if data is None:
            return {}
        try:
            return _parse_stats(data)
        except ValueError as exc:
            raise PersistenceError(f"Stats for {bank_id} are corrupt: {exc}") from exc

    def storage_used(self) -> int:
        """UTF-8 bytes held under this store's prefix, keys included."""

        used = 0
        for key in self._keys():
            used += len(key.encode("utf-8")) + len((self._read(key) or "").encode("utf-8"))
        return used

    # ------------------------------------------------------------------
    # Writes

    def append_history(self, bank_id: str, entry: HistoryEntry) -> list[HistoryEntry]:
        history = self.load_history(bank_id)
        history.append(entry)
        history = history[-self._config.history_limit :]
        self._write(self._config.history_key(bank_id), [h.to_dict() for h in history])
        return history

    def update_stats(self, bank_id: str, outcomes: Iterable[ItemOutcome]) -> dict[str, QuestionStat]:
        stats = self.load_stats(bank_id)
        for outcome in outcomes:
            if not outcome.attempted:
                continue
            stats.setdefault(outcome.question_id, QuestionStat()).record(outcome.is_correct)
        self._write(self._config.stats_key(bank_id), {qid: s.to_dict() for qid, s in stats.items()})
        return stats

    def record_session(self, bank_id: str, result: SessionResult, *, date: str | None = None) -> SaveReport:
        """Persist one finished session. Failures are reported, never raised."""

        errors: list[str] = []
        history_saved = stats_saved = False
        try:
            self.append_history(bank_id, history_entry_from_result(result, date=date))
            history_saved = True
        except PersistenceError as exc:
            logger.error("Saving history for %s failed: %s", bank_id, exc)
            errors.append(str(exc))
        try:
            self.update_stats(bank_id, result.outcomes)
            stats_saved = True
        except PersistenceError as exc:
            logger.error("Saving question stats for %s failed: %s", bank_id, exc)
            errors.append(str(exc))
        if history_saved and stats_saved:
            logger.info("Saved %s result for %s (%d%%)", result.mode_id, bank_id, result.percentage)
        return SaveReport(history_saved=history_saved, stats_saved=stats_saved, errors=tuple(errors))

    def clear_bank(self, bank_id: str) -> None:
        self._remove(self._config.history_key(bank_id))
        self._remove(self._config.stats_key(bank_id))
        logger.info("Cleared stored results for %s", bank_id)

    def clear_all(self) -> None:
        for key in self._keys():
            self._remove(key)
        logger.info("Cleared all stored results")

    # ------------------------------------------------------------------
    # Export / import

    def export_data(self, *, export_date: str | None = None) -> dict[str, Any]:
        tests: dict[str, Any] = {}
        for bank_id in self.bank_ids():
            history = self._read_json(self._config.history_key(bank_id))
            stats = self._read_json(self._config.stats_key(bank_id))
            tests[bank_id] = {
                "history": [] if history is None else history,
                "stats": {} if stats is None else stats,
            }
        return {
            "version": self._config.version,
            "exportDate": export_date or utc_now_iso(),
            "tests": tests,
        }

    def import_data(self, payload: object) -> ImportReport:
        """Apply an export snapshot bank by bank.

        A bank is written only once its whole entry has validated; a bank that
        fails validation or writing is reported and leaves its stored data as
        it was.
        """

        if not isinstance(payload, Mapping):
            raise ImportFormatError("Import payload is not an object")
        tests = payload.get("tests")
        if not isinstance(tests, Mapping):
            raise ImportFormatError("Import payload has no 'tests' object")

        applied: list[str] = []
        rejected: dict[str, str] = {}
        for bank_id, entry in tests.items():
            bank_id = str(bank_id)
            try:
                history, stats = self._validate_import_entry(bank_id, entry)
            except ValueError as exc:
                logger.warning("Import of %s rejected: %s", bank_id, exc)
                rejected[bank_id] = str(exc)
                continue
            try:
                self._apply_import(bank_id, history, stats)
            except PersistenceError as exc:
                logger.error("Import of %s failed: %s", bank_id, exc)
                rejected[bank_id] = str(exc)
                continue
            applied.append(bank_id)

        logger.info("Imported %d bank(s), rejected %d", len(applied), len(rejected))
        return ImportReport(applied=tuple(applied), rejected=rejected)

    def _validate_import_entry(self, bank_id: str, entry: object) -> tuple[list[Any] | None, dict[str, Any] | None]:
        if bank_id.strip() == "":
            raise ValueError("bank id is empty")
        if not isinstance(entry, Mapping):
            raise ValueError("entry is not an object")
        history = entry.get("history")
        stats = entry.get("stats")
        if history is None and stats is None:
            raise ValueError("entry has neither history nor stats")
        if history is not None:
            _parse_history(history)
            history = list(history)[-self._config.history_limit :]
        if stats is not None:
            _parse_stats(stats)
            stats = dict(stats)
        return history, stats

    def _apply_import(self, bank_id: str, history: list[Any] | None, stats: dict[str, Any] | None) -> None:
        history_key = self._config.history_key(bank_id)
        previous_history = self._read(history_key)
        if history is not None:
            self._write(history_key, history)
        if stats is None:
            return
        try:
            self._write(self._config.stats_key(bank_id), stats)
        except PersistenceError:
            if history is not None:
                self._restore(history_key, previous_history)
            raise

    def _restore(self, key: str, raw: str | None) -> None:
        try:
            if raw is None:
                self._store.remove(key)
            else:
                self._store.set(key, raw)
        except Exception:
            logger.exception("Could not restore %s after a failed import", key)


def _parse_history(data: object) -> list[HistoryEntry]:
    if not isinstance(data, list):
        raise ValueError("history is not a list")
    return [HistoryEntry.from_dict(item) for item in data]


def _parse_stats(data: object) -> dict[str, QuestionStat]:
    if not isinstance(data, Mapping):
        raise ValueError("stats is not an object")
    return {str(qid): QuestionStat.from_dict(stat) for qid, stat in data.items()}
