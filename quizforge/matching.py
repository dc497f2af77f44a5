from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .bank import Question
from .clock import TimerQueue
from .results import ItemOutcome, OutcomeStatus, Termination
from .session_core import (
    BaseSession,
    Command,
    ConfigurationError,
    ModeDefaults,
    ModeMetadata,
    Outcome,
    SessionState,
    as_float,
    as_int,
    chunk,
    percentage,
)

MIN_PAIRS_PER_STAGE = 2
MAX_PAIRS_PER_STAGE = 10

MATCHING_DEFAULTS = ModeDefaults(
    question_count=20,
    time_limit_minutes=0.0,
    shuffle_questions=True,
    pairs_per_stage=5,
    stage_advance_delay_s=0.0,
)


@dataclass(frozen=True, slots=True)
class SelectQuestion:
    question_id: str


@dataclass(frozen=True, slots=True)
class SelectSlot:
    slot_id: str


@dataclass(frozen=True, slots=True)
class MatchEntry:
    question: Question

    @property
    def question_id(self) -> str:
        return self.question.id


@dataclass(frozen=True, slots=True)
class MatchSlot:
    slot_id: str
    text: str


@dataclass(frozen=True, slots=True)
class Stage:
    index: int
    entries: tuple[MatchEntry, ...]
    slots: tuple[MatchSlot, ...]
    pairing: Mapping[str, str]  # question id -> slot id, fixed when generated


@dataclass(frozen=True, slots=True)
class StageItem:
    stage_index: int
    stage_count: int
    entries: tuple[MatchEntry, ...]
    slots: tuple[MatchSlot, ...]
    connections: tuple[tuple[str, str], ...]  # (question id, slot id)
    armed: str | None
    checked: bool
    results: tuple[ItemOutcome, ...]
    mistakes: int
    elapsed_display_s: int


class MatchingSession(BaseSession):
    """Staged pairwise matching.

    Questions are dealt in stages. Column A lists the stage's questions,
    column B one correct answer text per question under a synthetic slot id.
    The user connects every entry to a slot, then checks the stage.
    """

    metadata = ModeMetadata(
        id="matching-stage",
        name="Matching",
        description="Connect each question to its answer, stage by stage.",
        icon="link",
    )
    defaults = MATCHING_DEFAULTS

    def __init__(self, *, timers: TimerQueue, seed: int) -> None:
        super().__init__(timers=timers, seed=seed)
        self._chunks: list[tuple[Question, ...]] = []
        self._stage: Stage | None = None
        self._stage_index = 0
        self._links: dict[str, str] = {}
        self._slot_owner: dict[str, str] = {}
        self._armed: str | None = None
        self._checked = False
        self._stage_results: tuple[ItemOutcome, ...] = ()
        self._stages_completed = 0
        self._elapsed_ticks = 0

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        if not question.prompt:
            return False
        return any(a.text for a in question.correct_answers)

    def _mode_options(self, options: Mapping[str, Any], question_count: int) -> dict[str, Any]:
        pairs = as_int(options.get("pairs_per_stage"), self.defaults.pairs_per_stage)
        pairs = max(MIN_PAIRS_PER_STAGE, min(pairs, MAX_PAIRS_PER_STAGE))
        pairs = min(pairs, question_count)
        delay = as_float(options.get("stage_advance_delay_s"), self.defaults.stage_advance_delay_s)
        if delay < 0:
            raise ConfigurationError("stage_advance_delay_s must be >= 0")
        return {"pairs_per_stage": pairs, "stage_advance_delay_s": delay}

    @property
    def stage(self) -> Stage | None:
        return self._stage

    @property
    def stage_count(self) -> int:
        return len(self._chunks)

    def connections(self) -> dict[str, str]:
        return dict(self._links)

    def current_item(self) -> StageItem | None:
        if self._state is not SessionState.RUNNING or self._stage is None:
            return None
        st = self._stage
        return StageItem(
            stage_index=st.index,
            stage_count=len(self._chunks),
            entries=st.entries,
            slots=st.slots,
            connections=tuple(
                (e.question_id, self._links[e.question_id]) for e in st.entries if e.question_id in self._links
            ),
            armed=self._armed,
            checked=self._checked,
            results=self._stage_results,
            mistakes=self._mistakes,
            elapsed_display_s=self._elapsed_ticks,
        )

    def _on_start(self) -> None:
        assert self._config is not None
        self._chunks = chunk(self._items, self._config.pairs_per_stage)
        self._schedule_every(1.0, self._on_elapsed_tick)
        self._enter_stage(0)

    def _on_elapsed_tick(self) -> None:
        self._elapsed_ticks += 1

    def _build_stage(self, index: int) -> Stage:
        questions = self._chunks[index]
        slots: list[MatchSlot] = []
        pairing: dict[str, str] = {}
        for n, q in enumerate(questions, start=1):
            slot_id = f"s{index}-{n}"
            text = self._rng.choice([a.text for a in q.correct_answers if a.text])
            slots.append(MatchSlot(slot_id, text))
            pairing[q.id] = slot_id
        entries = self._rng.shuffled([MatchEntry(q) for q in questions])
        return Stage(
            index=index,
            entries=tuple(entries),
            slots=tuple(self._rng.shuffled(slots)),
            pairing=pairing,
        )

    def _enter_stage(self, index: int) -> None:
        self._stage_index = index
        self._stage = self._build_stage(index)
        self._links = {}
        self._slot_owner = {}
        self._armed = None
        self._checked = False
        self._stage_results = ()

    def _handle_response(self, response: object) -> Outcome:
        st = self._stage
        assert st is not None

        if isinstance(response, SelectQuestion):
            if self._checked:
                return Outcome.rejected("stage_checked", question_id=response.question_id)
            if response.question_id not in st.pairing:
                return Outcome.rejected("unknown_question", question_id=response.question_id)
            self._armed = None if self._armed == response.question_id else response.question_id
            return Outcome(accepted=True, question_id=response.question_id)

        if isinstance(response, SelectSlot):
            if self._checked:
                return Outcome.rejected("stage_checked")
            if not any(s.slot_id == response.slot_id for s in st.slots):
                return Outcome.rejected("unknown_slot")
            if self._armed is None:
                return Outcome.rejected("nothing_armed")
            self._connect(self._armed, response.slot_id)
            qid = self._armed
            self._armed = None
            return Outcome(accepted=True, question_id=qid)

        if response is Command.CHECK:
            if self._checked:
                return Outcome.rejected("stage_checked")
            if len(self._links) < len(st.entries):
                return Outcome.rejected("incomplete_stage")
            return self._check_stage()

        return Outcome.rejected("invalid_response")

    def _connect(self, question_id: str, slot_id: str) -> None:
        previous_owner = self._slot_owner.pop(slot_id, None)
        if previous_owner is not None:
            self._links.pop(previous_owner, None)
        previous_slot = self._links.pop(question_id, None)
        if previous_slot is not None:
            self._slot_owner.pop(previous_slot, None)
        self._links[question_id] = slot_id
        self._slot_owner[slot_id] = question_id

    def _score_stage(self) -> tuple[ItemOutcome, ...]:
        st = self._stage
        assert st is not None
        slot_text = {s.slot_id: s.text for s in st.slots}
        scored: list[ItemOutcome] = []
        for entry in st.entries:
            qid = entry.question_id
            expected = st.pairing[qid]
            picked = self._links.get(qid)
            if picked is None:
                status = OutcomeStatus.NO_PICK
            elif picked == expected:
                status = OutcomeStatus.CORRECT
            else:
                status = OutcomeStatus.WRONG_PICK
            scored.append(
                ItemOutcome(
                    question_id=qid,
                    is_correct=status is OutcomeStatus.CORRECT,
                    status=status,
                    response="" if picked is None else slot_text[picked],
                    expected=slot_text[expected],
                )
            )
        self._checked = True
        self._armed = None
        self._stage_results = tuple(scored)
        self._outcomes.extend(scored)
        self._mistakes += sum(1 for o in scored if not o.is_correct)
        return self._stage_results

    def _check_stage(self) -> Outcome:
        assert self._config is not None
        results = self._score_stage()
        self._stages_completed += 1
        wrong = sum(1 for o in results if not o.is_correct)

        limit = self._config.max_mistakes
        if limit > 0 and self._mistakes >= limit:
            self._end(Termination.MISTAKE_LIMIT)
        elif self._stage_index + 1 >= len(self._chunks):
            self._end(Termination.COMPLETED)
        elif self._config.stage_advance_delay_s > 0:
            self._schedule_later(self._config.stage_advance_delay_s, self._advance)
        else:
            self._advance()
        return Outcome(accepted=True, is_correct=wrong == 0, finished=self.is_complete())

    def _advance(self) -> None:
        if self._state is SessionState.RUNNING:
            self._enter_stage(self._stage_index + 1)

    def _on_end(self, termination: Termination) -> None:
        if termination is Termination.COMPLETED:
            return
        if self._stage is not None and not self._checked:
            self._score_stage()
        for questions in self._chunks[self._stage_index + 1 :]:
            for q in questions:
                self._outcomes.append(
                    ItemOutcome(question_id=q.id, is_correct=False, status=OutcomeStatus.NOT_REACHED)
                )
                self._mistakes += 1

    def _position(self) -> int:
        return self._stage_index

    def _percentage(self) -> int:
        total = len(self._items)
        return percentage(max(0, total - self._mistakes), total)

    def _result_extras(self) -> dict[str, object]:
        return {"stages_completed": self._stages_completed}
