from __future__ import annotations

from dataclasses import dataclass

from .bank import Answer, Question
from .clock import TimerQueue
from .results import ItemOutcome, OutcomeStatus, Termination
from .session_core import BaseSession, Command, ModeDefaults, ModeMetadata, Outcome, SessionState

TRUE_FALSE_DEFAULTS = ModeDefaults(
    question_count=20,
    time_limit_minutes=0.0,
    shuffle_questions=True,
    show_comments=True,
)


@dataclass(frozen=True, slots=True)
class Statement:
    question_id: str
    asserted: str
    truth: bool
    borrowed_from: str | None = None
    inconsistent: bool = False  # truth could not be synthesized as requested


@dataclass(frozen=True, slots=True)
class StatementItem:
    question: Question
    position: int
    total: int
    text: str
    asserted: str
    answered: bool = False
    response: bool | None = None
    is_correct: bool | None = None
    truth: bool | None = None  # revealed once answered
    comment: str | None = None


def _texts(answers: tuple[Answer, ...]) -> list[str]:
    return [a.text for a in answers if a.text]


class TrueFalseSession(BaseSession):
    """Each question becomes a claim about one of its answers; judge it."""

    metadata = ModeMetadata(
        id="true-false",
        name="True / false",
        description="Decide whether the statement built from the question is true.",
        icon="check",
    )
    defaults = TRUE_FALSE_DEFAULTS

    def __init__(self, *, timers: TimerQueue, seed: int) -> None:
        super().__init__(timers=timers, seed=seed)
        self._index = 0
        self._statement: Statement | None = None
        self._answered: ItemOutcome | None = None
        self._response: bool | None = None

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        if not question.prompt:
            return False
        return len(_texts(question.correct_answers)) > 0

    def synthesize(self, question: Question) -> Statement:
        """Build a statement for ``question``. A fair coin picks the intended truth."""

        own_correct = _texts(question.correct_answers)
        if self._rng.random() < 0.5:
            return Statement(question.id, self._rng.choice(own_correct), True)

        own_incorrect = _texts(question.incorrect_answers)
        if own_incorrect:
            return Statement(question.id, self._rng.choice(own_incorrect), False)

        # Borrow a correct answer from another selected question.
        excluded = set(own_correct)
        donors: list[tuple[str, str]] = []
        for other in self._items:
            if other.id == question.id:
                continue
            for text in _texts(other.correct_answers):
                if text not in excluded:
                    donors.append((other.id, text))
        if donors:
            donor_id, text = self._rng.choice(donors)
            return Statement(question.id, text, False, borrowed_from=donor_id)

        answer = self._rng.choice([a for a in question.answers if a.text])
        return Statement(question.id, answer.text, answer.is_correct is True, inconsistent=True)

    def current_item(self) -> StatementItem | None:
        if self._state is not SessionState.RUNNING or self._statement is None:
            return None
        question = self._items[self._index]
        st = self._statement
        answered = self._answered is not None
        show_comment = answered and self._config is not None and self._config.show_comments
        return StatementItem(
            question=question,
            position=self._index,
            total=len(self._items),
            text=f'{question.prompt} "{st.asserted}"',
            asserted=st.asserted,
            answered=answered,
            response=self._response,
            is_correct=None if self._answered is None else self._answered.is_correct,
            truth=st.truth if answered else None,
            comment=question.comment if show_comment else None,
        )

    def _on_start(self) -> None:
        self._deal(0)

    def _position(self) -> int:
        return self._index

    def _deal(self, index: int) -> None:
        self._index = index
        self._statement = self.synthesize(self._items[index])
        self._answered = None
        self._response = None

    def _handle_response(self, response: object) -> Outcome:
        question = self._items[self._index]
        st = self._statement
        assert st is not None

        if response is Command.NEXT:
            if self._answered is None:
                return Outcome.rejected("not_answered", question_id=question.id)
            if self._index + 1 >= len(self._items):
                self._end(Termination.COMPLETED)
                return Outcome(accepted=True, question_id=question.id, finished=True)
            self._deal(self._index + 1)
            return Outcome(accepted=True, question_id=self._items[self._index].id)

        if not isinstance(response, bool):
            return Outcome.rejected("invalid_response", question_id=question.id)
        if self._answered is not None:
            return Outcome.rejected("already_answered", question_id=question.id)

        is_correct = response is st.truth
        outcome = ItemOutcome(
            question_id=question.id,
            is_correct=is_correct,
            status=OutcomeStatus.CORRECT if is_correct else OutcomeStatus.WRONG,
            response="true" if response else "false",
            expected="true" if st.truth else "false",
            inconsistent=st.inconsistent,
        )
        self._answered = outcome
        self._response = response
        self._outcomes.append(outcome)

        if not is_correct and self._register_mistake():
            self._end(Termination.MISTAKE_LIMIT)
        return Outcome(
            accepted=True,
            question_id=question.id,
            is_correct=is_correct,
            finished=self.is_complete(),
        )

    def _result_extras(self) -> dict[str, object]:
        return {"inconsistent_items": sum(1 for o in self._outcomes if o.inconsistent)}
