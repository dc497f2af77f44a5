from __future__ import annotations

from dataclasses import dataclass

from .bank import Question
from .clock import TimerQueue
from .results import ItemOutcome, OutcomeStatus, Termination
from .session_core import BaseSession, Command, ModeDefaults, ModeMetadata, Outcome, SessionState

MULTIPLE_CHOICE_DEFAULTS = ModeDefaults(
    question_count=25,
    time_limit_minutes=30.0,
    max_mistakes=0,
    shuffle_questions=True,
    shuffle_answers=True,
    show_comments=True,
)


@dataclass(frozen=True, slots=True)
class Choice:
    index: int  # position in Question.answers
    text: str


@dataclass(frozen=True, slots=True)
class ChoiceItem:
    question: Question
    position: int
    total: int
    choices: tuple[Choice, ...]
    answered: bool = False
    chosen_index: int | None = None
    is_correct: bool | None = None
    comment: str | None = None  # only once answered and comments are enabled


class MultipleChoiceSession(BaseSession):
    """Classic test: pick an answer, see whether it was right, move on."""

    metadata = ModeMetadata(
        id="multiple-choice",
        name="Multiple choice",
        description="Choose the correct answer from the offered options.",
        icon="list",
    )
    defaults = MULTIPLE_CHOICE_DEFAULTS

    def __init__(self, *, timers: TimerQueue, seed: int) -> None:
        super().__init__(timers=timers, seed=seed)
        self._index = 0
        self._choices: tuple[Choice, ...] = ()
        self._answered: ItemOutcome | None = None
        self._chosen: int | None = None

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        if not question.prompt or len(question.answers) < 2:
            return False
        for answer in question.answers:
            if not answer.text or answer.is_correct is None:
                return False
        return question.has_correct_answer

    def current_item(self) -> ChoiceItem | None:
        if self._state is not SessionState.RUNNING:
            return None
        question = self._items[self._index]
        answered = self._answered is not None
        comment = None
        if answered and self._config is not None and self._config.show_comments:
            comment = question.comment
        return ChoiceItem(
            question=question,
            position=self._index,
            total=len(self._items),
            choices=self._choices,
            answered=answered,
            chosen_index=self._chosen,
            is_correct=None if self._answered is None else self._answered.is_correct,
            comment=comment,
        )

    def _on_start(self) -> None:
        self._deal(0)

    def _position(self) -> int:
        return self._index

    def _deal(self, index: int) -> None:
        assert self._config is not None
        question = self._items[index]
        choices = tuple(Choice(i, a.text) for i, a in enumerate(question.answers))
        if self._config.shuffle_answers:
            choices = tuple(self._rng.shuffled(choices))
        self._index = index
        self._choices = choices
        self._answered = None
        self._chosen = None

    def _handle_response(self, response: object) -> Outcome:
        question = self._items[self._index]

        if response is Command.NEXT:
            if self._answered is None:
                return Outcome.rejected("not_answered", question_id=question.id)
            if self._index + 1 >= len(self._items):
                self._end(Termination.COMPLETED)
                return Outcome(accepted=True, question_id=question.id, finished=True)
            self._deal(self._index + 1)
            return Outcome(accepted=True, question_id=self._items[self._index].id)

        if isinstance(response, Choice):
            response = response.index
        if isinstance(response, bool) or not isinstance(response, int):
            return Outcome.rejected("invalid_response", question_id=question.id)
        if self._answered is not None:
            return Outcome.rejected("already_answered", question_id=question.id)
        if not 0 <= response < len(question.answers):
            return Outcome.rejected("unknown_answer", question_id=question.id)

        picked = question.answers[response]
        is_correct = picked.is_correct is True
        outcome = ItemOutcome(
            question_id=question.id,
            is_correct=is_correct,
            status=OutcomeStatus.CORRECT if is_correct else OutcomeStatus.WRONG,
            response=picked.text,
            expected=" | ".join(a.text for a in question.correct_answers),
        )
        self._answered = outcome
        self._chosen = response
        self._outcomes.append(outcome)

        if not is_correct and self._register_mistake():
            self._end(Termination.MISTAKE_LIMIT)
        return Outcome(
            accepted=True,
            question_id=question.id,
            is_correct=is_correct,
            finished=self.is_complete(),
        )
