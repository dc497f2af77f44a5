from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .bank import Question
from .clock import TimerQueue
from .results import ItemOutcome, OutcomeStatus, Termination
from .session_core import (
    BaseSession,
    Command,
    ModeDefaults,
    ModeMetadata,
    Outcome,
    SessionState,
    as_bool,
    percentage,
)

FLASHCARD_DEFAULTS = ModeDefaults(
    question_count=20,
    time_limit_minutes=0.0,
    max_mistakes=5,
    shuffle_questions=True,
    repeat_unknown=True,
)


class Assessment(str, Enum):
    KNOWN = "known"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class CardItem:
    question: Question
    front: str
    back: str | None  # None until revealed
    revealed: bool
    from_review: bool
    known: int
    total: int
    review_pending: int


class FlashcardSession(BaseSession):
    """Self-assessed recall.

    A card is shown, revealed, then marked known or unknown. Unknown cards go
    to a review queue that is drained before the primary deck continues.
    """

    metadata = ModeMetadata(
        id="flashcard",
        name="Flashcards",
        description="Recall the answer, reveal the card and rate yourself.",
        icon="layers",
    )
    defaults = FLASHCARD_DEFAULTS

    def __init__(self, *, timers: TimerQueue, seed: int) -> None:
        super().__init__(timers=timers, seed=seed)
        self._pointer = 0
        self._review: deque[Question] = deque()
        self._current: Question | None = None
        self._current_from_review = False
        self._revealed = False
        self._known: set[str] = set()

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        if not question.prompt:
            return False
        return any(a.text for a in question.correct_answers)

    @property
    def known_ids(self) -> frozenset[str]:
        return frozenset(self._known)

    def review_queue(self) -> tuple[Question, ...]:
        return tuple(self._review)

    def current_item(self) -> CardItem | None:
        if self._state is not SessionState.RUNNING or self._current is None:
            return None
        q = self._current
        back = " | ".join(a.text for a in q.correct_answers if a.text)
        return CardItem(
            question=q,
            front=q.prompt,
            back=back if self._revealed else None,
            revealed=self._revealed,
            from_review=self._current_from_review,
            known=len(self._known),
            total=len(self._items),
            review_pending=len(self._review),
        )

    def _mode_options(self, options: Mapping[str, Any], question_count: int) -> dict[str, Any]:
        return {"repeat_unknown": as_bool(options.get("repeat_unknown"), self.defaults.repeat_unknown)}

    def _on_start(self) -> None:
        self._next_card()

    def _position(self) -> int:
        return self._pointer

    def _next_card(self) -> None:
        assert self._config is not None
        if self._config.repeat_unknown and self._review:
            self._current = self._review.popleft()
            self._current_from_review = True
        elif self._pointer < len(self._items):
            self._current = self._items[self._pointer]
            self._current_from_review = False
            self._pointer += 1
        else:
            self._current = None
            self._end(Termination.COMPLETED)
            return
        self._revealed = False

    def _handle_response(self, response: object) -> Outcome:
        card = self._current
        assert card is not None

        if response is Command.REVEAL:
            if self._revealed:
                return Outcome.rejected("already_revealed", question_id=card.id)
            self._revealed = True
            return Outcome(accepted=True, question_id=card.id)

        if isinstance(response, str) and not isinstance(response, Assessment):
            try:
                response = Assessment(response)
            except ValueError:
                return Outcome.rejected("invalid_response", question_id=card.id)
        if not isinstance(response, Assessment):
            return Outcome.rejected("invalid_response", question_id=card.id)
        if not self._revealed:
            return Outcome.rejected("not_revealed", question_id=card.id)

        known = response is Assessment.KNOWN
        self._outcomes.append(
            ItemOutcome(
                question_id=card.id,
                is_correct=known,
                status=OutcomeStatus.KNOWN if known else OutcomeStatus.UNKNOWN,
                response=response.value,
            )
        )

        if known:
            self._known.add(card.id)
        else:
            if self._register_mistake():
                self._end(Termination.MISTAKE_LIMIT)
                return Outcome(accepted=True, question_id=card.id, is_correct=False, finished=True)
            assert self._config is not None
            if self._config.repeat_unknown and not any(c is card for c in self._review):
                self._review.append(card)

        self._next_card()
        return Outcome(
            accepted=True,
            question_id=card.id,
            is_correct=known,
            finished=self.is_complete(),
        )

    def _correct_count(self) -> int:
        return len(self._known)

    def _percentage(self) -> int:
        return percentage(len(self._known), len(self._items))

    def _result_extras(self) -> dict[str, object]:
        return {"known_cards": len(self._known)}
