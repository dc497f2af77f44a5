from __future__ import annotations

from dataclasses import dataclass

import pytest

from quizforge.bank import Answer, Bank, Question
from quizforge.clock import TimerQueue
from quizforge.multiple_choice import MULTIPLE_CHOICE_DEFAULTS, MultipleChoiceSession
from quizforge.results import OutcomeStatus, Termination
from quizforge.session_core import Command, SessionState


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _bank(n: int = 10) -> Bank:
    questions = [
        Question(
            id=f"q{i}",
            prompt=f"Question {i}?",
            answers=(
                Answer("right", True),
                Answer("wrong a", False),
                Answer("wrong b", False),
                Answer("wrong c", False),
            ),
            comment=f"Because {i}.",
        )
        for i in range(n)
    ]
    return Bank.from_questions(questions, bank_id="mc")


def _started(clock: FakeClock, options: dict, *, seed: int = 7, n: int = 10) -> MultipleChoiceSession:
    session = MultipleChoiceSession(timers=TimerQueue(clock), seed=seed)
    config = session.configure(_bank(n), options)
    session.start(config)
    return session


def test_all_wrong_run_scores_zero_with_ten_mistakes() -> None:
    clock = FakeClock()
    session = _started(clock, {"question_count": 10, "time_limit_minutes": 0})

    for _ in range(10):
        item = session.current_item()
        assert item is not None
        assert len(item.choices) == 4
        clock.advance(1.0)
        outcome = session.submit_response(1)
        assert outcome.accepted is True
        assert outcome.is_correct is False
        assert session.submit_response(Command.NEXT).accepted is True

    assert session.is_complete()
    result = session.finish()
    assert result.percentage == 0
    assert result.mistake_count == 10
    assert result.total_items == 10
    assert result.answered_items == 10
    assert result.termination is Termination.COMPLETED
    assert result.elapsed_s == pytest.approx(10.0)
    assert all(o.status is OutcomeStatus.WRONG for o in result.outcomes)


def test_shuffled_choices_keep_canonical_indexes() -> None:
    clock = FakeClock()
    session = _started(clock, {"question_count": 10, "shuffle_answers": True, "time_limit_minutes": 0})

    orders = set()
    while not session.is_complete():
        item = session.current_item()
        assert item is not None
        orders.add(tuple(c.index for c in item.choices))
        right = next(c for c in item.choices if c.text == "right")
        assert session.submit_response(right.index).is_correct is True
        session.submit_response(Command.NEXT)

    result = session.finish()
    assert result.percentage == 100
    assert result.mistake_count == 0
    assert len(orders) > 1


def test_second_answer_to_the_same_item_is_rejected() -> None:
    session = _started(FakeClock(), {"question_count": 3})

    first = session.submit_response(0)
    again = session.submit_response(1)

    assert first.accepted is True and first.is_correct is True
    assert again.accepted is False
    assert again.reason == "already_answered"

    result = session.finish()
    assert result.termination is Termination.ENDED_EARLY
    assert len(result.outcomes) == 1
    assert result.correct_count == 1
    assert result.mistake_count == 0


def test_next_requires_an_answer_and_bad_responses_are_rejected() -> None:
    session = _started(FakeClock(), {"question_count": 2})

    assert session.submit_response(Command.NEXT).reason == "not_answered"
    assert session.submit_response("right").reason == "invalid_response"
    assert session.submit_response(True).reason == "invalid_response"
    assert session.submit_response(9).reason == "unknown_answer"
    assert session.progress().answered == 0


def test_comment_is_shown_only_after_answering() -> None:
    session = _started(FakeClock(), {"question_count": 1, "show_comments": True})

    before = session.current_item()
    assert before is not None and before.comment is None
    session.submit_response(0)
    after = session.current_item()
    assert after is not None
    assert after.answered is True
    assert after.chosen_index == 0
    assert after.comment == f"Because {after.question.id[1:]}."


def test_mistake_limit_ends_the_run() -> None:
    session = _started(FakeClock(), {"question_count": 10, "max_mistakes": 2})

    session.submit_response(2)
    session.submit_response(Command.NEXT)
    outcome = session.submit_response(3)

    assert outcome.finished is True
    assert session.is_complete()
    assert session.current_item() is None
    assert session.submit_response(0).reason == "not_running"

    result = session.finish()
    assert result.mistake_limit_reached is True
    assert result.mistake_count == 2
    assert result.percentage == 0


def test_time_limit_ends_the_run_at_zero() -> None:
    clock = FakeClock()
    timers = TimerQueue(clock)
    session = MultipleChoiceSession(timers=timers, seed=3)
    session.start(session.configure(_bank(), {"question_count": 5, "time_limit_minutes": 1}))

    session.submit_response(0)
    clock.advance(30.0)
    timers.tick()
    assert session.state is SessionState.RUNNING
    assert session.time_remaining_s() == pytest.approx(30.0)

    clock.advance(30.0)
    timers.tick()
    assert session.is_complete()

    result = session.finish()
    assert result.time_limit_reached is True
    assert result.correct_count == 1
    assert result.percentage == 20
    assert timers.pending() == []


def test_finish_is_idempotent_and_cancels_the_countdown() -> None:
    clock = FakeClock()
    timers = TimerQueue(clock)
    session = MultipleChoiceSession(timers=timers, seed=1)
    session.start(session.configure(_bank(), {}))
    assert len(timers.pending()) == 1

    first = session.finish()
    second = session.finish()

    assert first is second
    assert all(h.cancelled for h in session.owned_timers())
    assert timers.pending() == []


def test_defaults_follow_the_classic_test() -> None:
    session = MultipleChoiceSession(timers=TimerQueue(FakeClock()), seed=0)
    config = session.configure(_bank(30), None)

    assert MULTIPLE_CHOICE_DEFAULTS.question_count == 25
    assert config.question_count == 25
    assert config.time_limit_s == pytest.approx(30 * 60.0)
    assert config.max_mistakes == 0
    assert config.shuffle_questions is True
    assert config.shuffle_answers is True
