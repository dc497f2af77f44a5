from __future__ import annotations

from dataclasses import dataclass

from quizforge.bank import Answer, Bank, Question
from quizforge.clock import TimerQueue
from quizforge.results import Termination
from quizforge.session_core import Command
from quizforge.true_false import TrueFalseSession


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _session(bank: Bank, options: dict, *, seed: int = 11) -> TrueFalseSession:
    session = TrueFalseSession(timers=TimerQueue(FakeClock()), seed=seed)
    session.start(session.configure(bank, options))
    return session


def test_only_correct_answers_and_no_sibling_degrades_without_error() -> None:
    lonely = Question(id="only", prompt="Pick one", answers=(Answer("A", True), Answer("B", True)))
    session = _session(Bank.from_questions([lonely], bank_id="tf"), {"question_count": 1})

    item = session.current_item()
    assert item is not None
    assert item.asserted in ("A", "B")

    statements = [session.synthesize(lonely) for _ in range(64)]
    assert all(s.truth is True for s in statements)
    assert all(s.asserted in ("A", "B") for s in statements)
    assert any(s.inconsistent for s in statements)
    assert all(s.borrowed_from is None for s in statements)

    outcome = session.submit_response(True)
    assert outcome.accepted is True
    assert outcome.is_correct is True
    assert session.submit_response(Command.NEXT).finished is True

    result = session.finish()
    assert result.termination is Termination.COMPLETED
    assert result.percentage == 100
    assert result.inconsistent_items == (1 if result.outcomes[0].inconsistent else 0)


def test_false_statement_borrows_from_another_question() -> None:
    paris = Question(id="fr", prompt="Capital of France", answers=(Answer("Paris", True),))
    germany = Question(
        id="de",
        prompt="A German city",
        answers=(Answer("Berlin", True), Answer("Paris", True)),
    )
    session = _session(
        Bank.from_questions([paris, germany], bank_id="tf"),
        {"question_count": 2, "shuffle_questions": False},
    )

    seen = {(s.asserted, s.truth, s.borrowed_from) for s in (session.synthesize(paris) for _ in range(64))}

    # "Paris" is also correct for the French question, so it is never borrowed as a false claim.
    assert seen == {("Paris", True, None), ("Berlin", False, "de")}


def test_false_statement_prefers_the_questions_own_wrong_answers() -> None:
    q = Question(id="q", prompt="2 + 2", answers=(Answer("4", True), Answer("5", False)))
    other = Question(id="o", prompt="3 + 3", answers=(Answer("6", True),))
    session = _session(Bank.from_questions([q, other], bank_id="tf"), {"question_count": 2})

    seen = {(s.asserted, s.truth) for s in (session.synthesize(q) for _ in range(64))}

    assert seen == {("4", True), ("5", False)}


def test_scoring_uses_the_statement_truth() -> None:
    questions = [
        Question(id=f"q{i}", prompt=f"Claim {i}", answers=(Answer(f"yes {i}", True), Answer(f"no {i}", False)))
        for i in range(12)
    ]
    session = _session(Bank.from_questions(questions, bank_id="tf"), {"question_count": 12})

    while not session.is_complete():
        outcome = session.submit_response(True)
        item = session.current_item()
        assert item is not None
        assert item.truth is not None
        assert outcome.is_correct is item.truth
        assert item.asserted in (f"yes {item.question.id[1:]}", f"no {item.question.id[1:]}")
        assert item.truth is item.asserted.startswith("yes")
        assert session.submit_response(False).reason == "already_answered"
        session.submit_response(Command.NEXT)

    result = session.finish()
    assert result.total_items == 12
    assert result.correct_count + result.mistake_count == 12
    assert result.inconsistent_items == 0


def test_truth_is_hidden_until_answered_and_responses_must_be_boolean() -> None:
    q = Question(id="q", prompt="Sky colour", answers=(Answer("blue", True), Answer("green", False)))
    session = _session(Bank.from_questions([q], bank_id="tf"), {})

    item = session.current_item()
    assert item is not None
    assert item.truth is None
    assert item.answered is False
    assert session.submit_response("true").reason == "invalid_response"
    assert session.submit_response(1).reason == "invalid_response"
    assert session.submit_response(Command.NEXT).reason == "not_answered"
