from __future__ import annotations

import json

from quizforge.bank import Answer, Bank, Question


def test_from_payload_reads_the_content_provider_shape() -> None:
    payload = {
        "meta": {"title": "  Capitals  "},
        "questions": [
            {
                "id": 7,
                "question": "Capital of France?",
                "answers": [
                    {"text": "Paris", "isCorrect": True},
                    {"text": "Lyon", "isCorrect": False},
                ],
                "category": "europe",
                "comment": "Since 987.",
                "difficulty": 2,
            },
            {"question": "No id here", "answers": [{"text": "x", "isCorrect": True}]},
        ],
    }

    bank = Bank.from_payload(payload, bank_id="capitals")

    assert bank.title == "Capitals"
    assert bank.malformed is False
    first, second = bank.questions
    assert first.id == "7"
    assert first.correct_answers == (Answer("Paris", True),)
    assert first.incorrect_answers == (Answer("Lyon", False),)
    assert first.category == "europe"
    assert first.difficulty == 2
    assert second.id == "q2"
    assert second.category is None
    assert bank.categories() == ["europe"]
    assert bank.question("7") is first
    assert bank.question("nope") is None


def test_bad_fields_are_kept_in_a_detectable_form() -> None:
    payload = {
        "questions": [
            {"id": "a", "question": 5, "answers": "nope", "difficulty": 9},
            {"id": "b", "question": "Q?", "answers": [{"text": "t", "isCorrect": "yes"}, 3]},
            "not an object",
        ]
    }

    bank = Bank.from_payload(payload, bank_id="messy")

    a, b, c = bank.questions
    assert a.prompt == "" and a.answers == () and a.difficulty is None
    assert b.answers == (Answer("t", None), Answer("", None))
    assert b.has_correct_answer is False
    assert c.id == "q3" and c.prompt == ""
    assert bank.title == "messy"


def test_payload_without_question_list_is_malformed() -> None:
    assert Bank.from_payload({"meta": {"title": "x"}}, bank_id="x").malformed is True
    assert Bank.from_payload([1, 2, 3], bank_id="y").malformed is True
    assert Bank.from_payload({"questions": []}, bank_id="z").malformed is False


def test_payload_round_trips_through_to_payload() -> None:
    q = Question(
        id="1",
        prompt="2 + 2?",
        answers=(Answer("4", True), Answer("5", False)),
        category="math",
        difficulty=1,
    )
    bank = Bank.from_questions([q], bank_id="math", title="Math")

    again = Bank.from_payload(bank.to_payload(), bank_id="math")

    assert again.questions == (q,)
    assert again.title == "Math"


def test_repeated_ids_are_made_unique() -> None:
    payload = {
        "questions": [
            {"id": "q2", "question": "First?", "answers": [{"text": "a", "isCorrect": True}]},
            {"question": "No id, lands on q2", "answers": [{"text": "b", "isCorrect": True}]},
            {"id": "q2", "question": "Third?", "answers": [{"text": "c", "isCorrect": True}]},
        ]
    }

    bank = Bank.from_payload(payload, bank_id="dupes")

    assert [q.id for q in bank.questions] == ["q2", "q2-2", "q2-3"]
    assert bank.question("q2") is bank.questions[0]


def test_infinite_difficulty_is_dropped() -> None:
    payload = json.loads(
        '{"questions": [{"id": 1, "question": "Q?", "difficulty": 1e999,'
        ' "answers": [{"text": "a", "isCorrect": true}]}]}'
    )

    bank = Bank.from_payload(payload, bank_id="huge")

    (q,) = bank.questions
    assert q.difficulty is None
    assert q.has_correct_answer is True
