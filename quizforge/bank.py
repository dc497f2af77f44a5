"""Question bank model.

Banks arrive from a content provider as plain structured data::

    {"meta": {"title": "..."}, "questions": [{"id": 1, "question": "...",
      "answers": [{"text": "...", "isCorrect": true}, ...],
      "category": "...", "comment": "...", "difficulty": 2}, ...]}

Parsing is deliberately forgiving. Bad fields are carried through in a form
the mode support predicates can recognise (an empty prompt, a correctness
flag of ``None``) so that a malformed bank ends up "unsupported" instead of
raising halfway through a load.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Answer:
    text: str
    is_correct: bool | None  # None when the source flag was not a boolean

    @classmethod
    def from_dict(cls, data: object) -> "Answer":
        if not isinstance(data, Mapping):
            return cls(text="", is_correct=None)
        raw_text = data.get("text")
        text = raw_text.strip() if isinstance(raw_text, str) else ""
        raw_flag = data.get("isCorrect")
        flag = raw_flag if isinstance(raw_flag, bool) else None
        return cls(text=text, is_correct=flag)

    def to_dict(self) -> dict[str, object]:
        return {"text": self.text, "isCorrect": self.is_correct}


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    prompt: str
    answers: tuple[Answer, ...]
    category: str | None = None
    comment: str | None = None
    difficulty: int | None = None

    @property
    def correct_answers(self) -> tuple[Answer, ...]:
        return tuple(a for a in self.answers if a.is_correct is True)

    @property
    def incorrect_answers(self) -> tuple[Answer, ...]:
        return tuple(a for a in self.answers if a.is_correct is False)

    @property
    def has_correct_answer(self) -> bool:
        return any(a.is_correct is True for a in self.answers)

    @classmethod
    def from_dict(cls, data: object, *, position: int) -> "Question":
        fallback_id = f"q{position + 1}"
        if not isinstance(data, Mapping):
            return cls(id=fallback_id, prompt="", answers=())

        raw_id = data.get("id")
        if isinstance(raw_id, bool) or raw_id is None or str(raw_id).strip() == "":
            qid = fallback_id
        else:
            qid = str(raw_id).strip()

        raw_prompt = data.get("question")
        prompt = raw_prompt.strip() if isinstance(raw_prompt, str) else ""

        raw_answers = data.get("answers")
        answers: tuple[Answer, ...] = ()
        if isinstance(raw_answers, list):
            answers = tuple(Answer.from_dict(a) for a in raw_answers)

        return cls(
            id=qid,
            prompt=prompt,
            answers=answers,
            category=_optional_text(data.get("category")),
            comment=_optional_text(data.get("comment")),
            difficulty=_difficulty(data.get("difficulty")),
        )

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "id": self.id,
            "question": self.prompt,
            "answers": [a.to_dict() for a in self.answers],
        }
        if self.category is not None:
            out["category"] = self.category
        if self.comment is not None:
            out["comment"] = self.comment
        if self.difficulty is not None:
            out["difficulty"] = self.difficulty
        return out


@dataclass(frozen=True, slots=True)
class Bank:
    bank_id: str
    title: str
    questions: tuple[Question, ...]
    malformed: bool = False

    @classmethod
    def from_payload(cls, payload: object, *, bank_id: str) -> "Bank":
        if not isinstance(payload, Mapping):
            logger.warning("Bank %s: payload is not an object", bank_id)
            return cls(bank_id=bank_id, title=bank_id, questions=(), malformed=True)

        meta = payload.get("meta")
        title = bank_id
        if isinstance(meta, Mapping) and isinstance(meta.get("title"), str) and meta["title"].strip():
            title = meta["title"].strip()

        raw_questions = payload.get("questions")
        if not isinstance(raw_questions, list):
            logger.warning("Bank %s: missing questions array", bank_id)
            return cls(bank_id=bank_id, title=title, questions=(), malformed=True)

        parsed = [Question.from_dict(q, position=i) for i, q in enumerate(raw_questions)]
        questions = _unique_ids(parsed, bank_id=bank_id)
        logger.info("Bank %s: loaded %d questions", bank_id, len(questions))
        return cls(bank_id=bank_id, title=title, questions=questions)

    @classmethod
    def from_questions(cls, questions: Iterable[Question], *, bank_id: str, title: str = "") -> "Bank":
        return cls(bank_id=bank_id, title=title or bank_id, questions=_unique_ids(questions, bank_id=bank_id))

    def categories(self) -> list[str]:
        return sorted({q.category for q in self.questions if q.category})

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    def to_payload(self) -> dict[str, object]:
        return {
            "meta": {"title": self.title},
            "questions": [q.to_dict() for q in self.questions],
        }


def _unique_ids(questions: Iterable[Question], *, bank_id: str) -> tuple[Question, ...]:
    """Suffix repeated ids (``q2``, ``q2-2``, ...). First occurrence keeps its id."""

    out: list[Question] = []
    taken: set[str] = set()
    for q in questions:
        qid = q.id
        n = 2
        while qid in taken:
            qid = f"{q.id}-{n}"
            n += 1
        if qid != q.id:
            logger.warning("Bank %s: duplicate question id %r renamed to %r", bank_id, q.id, qid)
            q = replace(q, id=qid)
        taken.add(qid)
        out.append(q)
    return tuple(out)


def _optional_text(value: object) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _difficulty(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        tier = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return tier if 1 <= tier <= 3 else None
