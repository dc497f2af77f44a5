from __future__ import annotations

import pytest

from quizforge.bank import Answer, Bank, Question
from quizforge.config import AppConfig
from quizforge.matching import MatchingSession
from quizforge.registry import ModeRegistrationError, ModeRegistry, build_default_registry
from quizforge.session_core import BaseSession, ModeMetadata, Outcome


def _bank(answers: tuple[Answer, ...]) -> Bank:
    return Bank.from_questions(
        [Question(id=str(i), prompt=f"Prompt {i}", answers=answers) for i in range(3)],
        bank_id="reg",
    )


def test_default_registry_keeps_registration_order() -> None:
    registry = build_default_registry()

    assert [m.id for m in registry.all_metadata()] == [
        "multiple-choice",
        "flashcard",
        "true-false",
        "matching-stage",
    ]
    assert len(registry) == 4
    assert registry.has("flashcard")
    assert registry.get("matching-stage") is MatchingSession
    assert registry.get("nope") is None


def test_supported_modes_follow_registration_order_not_score() -> None:
    registry = build_default_registry()

    full = registry.get_supported_modes(_bank((Answer("a", True), Answer("b", False))))
    single = registry.get_supported_modes(_bank((Answer("a", True),)))

    assert [s.metadata.id for s in full] == ["multiple-choice", "flashcard", "true-false", "matching-stage"]
    assert [s.metadata.id for s in single] == ["flashcard", "true-false", "matching-stage"]
    assert all(s.validation.is_supported for s in single)
    assert single[0].validation.supported_count == 3


def test_malformed_bank_yields_no_supported_modes() -> None:
    registry = build_default_registry()
    bank = Bank.from_payload("not a bank", bank_id="junk")

    assert registry.get_supported_modes(bank) == []


def test_disabled_modes_are_skipped() -> None:
    registry = build_default_registry(AppConfig(disabled_modes=frozenset({"flashcard", "true-false"})))

    assert [m.id for m in registry.all_metadata()] == ["multiple-choice", "matching-stage"]


def test_register_returns_false_for_a_disabled_mode() -> None:
    registry = ModeRegistry(AppConfig(disabled_modes=frozenset({"matching-stage"})))

    assert registry.register(MatchingSession) is False
    assert registry.has("matching-stage") is False


class _NoMetadata(BaseSession):
    @classmethod
    def supports_question(cls, question: Question) -> bool:
        return True

    def current_item(self) -> object | None:
        return None

    def _handle_response(self, response: object) -> Outcome:
        return Outcome.rejected("unused")


class _Incomplete(BaseSession):
    metadata = ModeMetadata(id="incomplete", name="Incomplete", description="")

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        return True


class _DuckMode:
    metadata = ModeMetadata(id="duck", name="Duck", description="")

    @classmethod
    def supports_question(cls, question: Question) -> bool:
        return True

    validate = filter_questions = setup_info = supports_question


def test_malformed_modes_are_rejected_at_registration() -> None:
    registry = ModeRegistry()

    with pytest.raises(ModeRegistrationError):
        registry.register(_NoMetadata)
    with pytest.raises(ModeRegistrationError):
        registry.register(_Incomplete)
    with pytest.raises(ModeRegistrationError):
        registry.register(_DuckMode)
    with pytest.raises(ModeRegistrationError):
        registry.register("multiple-choice")  # type: ignore[arg-type]
    assert len(registry) == 0


def test_duplicate_ids_are_rejected() -> None:
    registry = ModeRegistry()
    assert registry.register(MatchingSession) is True
    with pytest.raises(ModeRegistrationError):
        registry.register(MatchingSession)

    registry.clear()
    assert registry.all() == []
