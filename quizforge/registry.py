from __future__ import annotations

import logging
from dataclasses import dataclass

from .bank import Bank
from .config import AppConfig
from .flashcard import FlashcardSession
from .matching import MatchingSession
from .multiple_choice import MultipleChoiceSession
from .session_core import MODE_METHODS, SESSION_METHODS, BaseSession, ModeMetadata, ValidationResult
from .true_false import TrueFalseSession

logger = logging.getLogger(__name__)

# BaseSession leaves these unimplemented.
_SUBCLASS_HOOKS = ("supports_question", "current_item", "_handle_response")


class ModeRegistrationError(TypeError):
    pass


@dataclass(frozen=True, slots=True)
class SupportedMode:
    mode: type[BaseSession]
    metadata: ModeMetadata
    validation: ValidationResult


class ModeRegistry:
    """Mode classes keyed by id, in registration order.

    Built explicitly by whoever hosts sessions; there is no shared instance.
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or AppConfig()
        self._modes: dict[str, type[BaseSession]] = {}

    def register(self, mode: type) -> bool:
        """Add ``mode``. Returns False when configuration disables it."""

        if not isinstance(mode, type):
            raise ModeRegistrationError(f"{mode!r} is not a mode class")
        metadata = getattr(mode, "metadata", None)
        if not isinstance(metadata, ModeMetadata) or not str(metadata.id).strip():
            raise ModeRegistrationError(f"{mode!r} has no metadata with an id")
        for name in MODE_METHODS + SESSION_METHODS:
            if not callable(getattr(mode, name, None)):
                raise ModeRegistrationError(f"Mode {metadata.id!r} is missing {name}()")
        if issubclass(mode, BaseSession):
            for name in _SUBCLASS_HOOKS:
                if not _overrides(mode, name):
                    raise ModeRegistrationError(f"Mode {metadata.id!r} does not implement {name}()")
        if metadata.id in self._modes:
            raise ModeRegistrationError(f"Mode {metadata.id!r} is already registered")

        if not self._config.is_enabled(metadata.id):
            logger.info("Mode %s is disabled by configuration", metadata.id)
            return False

        self._modes[metadata.id] = mode
        logger.info("Registered mode %s (%s)", metadata.id, metadata.name)
        return True

    def get(self, mode_id: str) -> type[BaseSession] | None:
        return self._modes.get(mode_id)

    def has(self, mode_id: str) -> bool:
        return mode_id in self._modes

    def all(self) -> list[type[BaseSession]]:
        return list(self._modes.values())

    def all_metadata(self) -> list[ModeMetadata]:
        return [m.metadata for m in self._modes.values()]

    def clear(self) -> None:
        self._modes.clear()

    def __len__(self) -> int:
        return len(self._modes)

    def get_supported_modes(self, bank: Bank) -> list[SupportedMode]:
        supported: list[SupportedMode] = []
        for mode in self._modes.values():
            validation = mode.validate(bank)
            if validation.is_supported:
                logger.debug(
                    "%s: %d/%d questions (%d%%)",
                    mode.metadata.id,
                    validation.supported_count,
                    validation.total_count,
                    validation.percentage,
                )
                supported.append(SupportedMode(mode, mode.metadata, validation))
            else:
                logger.debug("%s: unsupported (%s)", mode.metadata.id, validation.reason)
        logger.info("Bank %s: %d supported mode(s)", bank.bank_id, len(supported))
        return supported


def _overrides(mode: type, name: str) -> bool:
    return any(name in vars(k) for k in mode.__mro__ if k not in (BaseSession, object))


def build_default_registry(config: AppConfig | None = None) -> ModeRegistry:
    registry = ModeRegistry(config)
    for mode in (MultipleChoiceSession, FlashcardSession, TrueFalseSession, MatchingSession):
        registry.register(mode)
    return registry
