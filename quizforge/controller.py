"""Screen orchestration for one session host.

The controller owns the screen state machine::

    MODE_SELECT -> SETUP -> RUNNING -> RESULTS
         ^          |  ^                  |  |
         +----------+  +---- retake ------+  |
         +-------------- change mode --------+

and is the only component that writes results. It talks to a running session
through the lifecycle methods alone (configure, start, current_item,
submit_response, is_complete, finish).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from .bank import Bank
from .clock import TimerQueue
from .persistence import ResultStore
from .registry import ModeRegistry, SupportedMode
from .results import SaveReport, SessionResult
from .session_core import BaseSession, Outcome, SessionConfig, SetupInfo
from .stats import StatsAggregator

logger = logging.getLogger(__name__)

ScreenListener = Callable[["Screen", "Screen"], None]


class Screen(str, Enum):
    MODE_SELECT = "mode_select"
    SETUP = "setup"
    RUNNING = "running"
    RESULTS = "results"


_TRANSITIONS: dict[Screen, frozenset[Screen]] = {
    Screen.MODE_SELECT: frozenset({Screen.MODE_SELECT, Screen.SETUP}),
    Screen.SETUP: frozenset({Screen.RUNNING, Screen.MODE_SELECT}),
    Screen.RUNNING: frozenset({Screen.RESULTS}),
    Screen.RESULTS: frozenset({Screen.SETUP, Screen.MODE_SELECT}),
}


class InvalidTransitionError(RuntimeError):
    pass


class SessionController:
    def __init__(
        self,
        *,
        registry: ModeRegistry,
        results: ResultStore,
        timers: TimerQueue,
        seed: int = 0,
    ) -> None:
        self._registry = registry
        self._results = results
        self._timers = timers
        self._seed = int(seed)
        self._runs = 0

        self._screen = Screen.MODE_SELECT
        self._listeners: list[ScreenListener] = []

        self._bank: Bank | None = None
        self._supported: list[SupportedMode] = []
        self._mode: type[BaseSession] | None = None
        self._session: BaseSession | None = None
        self._config: SessionConfig | None = None
        self._last_options: dict[str, Any] = {}
        self._last_result: SessionResult | None = None
        self._last_save_report: SaveReport | None = None

    # ------------------------------------------------------------------
    # State

    @property
    def screen(self) -> Screen:
        return self._screen

    @property
    def bank(self) -> Bank | None:
        return self._bank

    @property
    def supported_modes(self) -> list[SupportedMode]:
        return list(self._supported)

    @property
    def has_supported_modes(self) -> bool:
        return bool(self._supported)

    @property
    def selected_mode(self) -> type[BaseSession] | None:
        return self._mode

    @property
    def session_config(self) -> SessionConfig | None:
        return self._config

    @property
    def last_options(self) -> dict[str, Any]:
        return dict(self._last_options)

    @property
    def last_result(self) -> SessionResult | None:
        return self._last_result

    @property
    def last_save_report(self) -> SaveReport | None:
        return self._last_save_report

    def subscribe(self, listener: ScreenListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` on every screen change."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Mode selection and setup

    def load_bank(self, bank: Bank) -> list[SupportedMode]:
        if self._screen is Screen.RUNNING:
            raise InvalidTransitionError("Cannot load a bank while a session is running")
        self._bank = bank
        self._supported = self._registry.get_supported_modes(bank)
        if not self._supported:
            logger.warning("Bank %s has no supported modes", bank.bank_id)
        self.show_mode_selection()
        return list(self._supported)

    def show_mode_selection(self) -> None:
        self._require_bank()
        self._check_transition(Screen.MODE_SELECT)
        self._mode = None
        self._enter(Screen.MODE_SELECT)
        if len(self._supported) == 1:
            self.select_mode(self._supported[0].metadata.id)

    def select_mode(self, mode_id: str) -> type[BaseSession]:
        self._require(Screen.MODE_SELECT)
        match = next((s for s in self._supported if s.metadata.id == mode_id), None)
        if match is None:
            raise ValueError(f"Mode {mode_id!r} is not available for this bank")
        self._mode = match.mode
        self._last_options = {}
        self._enter(Screen.SETUP)
        return match.mode

    def setup_info(self) -> SetupInfo:
        self._require(Screen.SETUP)
        assert self._mode is not None and self._bank is not None
        return self._mode.setup_info(self._bank.questions)

    # ------------------------------------------------------------------
    # Running

    def start_session(self, raw_options: Mapping[str, Any] | None = None) -> SessionConfig:
        """Configure and launch a session. Configuration errors leave the screen on SETUP."""

        self._require(Screen.SETUP)
        assert self._mode is not None and self._bank is not None

        options = dict(raw_options if raw_options is not None else self._last_options)
        session = self._mode(timers=self._timers, seed=self._seed + self._runs)
        config = session.configure(self._bank, options)
        session.start(config)

        self._runs += 1
        self._session = session
        self._config = config
        self._last_options = options
        self._last_result = None
        self._last_save_report = None
        self._enter(Screen.RUNNING)
        return config

    def current_item(self) -> object | None:
        if self._screen is not Screen.RUNNING or self._session is None:
            return None
        return self._session.current_item()

    def submit(self, response: object) -> Outcome:
        self._require(Screen.RUNNING)
        assert self._session is not None
        outcome = self._session.submit_response(response)
        if self._session.is_complete():
            self._complete()
        return outcome

    def tick(self) -> int:
        """Fire due timers, then close the run if a timer ended it."""

        ran = self._timers.tick()
        if self._screen is Screen.RUNNING and self._session is not None and self._session.is_complete():
            self._complete()
        return ran

    def end_session(self) -> SessionResult:
        self._require(Screen.RUNNING)
        return self._complete()

    def retake(self) -> None:
        self._require(Screen.RESULTS)
        self._enter(Screen.SETUP)

    def stats(self) -> StatsAggregator:
        return StatsAggregator(self._results)

    # ------------------------------------------------------------------

    def _complete(self) -> SessionResult:
        assert self._session is not None and self._bank is not None
        result = self._session.finish()
        self._session = None
        self._last_result = result

        report = self._results.record_session(self._bank.bank_id, result)
        self._last_save_report = report
        if not report.saved:
            logger.warning("Result for %s computed but not saved", self._bank.bank_id)

        self._enter(Screen.RESULTS)
        return result

    def _require(self, screen: Screen) -> None:
        if self._screen is not screen:
            raise InvalidTransitionError(f"Expected screen {screen.value}, currently {self._screen.value}")

    def _require_bank(self) -> None:
        if self._bank is None:
            raise InvalidTransitionError("No bank loaded")

    def _check_transition(self, screen: Screen) -> None:
        if screen not in _TRANSITIONS[self._screen]:
            raise InvalidTransitionError(f"{self._screen.value} -> {screen.value} is not allowed")

    def _enter(self, screen: Screen) -> None:
        previous = self._screen
        self._check_transition(screen)
        self._screen = screen
        logger.info("Screen %s -> %s", previous.value, screen.value)
        for listener in list(self._listeners):
            listener(previous, screen)
