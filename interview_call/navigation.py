"""Screen Navigator - presentation state derived from the controller.

The navigator never writes controller state. It listens to phase transitions
and the session-complete signal and maps them to the screen the client
should show:

- PRE_SESSION: idle
- CONNECTING: provisioning / joining
- LIVE_SESSION: live / terminating
- POST_SESSION: terminated, carrying the SessionResult
- OUT_OF_CREDITS: error with QuotaExhausted (manage account)
- CONNECTION_ERROR: any other error (retry)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from interview_call.exceptions import ErrorKind, SessionFailure
from interview_call.observability.logging import get_logger
from interview_call.orchestrator.state_machine import PhaseTransition, SessionPhase

if TYPE_CHECKING:
    from interview_call.orchestrator.controller import CallSessionController, SessionResult

logger = get_logger(__name__)


class Screen(Enum):
    PRE_SESSION = "pre_session"
    CONNECTING = "connecting"
    LIVE_SESSION = "live_session"
    POST_SESSION = "post_session"
    OUT_OF_CREDITS = "out_of_credits"
    CONNECTION_ERROR = "connection_error"


_SCREEN_BY_PHASE = {
    SessionPhase.IDLE: Screen.PRE_SESSION,
    SessionPhase.PROVISIONING: Screen.CONNECTING,
    SessionPhase.JOINING: Screen.CONNECTING,
    SessionPhase.LIVE: Screen.LIVE_SESSION,
    SessionPhase.TERMINATING: Screen.LIVE_SESSION,
    SessionPhase.TERMINATED: Screen.POST_SESSION,
}


def screen_for(phase: SessionPhase, error: SessionFailure | None = None) -> Screen:
    """Screen to show for a controller phase and error."""
    if phase is SessionPhase.ERROR:
        if error is not None and error.kind is ErrorKind.QUOTA_EXHAUSTED:
            return Screen.OUT_OF_CREDITS
        return Screen.CONNECTION_ERROR
    return _SCREEN_BY_PHASE[phase]


@dataclass(frozen=True)
class ScreenState:
    """What the client should render."""

    screen: Screen
    result: SessionResult | None = None
    error: SessionFailure | None = None

    @property
    def user_action(self) -> str | None:
        if self.error is None:
            return None
        return self.error.user_action.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "screen": self.screen.value,
            "user_action": self.user_action,
            "error": self.error.to_dict() if self.error is not None else None,
            "result": self.result.to_dict() if self.result is not None else None,
        }


ScreenCallback = Callable[[ScreenState], Any] | Callable[[ScreenState], Awaitable[Any]]


class ScreenNavigator:
    """Tracks the current screen for one controller.

    Usage:
        navigator = ScreenNavigator()
        navigator.attach(controller)
        navigator.on_change(render)

        navigator.screen    # Screen.CONNECTING, ...
    """

    def __init__(self) -> None:
        self._state = ScreenState(Screen.PRE_SESSION)
        self._controller: CallSessionController | None = None
        self._callbacks: list[ScreenCallback] = []

    @property
    def state(self) -> ScreenState:
        return self._state

    @property
    def screen(self) -> Screen:
        return self._state.screen

    def attach(self, controller: CallSessionController) -> None:
        """Follow a controller through its read/subscribe interface."""
        self._controller = controller
        controller.subscribe(self._on_transition)
        controller.on_complete(self._on_complete)
        self._state = ScreenState(
            screen_for(controller.phase, controller.error),
            result=controller.result,
            error=controller.error,
        )

    def on_change(self, callback: ScreenCallback) -> None:
        """Register a callback for screen changes."""
        self._callbacks.append(callback)

    def reset(self) -> None:
        """Back to the pre-session screen once a finished session is dismissed."""
        self._state = ScreenState(Screen.PRE_SESSION)

    async def _on_transition(self, transition: PhaseTransition) -> None:
        controller = self._controller
        error = controller.error if controller is not None else None
        result = controller.result if controller is not None else None
        if transition.new_phase is not SessionPhase.TERMINATED:
            result = None
        if transition.new_phase is not SessionPhase.ERROR:
            error = None
        await self._set(ScreenState(screen_for(transition.new_phase, error), result, error))

    async def _on_complete(self, result: SessionResult) -> None:
        if self._state.screen is Screen.POST_SESSION and self._state.result is result:
            return
        await self._set(ScreenState(Screen.POST_SESSION, result=result))

    async def _set(self, state: ScreenState) -> None:
        previous = self._state
        self._state = state
        if previous.screen is state.screen and previous.result is state.result:
            return

        logger.debug("screen_changed", old=previous.screen.value, new=state.screen.value)
        for callback in self._callbacks:
            outcome = callback(state)
            if inspect.isawaitable(outcome):
                await outcome
