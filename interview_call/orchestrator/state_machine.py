"""Session Phase Machine - 7-phase FSM for the interview call lifecycle.

Phases:
- IDLE: Nothing provisioned yet
- PROVISIONING: Conversation resource requested from the remote service
- JOINING: Resource obtained; joining the transport, waiting for the interviewer
- LIVE: Interviewer present; clock armed; transcript accumulating
- TERMINATING: Teardown in progress (transport, clock, resource, evaluation)
- TERMINATED: Session complete; result available
- ERROR: Provisioning or join failed; typed cause attached

Phase changes are applied before any callback is awaited, so a caller that
resumes after an await always observes the latest phase.
"""

import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from interview_call.config.constants import SESSION
from interview_call.exceptions import SessionStateError
from interview_call.observability.logging import get_logger

logger = get_logger(__name__)


class SessionPhase(Enum):
    """Lifecycle phase of one interview session."""

    IDLE = "idle"
    PROVISIONING = "provisioning"
    JOINING = "joining"
    LIVE = "live"
    TERMINATING = "terminating"
    TERMINATED = "terminated"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """TERMINATED and ERROR absorb everything except a new start."""
        return self in (SessionPhase.TERMINATED, SessionPhase.ERROR)


# Valid phase transitions
VALID_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.IDLE: {SessionPhase.PROVISIONING},
    SessionPhase.PROVISIONING: {
        SessionPhase.JOINING,
        SessionPhase.ERROR,
        SessionPhase.TERMINATING,
    },
    SessionPhase.JOINING: {
        SessionPhase.LIVE,
        SessionPhase.ERROR,
        SessionPhase.TERMINATING,
    },
    SessionPhase.LIVE: {SessionPhase.TERMINATING, SessionPhase.ERROR},
    SessionPhase.TERMINATING: {SessionPhase.TERMINATED},
    SessionPhase.TERMINATED: {SessionPhase.PROVISIONING},
    SessionPhase.ERROR: {SessionPhase.PROVISIONING},
}


@dataclass(frozen=True)
class PhaseTransition:
    """Record of a phase transition."""

    old_phase: SessionPhase
    new_phase: SessionPhase
    at: float
    reason: str
    metadata: dict = field(default_factory=dict)


PhaseCallback = Callable[[PhaseTransition], Any] | Callable[[PhaseTransition], Awaitable[Any]]


class SessionPhaseMachine:
    """7-phase FSM for one interview session.

    Usage:
        fsm = SessionPhaseMachine(session_id="session-123")

        fsm.on_phase_change(handle_change)
        fsm.on_enter(SessionPhase.LIVE, handle_live)

        await fsm.transition_to(SessionPhase.PROVISIONING, "start")
    """

    def __init__(
        self,
        session_id: str,
        max_history: int = SESSION.MAX_PHASE_HISTORY,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._session_id = session_id
        self._phase = SessionPhase.IDLE
        self._now = now

        # Callback registries
        self._on_change_callbacks: list[PhaseCallback] = []
        self._on_enter_callbacks: dict[SessionPhase, list[PhaseCallback]] = {
            p: [] for p in SessionPhase
        }
        self._on_exit_callbacks: dict[SessionPhase, list[PhaseCallback]] = {
            p: [] for p in SessionPhase
        }

        # Transition history
        self._history: list[PhaseTransition] = []
        self._max_history = max_history

    @property
    def phase(self) -> SessionPhase:
        """Current session phase."""
        return self._phase

    @property
    def session_id(self) -> str:
        """Session identifier."""
        return self._session_id

    def on_phase_change(self, callback: PhaseCallback) -> None:
        """Register callback for any phase change."""
        self._on_change_callbacks.append(callback)

    def on_enter(self, phase: SessionPhase, callback: PhaseCallback) -> None:
        """Register callback for entering a specific phase."""
        self._on_enter_callbacks[phase].append(callback)

    def on_exit(self, phase: SessionPhase, callback: PhaseCallback) -> None:
        """Register callback for exiting a specific phase."""
        self._on_exit_callbacks[phase].append(callback)

    def can_transition(self, new_phase: SessionPhase) -> bool:
        """Whether new_phase is reachable from the current phase."""
        return new_phase in VALID_TRANSITIONS.get(self._phase, set())

    async def transition_to(
        self,
        new_phase: SessionPhase,
        reason: str = "",
        metadata: dict | None = None,
    ) -> PhaseTransition:
        """Transition to a new phase.

        Args:
            new_phase: Target phase
            reason: Reason for transition
            metadata: Additional context

        Returns:
            The recorded PhaseTransition

        Raises:
            SessionStateError: If transition is not allowed
        """
        old_phase = self._phase

        if not self.can_transition(new_phase):
            raise SessionStateError(
                f"Invalid transition: {old_phase.value} → {new_phase.value}",
                session_id=self._session_id,
                current_phase=old_phase.value,
                operation=f"transition_to:{new_phase.value}",
            )

        transition = PhaseTransition(
            old_phase=old_phase,
            new_phase=new_phase,
            at=self._now(),
            reason=reason,
            metadata=metadata or {},
        )

        # Update phase before any await
        self._phase = new_phase
        self._history.append(transition)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        await self._call_callbacks(self._on_exit_callbacks[old_phase], transition)
        await self._call_callbacks(self._on_enter_callbacks[new_phase], transition)
        await self._call_callbacks(self._on_change_callbacks, transition)

        return transition

    async def _call_callbacks(
        self,
        callbacks: list[PhaseCallback],
        transition: PhaseTransition,
    ) -> None:
        """Call list of callbacks with transition."""
        for callback in callbacks:
            try:
                result = callback(transition)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Subscriber errors never break the lifecycle
                logger.warning(
                    "phase_callback_failed",
                    session_id=self._session_id,
                    new_phase=transition.new_phase.value,
                    error=str(e),
                )

    @property
    def history(self) -> list[PhaseTransition]:
        """Transition history (most recent last)."""
        return self._history.copy()

    def time_in_phase(self) -> float:
        """Seconds spent in the current phase."""
        if not self._history:
            return 0.0
        return max(0.0, self._now() - self._history[-1].at)
