"""Attempt Cancellation - invalidating in-flight provisioning and joins.

A remote create call or a transport join cannot be forcibly aborted once
issued. Instead every provisioning attempt carries the generation it was
started under; end() and retry() bump the generation, and the attempt checks
it after each await. A resource that arrives for a stale attempt is destroyed
instead of adopted.
"""

import time
from dataclasses import dataclass
from enum import Enum


class CancelReason(Enum):
    """Why the current attempt (or session) was cancelled."""

    USER_HANG_UP = "user_hang_up"
    BUDGET_EXCEEDED = "budget_exceeded"
    REMOTE_LEFT = "remote_left"
    REMOTE_ERROR = "remote_error"
    RETRY = "retry"
    FAILURE = "failure"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class CancelMessage:
    """Record of one cancellation."""

    session_id: str
    reason: CancelReason
    generation: int
    at: float

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "type": "CANCEL",
            "reason": self.reason.value,
            "generation": self.generation,
            "at": self.at,
        }


class Attempt:
    """Handle held by one provisioning/join attempt."""

    def __init__(self, controller: "CancellationController", generation: int) -> None:
        self._controller = controller
        self._generation = generation

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_stale(self) -> bool:
        """True once end() or retry() superseded this attempt."""
        return self._controller.generation != self._generation


class CancellationController:
    """Tracks the generation of the current attempt.

    Usage:
        cancellation = CancellationController(session_id="session-123")

        attempt = cancellation.begin()
        resource = await manager.create(session_input)
        if attempt.is_stale:
            await manager.destroy(resource.conversation_id)
            return

        # elsewhere, on hang-up
        cancellation.cancel(CancelReason.USER_HANG_UP)
    """

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._generation = 0
        self._last_cancel: CancelMessage | None = None

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> Attempt:
        """Start a new attempt, superseding any previous one."""
        self._generation += 1
        return Attempt(self, self._generation)

    def cancel(self, reason: CancelReason) -> CancelMessage:
        """Invalidate the current attempt."""
        self._generation += 1
        message = CancelMessage(
            session_id=self._session_id,
            reason=reason,
            generation=self._generation,
            at=time.time(),
        )
        self._last_cancel = message
        return message

    @property
    def last_cancel(self) -> CancelMessage | None:
        """Last cancellation issued."""
        return self._last_cancel

    @property
    def session_id(self) -> str:
        """Session ID for this controller."""
        return self._session_id
