"""Interview session orchestration."""

from interview_call.orchestrator.cancellation import CancellationController, CancelReason
from interview_call.orchestrator.controller import (
    CallSessionController,
    ControllerConfig,
    SessionResult,
    SessionStatus,
)
from interview_call.orchestrator.manager import SessionManager
from interview_call.orchestrator.state_machine import SessionPhase, SessionPhaseMachine

__all__ = [
    "CallSessionController",
    "CancelReason",
    "CancellationController",
    "ControllerConfig",
    "SessionManager",
    "SessionPhase",
    "SessionPhaseMachine",
    "SessionResult",
    "SessionStatus",
]
