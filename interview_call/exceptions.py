"""Interview Call Exception Hierarchy.

Provides structured exception classes for the session lifecycle.

Hierarchy:
    InterviewCallError (base)
    ├── SessionError
    │   ├── SessionNotFoundError
    │   ├── SessionLimitError
    │   └── SessionStateError
    ├── ProvisioningError
    │   ├── CredentialInvalidError
    │   ├── QuotaExhaustedError
    │   ├── InvalidParametersError
    │   └── GenericProvisioningError
    └── TransportError
        └── TransportJoinFailedError
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Typed cause attached to a session that entered the error phase."""

    CREDENTIAL_INVALID = "credential_invalid"
    QUOTA_EXHAUSTED = "quota_exhausted"
    INVALID_PARAMETERS = "invalid_parameters"
    TRANSPORT_JOIN_FAILED = "transport_join_failed"
    GENERIC_PROVISIONING_FAILURE = "generic_provisioning_failure"


class UserAction(Enum):
    """Action offered to the user for a failed session."""

    MANAGE_ACCOUNT = "manage_account"
    RETRY = "retry"


def user_action_for(kind: ErrorKind) -> UserAction:
    """Only quota exhaustion routes to account management."""
    if kind is ErrorKind.QUOTA_EXHAUSTED:
        return UserAction.MANAGE_ACCOUNT
    return UserAction.RETRY


class InterviewCallError(Exception):
    """Base exception for all interview call errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(InterviewCallError):
    """Base exception for session-related errors."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        details = details or {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, details, recoverable)
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    """Raised when a session cannot be found."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session not found: {session_id}",
            session_id=session_id,
            recoverable=False,
        )


class SessionLimitError(SessionError):
    """Raised when session limit is reached."""

    def __init__(self, max_sessions: int, current_sessions: int) -> None:
        super().__init__(
            message=f"Session limit reached: {current_sessions}/{max_sessions}",
            details={
                "max_sessions": max_sessions,
                "current_sessions": current_sessions,
            },
            recoverable=True,  # Can retry when a session ends
        )


class SessionStateError(SessionError):
    """Raised when a lifecycle operation is called from the wrong phase."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        current_phase: str | None = None,
        operation: str | None = None,
    ) -> None:
        details = {}
        if current_phase:
            details["current_phase"] = current_phase
        if operation:
            details["operation"] = operation
        super().__init__(message, session_id, details, recoverable=False)


# =============================================================================
# Provisioning Errors
# =============================================================================


class ProvisioningError(InterviewCallError):
    """Base exception for conversation resource provisioning failures.

    Every subclass carries an ErrorKind so callers can branch without
    isinstance chains.
    """

    kind: ErrorKind = ErrorKind.GENERIC_PROVISIONING_FAILURE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details, recoverable=True)
        self.status_code = status_code

    @property
    def user_action(self) -> UserAction:
        return user_action_for(self.kind)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["user_action"] = self.user_action.value
        return data


class CredentialInvalidError(ProvisioningError):
    """The service API key is missing or was rejected."""

    kind = ErrorKind.CREDENTIAL_INVALID


class QuotaExhaustedError(ProvisioningError):
    """The account is out of conversational credits."""

    kind = ErrorKind.QUOTA_EXHAUSTED


class InvalidParametersError(ProvisioningError):
    """Persona, replica or session parameters were rejected."""

    kind = ErrorKind.INVALID_PARAMETERS


class GenericProvisioningError(ProvisioningError):
    """Network failure or an unclassified service error."""

    kind = ErrorKind.GENERIC_PROVISIONING_FAILURE


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(InterviewCallError):
    """Base exception for real-time transport errors."""

    pass


class TransportJoinFailedError(TransportError):
    """Raised when joining the call fails or is never acknowledged."""

    kind = ErrorKind.TRANSPORT_JOIN_FAILED

    def __init__(self, reason: str, url: str | None = None) -> None:
        details: dict[str, Any] = {"reason": reason}
        if url:
            details["url"] = url
        super().__init__(
            message=f"Failed to join call: {reason}",
            details=details,
            recoverable=True,
        )

    @property
    def user_action(self) -> UserAction:
        return user_action_for(self.kind)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["user_action"] = self.user_action.value
        return data


# Errors that may be attached to a session in the error phase
SessionFailure = ProvisioningError | TransportJoinFailedError
