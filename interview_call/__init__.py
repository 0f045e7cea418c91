"""Interview Call - lifecycle orchestration for live AI interview calls."""

__version__ = "1.0.0"

# Export exception hierarchy for easy importing
from interview_call.exceptions import (
    InterviewCallError,
    ErrorKind,
    UserAction,
    SessionError,
    SessionNotFoundError,
    SessionLimitError,
    SessionStateError,
    ProvisioningError,
    CredentialInvalidError,
    QuotaExhaustedError,
    InvalidParametersError,
    GenericProvisioningError,
    TransportError,
    TransportJoinFailedError,
)

__all__ = [
    "__version__",
    # Base
    "InterviewCallError",
    "ErrorKind",
    "UserAction",
    # Session
    "SessionError",
    "SessionNotFoundError",
    "SessionLimitError",
    "SessionStateError",
    # Provisioning
    "ProvisioningError",
    "CredentialInvalidError",
    "QuotaExhaustedError",
    "InvalidParametersError",
    "GenericProvisioningError",
    # Transport
    "TransportError",
    "TransportJoinFailedError",
]
