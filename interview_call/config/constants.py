"""Session Contract Constants - Authoritative thresholds and defaults.

These constants define the behavioral contracts of one interview session.
Settings may override the defaults, never the invariants.
"""

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class SessionConstants:
    """Immutable session contract thresholds.

    All timing values in seconds unless otherwise noted.
    """

    # Session budget
    SESSION_BUDGET_S: Final[int] = 1800  # Hard wall-clock budget for a live call
    CLOCK_TICK_S: Final[float] = 1.0  # Budget polling cadence
    UNMUTE_GRACE_S: Final[float] = 2.0  # Delay before local audio is unmuted

    # Transport acknowledgements
    TRANSPORT_JOIN_TIMEOUT_S: Final[float] = 30.0
    TRANSPORT_LEAVE_TIMEOUT_S: Final[float] = 5.0

    # Remote conversation properties
    MAX_CALL_DURATION_S: Final[int] = 1800  # Remote-side hard cap
    PARTICIPANT_LEFT_TIMEOUT_S: Final[int] = 60
    PROVISIONING_TIMEOUT_S: Final[float] = 20.0

    # Evaluation bounds
    SCORE_MIN: Final[float] = 0.0
    SCORE_MAX: Final[float] = 100.0

    # Transition history kept per session
    MAX_PHASE_HISTORY: Final[int] = 100

    # Session defaults
    MAX_CONCURRENT_SESSIONS: Final[int] = 10


# Singleton instance for import convenience
SESSION = SessionConstants()
