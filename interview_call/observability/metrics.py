"""Prometheus Metrics - session lifecycle observability.

Exports:
- Session counts (started, ended by reason, active)
- Provisioning failures by error kind
- Resource destroy failures
- Transcript message counts by origin
- Session duration and evaluation score distributions
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

SESSION_STARTED = Counter(
    "interview_sessions_started_total",
    "Total interview sessions started",
)

SESSION_ENDED = Counter(
    "interview_sessions_ended_total",
    "Total interview sessions terminated",
    ["reason"],  # user_hang_up, budget_exceeded, remote_left, remote_error
)

SESSION_FAILED = Counter(
    "interview_sessions_failed_total",
    "Sessions that entered the error phase",
    ["kind"],  # credential_invalid, quota_exhausted, ...
)

DESTROY_FAILURES = Counter(
    "interview_resource_destroy_failures_total",
    "Best-effort conversation destroy calls that failed",
)

TRANSCRIPT_MESSAGES = Counter(
    "interview_transcript_messages_total",
    "Transcript messages appended",
    ["origin"],  # live-transcript, application-event
)

TRANSCRIPT_DUPLICATES = Counter(
    "interview_transcript_possible_duplicates_total",
    "Utterances observed through both event sources",
)

# -----------------------------------------------------------------------------
# Gauges
# -----------------------------------------------------------------------------

ACTIVE_SESSIONS = Gauge(
    "interview_active_sessions",
    "Sessions between start and termination",
)

# -----------------------------------------------------------------------------
# Histograms
# -----------------------------------------------------------------------------

SESSION_DURATION = Histogram(
    "interview_session_duration_seconds",
    "Live duration of terminated sessions",
    buckets=[30, 60, 120, 300, 600, 900, 1200, 1800, 3600],
)

EVALUATION_SCORE = Histogram(
    "interview_evaluation_aggregate_score",
    "Aggregate evaluation score of terminated sessions",
    buckets=[0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

# -----------------------------------------------------------------------------
# Info
# -----------------------------------------------------------------------------

BUILD_INFO = Info(
    "interview_call_build",
    "Build information",
)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def record_session_start() -> None:
    """Record session start."""
    SESSION_STARTED.inc()
    ACTIVE_SESSIONS.inc()


def record_session_end(reason: str, duration_s: float, aggregate_score: float) -> None:
    """Record session termination."""
    SESSION_ENDED.labels(reason=reason).inc()
    ACTIVE_SESSIONS.dec()
    SESSION_DURATION.observe(duration_s)
    EVALUATION_SCORE.observe(aggregate_score)


def record_session_failure(kind: str) -> None:
    """Record session entering the error phase."""
    SESSION_FAILED.labels(kind=kind).inc()
    ACTIVE_SESSIONS.dec()


def record_destroy_failure() -> None:
    """Record failed best-effort destroy."""
    DESTROY_FAILURES.inc()


def record_transcript_message(origin: str) -> None:
    """Record appended transcript message."""
    TRANSCRIPT_MESSAGES.labels(origin=origin).inc()


def record_transcript_duplicate() -> None:
    """Record utterance seen through both sources."""
    TRANSCRIPT_DUPLICATES.inc()


def set_build_info(version: str) -> None:
    """Set build information."""
    BUILD_INFO.info({"version": version})
