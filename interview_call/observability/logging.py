"""Structured Logging - JSON logs with correlation.

Provides structured logging for:
- Session lifecycle events (start, phase changes, termination, failure)
- Conversation resource provisioning and teardown
- Transcript collection

All session logs include session_id for correlation.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; else human-readable
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    level_no = logging.getLevelName(level.upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Also configure standard logging (httpx, uvicorn)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level_no,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)


def bind_session(session_id: str) -> None:
    """Bind session_id to all logs in current context.

    Args:
        session_id: Session identifier
    """
    structlog.contextvars.bind_contextvars(session_id=session_id)


def unbind_session() -> None:
    """Remove session_id from log context."""
    structlog.contextvars.unbind_contextvars("session_id")


# -----------------------------------------------------------------------------
# Event-specific logging functions
# -----------------------------------------------------------------------------


class SessionLogger:
    """Logger for session lifecycle events."""

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._log = get_logger("session").bind(session_id=session_id)

    def session_started(self, metadata: dict[str, Any] | None = None) -> None:
        """Log session start."""
        self._log.info(
            "session_started",
            event_type="session.started",
            **(metadata or {}),
        )

    def phase_change(
        self,
        old_phase: str,
        new_phase: str,
        reason: str,
    ) -> None:
        """Log phase transition."""
        self._log.info(
            "phase_change",
            event_type="session.phase_change",
            old_phase=old_phase,
            new_phase=new_phase,
            reason=reason,
        )

    def remote_joined(self, participant_id: str | None, first: bool) -> None:
        """Log remote participant presence."""
        self._log.info(
            "remote_joined",
            event_type="session.remote_joined",
            participant_id=participant_id,
            first=first,
        )

    def session_ended(
        self,
        reason: str,
        duration_s: float,
        messages: int,
        aggregate_score: float,
    ) -> None:
        """Log session termination."""
        self._log.info(
            "session_ended",
            event_type="session.ended",
            reason=reason,
            duration_s=duration_s,
            messages=messages,
            aggregate_score=aggregate_score,
        )

    def session_failed(self, kind: str, error: str) -> None:
        """Log session entering the error phase."""
        self._log.warning(
            "session_failed",
            event_type="session.failed",
            kind=kind,
            error=error,
        )

    def call_ignored(self, operation: str, phase: str) -> None:
        """Log a lifecycle call that had no effect in the current phase."""
        self._log.debug(
            "call_ignored",
            event_type="session.call_ignored",
            operation=operation,
            phase=phase,
        )

    def media_toggle_failed(self, operation: str, error: str) -> None:
        """Log a background media change the transport rejected."""
        self._log.warning(
            "media_toggle_failed",
            event_type="session.media_failed",
            operation=operation,
            error=error,
        )

    def teardown_step_failed(self, step: str, error: str) -> None:
        """Log a swallowed teardown failure."""
        self._log.warning(
            "teardown_step_failed",
            event_type="session.teardown_failed",
            step=step,
            error=error,
        )


class ProvisioningLogger:
    """Logger for conversation resource events."""

    def __init__(self, session_id: str | None = None) -> None:
        self._log = get_logger("provisioning")
        if session_id:
            self._log = self._log.bind(session_id=session_id)

    def resource_created(self, conversation_id: str, elapsed_ms: float) -> None:
        """Log successful conversation creation."""
        self._log.info(
            "conversation_created",
            event_type="provisioning.created",
            conversation_id=conversation_id,
            elapsed_ms=elapsed_ms,
        )

    def resource_failed(
        self,
        kind: str,
        status_code: int | None,
        error: str,
    ) -> None:
        """Log classified provisioning failure."""
        self._log.warning(
            "conversation_create_failed",
            event_type="provisioning.failed",
            kind=kind,
            status_code=status_code,
            error=error,
        )

    def resource_destroyed(self, conversation_id: str) -> None:
        """Log conversation teardown."""
        self._log.info(
            "conversation_destroyed",
            event_type="provisioning.destroyed",
            conversation_id=conversation_id,
        )

    def destroy_failed(self, conversation_id: str, error: str) -> None:
        """Log best-effort destroy failure."""
        self._log.warning(
            "conversation_destroy_failed",
            event_type="provisioning.destroy_failed",
            conversation_id=conversation_id,
            error=error,
        )

    def destroy_skipped(self, conversation_id: str) -> None:
        """Log destroy of an unknown or already destroyed id."""
        self._log.debug(
            "conversation_destroy_skipped",
            event_type="provisioning.destroy_skipped",
            conversation_id=conversation_id,
        )

    def late_resource_discarded(self, conversation_id: str) -> None:
        """Log a resource that arrived after teardown began."""
        self._log.info(
            "late_conversation_discarded",
            event_type="provisioning.late_discarded",
            conversation_id=conversation_id,
        )

    def late_join_discarded(self, conversation_id: str) -> None:
        """Log a join acknowledged after teardown began."""
        self._log.info(
            "late_join_discarded",
            event_type="provisioning.late_join_discarded",
            conversation_id=conversation_id,
        )


class TranscriptLogger:
    """Logger for transcript collection."""

    def __init__(self, session_id: str) -> None:
        self._log = get_logger("transcript").bind(session_id=session_id)

    def message_appended(self, message_id: int, speaker: str, origin: str) -> None:
        """Log appended transcript message."""
        self._log.debug(
            "transcript_message",
            event_type="transcript.appended",
            message_id=message_id,
            speaker=speaker,
            origin=origin,
        )

    def event_discarded(self, reason: str, event_kind: str) -> None:
        """Log an inbound event that produced no message."""
        self._log.debug(
            "transcript_event_discarded",
            event_type="transcript.discarded",
            reason=reason,
            event_kind=event_kind,
        )

    def possible_duplicate(self, message_id: int, previous_id: int) -> None:
        """Log an utterance seen through both event sources."""
        self._log.info(
            "transcript_possible_duplicate",
            event_type="transcript.possible_duplicate",
            message_id=message_id,
            previous_id=previous_id,
        )


# Initialize default logging configuration
def init_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Initialize logging with defaults.

    Call this once at application startup.
    """
    configure_logging(level=level, json_format=json_format)
