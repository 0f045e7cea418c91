"""Call Session Controller - lifecycle of one interview call.

Coordinates, for a single session:
- Phase machine (idle → provisioning → joining → live → terminating → terminated / error)
- Conversation resource (create on start, destroy exactly once on teardown)
- Transport (join with video on / audio off, unmute after a grace delay)
- Session clock (armed when the interviewer first joins)
- Transcript collector (open only while live)
- Evaluation (computed once from the snapshot taken as teardown begins)

Inbound transport events are drained in arrival order by a single pump task.
end() and retry() invalidate any in-flight provisioning or join through the
attempt generation; a resource or join acknowledgement that arrives for a stale
attempt is torn down instead of adopted.
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from interview_call.clock.session_clock import SessionClock
from interview_call.clock.store import ClockStore
from interview_call.config.constants import SESSION
from interview_call.config.settings import Settings
from interview_call.conversation.models import ConversationResource, SessionInput
from interview_call.conversation.resource_manager import ConversationResourceManager
from interview_call.evaluation.engine import EvaluationSummary, evaluate
from interview_call.exceptions import (
    ProvisioningError,
    SessionFailure,
    SessionStateError,
    TransportError,
    TransportJoinFailedError,
)
from interview_call.observability.logging import ProvisioningLogger, SessionLogger, get_logger
from interview_call.observability.metrics import (
    record_session_end,
    record_session_failure,
    record_session_start,
)
from interview_call.orchestrator.cancellation import CancellationController, CancelReason
from interview_call.orchestrator.state_machine import (
    PhaseCallback,
    PhaseTransition,
    SessionPhase,
    SessionPhaseMachine,
)
from interview_call.transcript.collector import TranscriptCollector, TranscriptMessage
from interview_call.transport.base import (
    MediaState,
    ParticipantJoined,
    ParticipantLeft,
    Transport,
    TransportEvent,
    TransportFailure,
)
from interview_call.transport.relay import RelayTransport
from interview_call.utils.async_timeout import AsyncTimeoutError, with_timeout

logger = get_logger(__name__)

# Media requested when joining: camera on, microphone muted until the grace delay
JOIN_MEDIA = MediaState(audio=False, video=True)

CompleteCallback = Callable[["SessionResult"], Any] | Callable[["SessionResult"], Awaitable[Any]]


@dataclass
class ControllerConfig:
    """Timing configuration for a call session."""

    budget_s: float = float(SESSION.SESSION_BUDGET_S)
    clock_tick_s: float = SESSION.CLOCK_TICK_S
    unmute_grace_s: float = SESSION.UNMUTE_GRACE_S
    join_timeout_s: float = SESSION.TRANSPORT_JOIN_TIMEOUT_S
    leave_timeout_s: float = SESSION.TRANSPORT_LEAVE_TIMEOUT_S

    @classmethod
    def from_settings(cls, settings: Settings) -> "ControllerConfig":
        return cls(
            budget_s=float(settings.session_budget_s),
            clock_tick_s=settings.clock_tick_s,
            unmute_grace_s=settings.unmute_grace_s,
            join_timeout_s=settings.transport_join_timeout_s,
            leave_timeout_s=settings.transport_leave_timeout_s,
        )


@dataclass(frozen=True)
class SessionResult:
    """Session-complete payload."""

    session_id: str
    reason: str
    transcript: tuple[TranscriptMessage, ...]
    evaluation: EvaluationSummary
    duration_s: float
    ended_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "reason": self.reason,
            "transcript": [m.to_dict() for m in self.transcript],
            "evaluation": self.evaluation.to_dict(),
            "duration_s": self.duration_s,
            "ended_at": self.ended_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionStatus:
    """Read-only view of controller state."""

    session_id: str
    phase: SessionPhase
    error_kind: str | None
    error_message: str | None
    user_action: str | None
    elapsed_s: float
    remaining_s: float
    message_count: int
    media: MediaState
    conversation_url: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "user_action": self.user_action,
            "elapsed_s": round(self.elapsed_s, 3),
            "remaining_s": round(self.remaining_s, 3),
            "message_count": self.message_count,
            "media": self.media.to_dict(),
            "conversation_url": self.conversation_url,
        }


class CallSessionController:
    """Owns every resource of one interview session.

    Usage:
        controller = CallSessionController(resource_manager=manager)
        controller.subscribe(on_phase)
        controller.on_complete(on_done)

        await controller.start(session_input)
        # transport events drive live / end
        result = await controller.end()
    """

    def __init__(
        self,
        session_id: str | None = None,
        resource_manager: ConversationResourceManager | None = None,
        transport_factory: Callable[[], Transport] = RelayTransport,
        clock_store: ClockStore | None = None,
        config: ControllerConfig | None = None,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._session_id = session_id or str(uuid.uuid4())
        self._config = config or ControllerConfig()
        self._resources = resource_manager or ConversationResourceManager(
            session_id=self._session_id
        )
        self._transport_factory = transport_factory
        self._now = now

        self._fsm = SessionPhaseMachine(self._session_id, now=now)
        self._cancellation = CancellationController(self._session_id)
        self._clock = SessionClock(
            self._session_id,
            store=clock_store,
            on_budget_exceeded=self.on_clock_budget_exceeded,
            tick_s=self._config.clock_tick_s,
            now=now,
        )
        self._collector = self._new_collector()

        self._input: SessionInput | None = None
        self._resource: ConversationResource | None = None
        self._transport: Transport | None = None
        self._media = MediaState(audio=False, video=False)
        self._error: SessionFailure | None = None
        self._result: SessionResult | None = None
        self._clock_armed_once = False

        self._join_ack: asyncio.Event | None = None
        self._pump_task: asyncio.Task | None = None
        self._unmute_task: asyncio.Task | None = None
        self._complete_callbacks: list[CompleteCallback] = []

        self._logger = SessionLogger(self._session_id)
        self._provisioning_logger = ProvisioningLogger(self._session_id)
        self._fsm.on_phase_change(self._log_transition)

    # -------------------------------------------------------------------------
    # Read interface
    # -------------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def phase(self) -> SessionPhase:
        return self._fsm.phase

    @property
    def error(self) -> SessionFailure | None:
        """Typed cause of the error phase, if any."""
        return self._error

    @property
    def result(self) -> SessionResult | None:
        return self._result

    @property
    def media(self) -> MediaState:
        return self._media

    @property
    def resource(self) -> ConversationResource | None:
        return self._resource

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def clock(self) -> SessionClock:
        return self._clock

    @property
    def history(self) -> list[PhaseTransition]:
        return self._fsm.history

    @property
    def transcript(self) -> tuple[TranscriptMessage, ...]:
        return self._collector.snapshot()

    def status(self) -> SessionStatus:
        error = self._error
        if self._result is not None:
            elapsed = self._result.duration_s
            remaining = max(0.0, self._config.budget_s - elapsed)
        elif self._clock.is_armed:
            elapsed = self._clock.elapsed()
            remaining = self._clock.remaining()
        else:
            elapsed = 0.0
            remaining = self._config.budget_s
        return SessionStatus(
            session_id=self._session_id,
            phase=self.phase,
            error_kind=error.kind.value if error is not None else None,
            error_message=error.message if error is not None else None,
            user_action=error.user_action.value if error is not None else None,
            elapsed_s=elapsed,
            remaining_s=remaining,
            message_count=len(self._collector),
            media=self._media,
            conversation_url=self._resource.conversation_url if self._resource else None,
        )

    def subscribe(self, callback: PhaseCallback) -> None:
        """Register a callback for every phase transition."""
        self._fsm.on_phase_change(callback)

    def on_complete(self, callback: CompleteCallback) -> None:
        """Register a callback for the session-complete signal."""
        self._complete_callbacks.append(callback)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, session_input: SessionInput) -> None:
        """Provision a conversation and join the call.

        Raises:
            SessionStateError: If a session is already running
        """
        phase = self.phase
        if phase not in (SessionPhase.IDLE, SessionPhase.TERMINATED, SessionPhase.ERROR):
            raise SessionStateError(
                "Session already running",
                session_id=self._session_id,
                current_phase=phase.value,
                operation="start",
            )

        self._input = session_input
        self._reset_attempt_state()
        self._logger.session_started({"candidate": session_input.name})
        await self._provision("start")

    async def retry(self) -> None:
        """Re-provision with the last session input after a failure.

        Raises:
            SessionStateError: If the session is not in the error phase
        """
        if self.phase is not SessionPhase.ERROR or self._input is None:
            raise SessionStateError(
                "Retry is only valid after a failure",
                session_id=self._session_id,
                current_phase=self.phase.value,
                operation="retry",
            )

        self._cancellation.cancel(CancelReason.RETRY)
        transport, resource = self._detach_transport(), self._detach_resource()
        await self._release_transport(transport)
        await self._release_resource(resource)
        self._reset_attempt_state()
        await self._provision("retry")

    async def end(
        self,
        reason: CancelReason = CancelReason.USER_HANG_UP,
    ) -> SessionResult | None:
        """Tear the session down and evaluate it.

        Concurrent or repeated calls collapse to one teardown; later callers
        get the existing result (None while teardown is still running).
        """
        phase = self.phase
        if phase is SessionPhase.IDLE or phase.is_terminal or phase is SessionPhase.TERMINATING:
            self._logger.call_ignored("end", phase.value)
            return self._result

        # Everything up to the TERMINATING transition happens without awaiting
        self._cancellation.cancel(reason)
        transcript = self._collector.snapshot()
        self._collector.close()
        duration_s = self._clock.elapsed()
        evaluation = evaluate(transcript)
        transport, resource = self._detach_transport(), self._detach_resource()
        self._clock.disarm()
        await self._fsm.transition_to(SessionPhase.TERMINATING, reason.value)

        await self._release_transport(transport)
        await self._release_resource(resource)

        result = SessionResult(
            session_id=self._session_id,
            reason=reason.value,
            transcript=transcript,
            evaluation=evaluation,
            duration_s=duration_s,
            ended_at=datetime.now(timezone.utc),
        )
        self._result = result
        await self._fsm.transition_to(SessionPhase.TERMINATED, reason.value)

        self._logger.session_ended(
            reason=reason.value,
            duration_s=duration_s,
            messages=len(transcript),
            aggregate_score=evaluation.aggregate,
        )
        record_session_end(reason.value, duration_s, evaluation.aggregate)
        await self._notify_complete(result)
        return result

    async def on_remote_joined(self, participant_id: str | None = None) -> None:
        """The interviewer is present in the call."""
        phase = self.phase
        if phase is SessionPhase.LIVE:
            self._logger.remote_joined(participant_id, first=False)
            return
        if phase is not SessionPhase.JOINING:
            self._logger.call_ignored("on_remote_joined", phase.value)
            return

        self._logger.remote_joined(participant_id, first=True)
        self._collector.open()
        await self._fsm.transition_to(SessionPhase.LIVE, "remote_joined")
        if self.phase is not SessionPhase.LIVE:
            return

        if not self._clock_armed_once:
            self._clock_armed_once = True
            self._clock.arm(self._config.budget_s)
        self._unmute_task = asyncio.create_task(self._unmute_after_grace())

    async def on_clock_budget_exceeded(self) -> None:
        """Budget spent: same teardown as a manual hang-up."""
        if self.phase is not SessionPhase.LIVE:
            self._logger.call_ignored("on_clock_budget_exceeded", self.phase.value)
            return
        await self.end(CancelReason.BUDGET_EXCEEDED)

    async def set_local_audio(self, enabled: bool) -> MediaState:
        transport = self._require_transport("set_local_audio")
        await transport.set_local_audio(enabled)
        self._media = MediaState(audio=enabled, video=self._media.video)
        return self._media

    async def set_local_video(self, enabled: bool) -> MediaState:
        transport = self._require_transport("set_local_video")
        await transport.set_local_video(enabled)
        self._media = MediaState(audio=self._media.audio, video=enabled)
        return self._media

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _new_collector(self) -> TranscriptCollector:
        return TranscriptCollector(
            self._session_id,
            lambda: self._transport.local_participant_id if self._transport else None,
        )

    def _reset_attempt_state(self) -> None:
        self._error = None
        self._result = None
        self._clock_armed_once = False
        self._media = MediaState(audio=False, video=False)
        self._collector = self._new_collector()

    def _require_transport(self, operation: str) -> Transport:
        phase = self.phase
        if phase not in (SessionPhase.JOINING, SessionPhase.LIVE) or self._transport is None:
            raise SessionStateError(
                "No call in progress",
                session_id=self._session_id,
                current_phase=phase.value,
                operation=operation,
            )
        return self._transport

    async def _provision(self, reason: str) -> None:
        attempt = self._cancellation.begin()
        await self._fsm.transition_to(SessionPhase.PROVISIONING, reason)
        record_session_start()

        try:
            resource = await self._resources.create(self._input)
        except ProvisioningError as e:
            if attempt.is_stale:
                return
            await self._fail(e)
            return

        if attempt.is_stale:
            self._provisioning_logger.late_resource_discarded(resource.conversation_id)
            await self._resources.destroy(resource.conversation_id)
            return

        self._resource = resource
        await self._fsm.transition_to(
            SessionPhase.JOINING,
            "resource_ready",
            {"conversation_id": resource.conversation_id},
        )
        if attempt.is_stale:
            return

        transport = self._transport_factory()
        join_ack = asyncio.Event()
        self._transport = transport
        self._join_ack = join_ack
        self._media = JOIN_MEDIA
        self._pump_task = asyncio.create_task(self._pump(transport))

        try:
            await with_timeout(
                transport.join(resource.conversation_url, JOIN_MEDIA),
                self._config.join_timeout_s,
                operation="transport join",
            )
        except (TransportError, AsyncTimeoutError) as e:
            if attempt.is_stale:
                return
            await self._fail(TransportJoinFailedError(str(e), url=resource.conversation_url))
            return

        if attempt.is_stale:
            # Teardown ran while the join was pending; leave the late join too
            self._provisioning_logger.late_join_discarded(resource.conversation_id)
            await self._release_transport(transport)
            return
        join_ack.set()

    async def _fail(self, error: SessionFailure) -> None:
        if not self._fsm.can_transition(SessionPhase.ERROR):
            self._logger.call_ignored("fail", self.phase.value)
            return

        self._cancellation.cancel(CancelReason.FAILURE)
        self._error = error
        self._collector.close()
        # Handles are taken before ERROR is visible; a retry() started from a
        # phase callback owns whatever it provisions next.
        transport, resource = self._detach_transport(), self._detach_resource()
        self._clock.disarm()
        self._logger.session_failed(error.kind.value, error.message)
        await self._fsm.transition_to(
            SessionPhase.ERROR,
            error.kind.value,
            {"user_action": error.user_action.value},
        )

        await self._release_transport(transport)
        await self._release_resource(resource)
        record_session_failure(error.kind.value)

    def _detach_transport(self) -> Transport | None:
        """Take the transport out of the controller and stop its tasks."""
        transport = self._transport
        self._transport = None
        self._join_ack = None
        self._media = MediaState(audio=False, video=False)

        current = asyncio.current_task()
        for task in (self._unmute_task, self._pump_task):
            if task is not None and not task.done() and task is not current:
                task.cancel()
        self._unmute_task = None
        self._pump_task = None
        return transport

    def _detach_resource(self) -> ConversationResource | None:
        resource = self._resource
        self._resource = None
        return resource

    async def _release_transport(self, transport: Transport | None) -> None:
        if transport is None:
            return
        try:
            await with_timeout(
                transport.leave(),
                self._config.leave_timeout_s,
                operation="transport leave",
            )
        except Exception as e:
            self._logger.teardown_step_failed("transport_leave", str(e))
        try:
            await transport.destroy()
        except Exception as e:
            self._logger.teardown_step_failed("transport_destroy", str(e))

    async def _release_resource(self, resource: ConversationResource | None) -> None:
        if resource is None:
            return
        await self._resources.destroy(resource.conversation_id)

    async def _unmute_after_grace(self) -> None:
        join_ack = self._join_ack
        if join_ack is not None:
            await join_ack.wait()
        await asyncio.sleep(self._config.unmute_grace_s)
        if self.phase is not SessionPhase.LIVE or self._transport is None:
            return
        try:
            await self.set_local_audio(True)
        except Exception as e:
            self._logger.media_toggle_failed("unmute", str(e))

    async def _pump(self, transport: Transport) -> None:
        events = transport.events
        while self._transport is transport:
            event = await events.get()
            try:
                await self._dispatch(transport, event)
            except Exception:
                logger.exception(
                    "transport_event_failed",
                    session_id=self._session_id,
                    event_kind=event.kind,
                )
            finally:
                events.task_done()

    async def _dispatch(self, transport: Transport, event: TransportEvent) -> None:
        if isinstance(event, ParticipantJoined):
            if event.local or event.participant_id == transport.local_participant_id:
                return
            await self.on_remote_joined(event.participant_id)
        elif isinstance(event, ParticipantLeft):
            if event.local or event.participant_id == transport.local_participant_id:
                return
            if self.phase is not SessionPhase.LIVE:
                return
            await self.end(CancelReason.REMOTE_LEFT)
        elif isinstance(event, TransportFailure):
            if self.phase is SessionPhase.JOINING:
                url = self._resource.conversation_url if self._resource else None
                await self._fail(TransportJoinFailedError(event.reason, url=url))
            elif self.phase is SessionPhase.LIVE:
                await self.end(CancelReason.REMOTE_ERROR)
        else:
            self._collector.on_transport_event(event)

    async def _notify_complete(self, result: SessionResult) -> None:
        for callback in self._complete_callbacks:
            try:
                outcome = callback(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "complete_callback_failed",
                    session_id=self._session_id,
                    error=str(e),
                )

    def _log_transition(self, transition: PhaseTransition) -> None:
        self._logger.phase_change(
            old_phase=transition.old_phase.value,
            new_phase=transition.new_phase.value,
            reason=transition.reason,
        )
