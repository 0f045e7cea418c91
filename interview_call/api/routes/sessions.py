"""Session API Routes - interview sessions over HTTP.

The candidate's device runs the media transport. It creates a session here,
joins the returned conversation URL, and relays what it observes (participants
joining/leaving, speech, failures) back through /events. The controller's
read interface is exposed through the status and result endpoints.
"""

from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from interview_call.config.settings import get_settings
from interview_call.conversation.models import SessionInput
from interview_call.exceptions import SessionLimitError, SessionStateError
from interview_call.observability.logging import bind_session, get_logger, unbind_session
from interview_call.orchestrator.cancellation import CancelReason
from interview_call.orchestrator.controller import CallSessionController
from interview_call.orchestrator.manager import SessionManager
from interview_call.orchestrator.state_machine import SessionPhase
from interview_call.transcript.export import build_export, write_export
from interview_call.transport.base import (
    AppMessage,
    ParticipantJoined,
    ParticipantLeft,
    TranscriptionMessage,
    TransportEvent,
    TransportFailure,
)
from interview_call.transport.relay import RelayTransport
from interview_call.utils.async_timeout import AsyncTimeoutError, with_timeout

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

# Global manager (initialized on startup)
_session_manager: SessionManager | None = None

# Upper bound on waiting for a relayed event to be dispatched
EVENT_DISPATCH_TIMEOUT_S = 5.0


def get_session_manager() -> SessionManager:
    """Get global session manager."""
    global _session_manager
    if _session_manager is None:
        settings = get_settings()
        _session_manager = SessionManager(max_sessions=settings.max_concurrent_sessions)
    return _session_manager


def set_session_manager(manager: SessionManager | None) -> None:
    """Replace the global session manager."""
    global _session_manager
    _session_manager = manager


# Request/Response models
class CreateSessionResponse(BaseModel):
    """Response after creating a session."""

    session_id: str
    phase: str
    conversation_url: str | None
    error: dict[str, Any] | None = None


class TransportEventRequest(BaseModel):
    """Transport event observed by the device."""

    type: Literal[
        "participant_joined",
        "participant_left",
        "app_message",
        "transcription",
        "failure",
    ]
    participant_id: str | None = Field(None, description="Participant the event is about")
    local: bool = Field(False, description="Whether the participant is the candidate")
    data: dict[str, Any] = Field(default_factory=dict, description="App message payload")
    text: str | None = Field(None, description="Transcription text")
    reason: str | None = Field(None, description="Failure reason")

    def to_event(self) -> TransportEvent:
        if self.type in ("participant_joined", "participant_left"):
            if not self.participant_id:
                raise ValueError("participant_id is required")
            event_cls = ParticipantJoined if self.type == "participant_joined" else ParticipantLeft
            return event_cls(participant_id=self.participant_id, local=self.local)
        if self.type == "app_message":
            return AppMessage(participant_id=self.participant_id, data=self.data)
        if self.type == "transcription":
            return TranscriptionMessage(participant_id=self.participant_id, text=self.text or "")
        return TransportFailure(reason=self.reason or "transport failure")


class MediaRequest(BaseModel):
    """Local media toggle."""

    audio: bool | None = None
    video: bool | None = None


class EndSessionRequest(BaseModel):
    """Why the session is being ended."""

    reason: Literal["user_hang_up", "remote_left", "remote_error"] = "user_hang_up"


def _get_controller(session_id: str) -> CallSessionController:
    controller = get_session_manager().get_session(session_id)
    if controller is None:
        raise HTTPException(
            status_code=404,
            detail=f"Session {session_id} not found",
        )
    return controller


def _conflict(e: SessionStateError) -> HTTPException:
    return HTTPException(status_code=409, detail=e.to_dict())


# Endpoints
@router.post("", response_model=CreateSessionResponse)
async def create_session(session_input: SessionInput) -> CreateSessionResponse:
    """Create a session, provision its conversation and join the call.

    Provisioning failures do not fail the request: the session is returned
    in the error phase with its typed cause.
    """
    manager = get_session_manager()
    try:
        controller = await manager.create_session()
    except SessionLimitError as e:
        raise HTTPException(status_code=503, detail=e.to_dict())

    bind_session(controller.session_id)
    try:
        await controller.start(session_input)
    finally:
        unbind_session()

    status = controller.status()
    return CreateSessionResponse(
        session_id=controller.session_id,
        phase=status.phase.value,
        conversation_url=status.conversation_url,
        error=controller.error.to_dict() if controller.error else None,
    )


@router.get("")
async def list_sessions() -> dict[str, Any]:
    """Active sessions and remaining capacity."""
    manager = get_session_manager()
    return {
        "active": manager.active_count,
        "available": manager.available_slots,
        "sessions": manager.list_sessions(),
    }


@router.get("/{session_id}")
async def get_session_status(session_id: str) -> dict[str, Any]:
    """Get status of a session."""
    return _get_controller(session_id).status().to_dict()


@router.post("/{session_id}/events", status_code=202)
async def relay_event(session_id: str, request: TransportEventRequest) -> dict[str, Any]:
    """Deliver a transport event into the session's inbound queue."""
    controller = _get_controller(session_id)
    transport = controller.transport
    if not isinstance(transport, RelayTransport):
        raise HTTPException(
            status_code=409,
            detail=f"Session {session_id} has no call in progress",
        )

    try:
        event = request.to_event()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    transport.push(event)
    try:
        await with_timeout(
            transport.events.join(),
            EVENT_DISPATCH_TIMEOUT_S,
            operation="event dispatch",
        )
    except AsyncTimeoutError as e:
        logger.warning("event_dispatch_pending", session_id=session_id, error=str(e))

    return controller.status().to_dict()


@router.post("/{session_id}/media")
async def set_media(session_id: str, request: MediaRequest) -> dict[str, Any]:
    """Toggle local audio and/or video."""
    controller = _get_controller(session_id)
    try:
        if request.audio is not None:
            await controller.set_local_audio(request.audio)
        if request.video is not None:
            await controller.set_local_video(request.video)
    except SessionStateError as e:
        raise _conflict(e)
    return controller.media.to_dict()


@router.post("/{session_id}/end")
async def end_session(session_id: str, request: EndSessionRequest | None = None) -> dict[str, Any]:
    """End the call and evaluate it. Repeated calls are no-ops."""
    controller = _get_controller(session_id)
    reason = CancelReason(request.reason) if request else CancelReason.USER_HANG_UP
    await controller.end(reason)
    return controller.status().to_dict()


@router.post("/{session_id}/retry")
async def retry_session(session_id: str) -> dict[str, Any]:
    """Re-provision a failed session with its last input."""
    controller = _get_controller(session_id)
    try:
        await controller.retry()
    except SessionStateError as e:
        raise _conflict(e)
    return controller.status().to_dict()


@router.get("/{session_id}/result")
async def get_session_result(session_id: str, save: bool = False) -> dict[str, Any]:
    """Exported transcript and evaluation of a terminated session.

    With save=true the export is also written to the export directory.
    """
    controller = _get_controller(session_id)
    result = controller.result
    if controller.phase is not SessionPhase.TERMINATED or result is None:
        raise HTTPException(
            status_code=409,
            detail=f"Session {session_id} is {controller.phase.value}, not terminated",
        )

    document = build_export(result.transcript, result.evaluation)
    document["session_id"] = result.session_id
    document["reason"] = result.reason
    document["duration_s"] = result.duration_s
    if save:
        path = write_export(get_settings().export_dir, result.transcript, result.evaluation)
        document["path"] = str(path)
    return document


@router.delete("/{session_id}")
async def delete_session(session_id: str) -> dict[str, Any]:
    """End and forget a session."""
    manager = get_session_manager()

    success = await manager.end_session(session_id)
    if not success:
        raise HTTPException(
            status_code=404,
            detail=f"Session {session_id} not found",
        )

    return {"session_id": session_id, "status": "deleted"}
