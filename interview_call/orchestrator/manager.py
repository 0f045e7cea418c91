"""Session Manager - concurrent interview sessions.

Provides:
- Session creation and lookup
- Concurrent session limits
- Session cleanup

Controllers share one HTTP client to the conversation service and one clock
store; everything else is owned per session.
"""

import asyncio
import uuid
from typing import Callable

import httpx

from interview_call.clock.store import ClockStore, create_clock_store
from interview_call.config.constants import SESSION
from interview_call.config.settings import Settings, get_settings
from interview_call.conversation.resource_manager import (
    ConversationResourceManager,
    ConversationServiceConfig,
)
from interview_call.exceptions import SessionLimitError, SessionNotFoundError
from interview_call.observability.logging import get_logger
from interview_call.orchestrator.cancellation import CancelReason
from interview_call.orchestrator.controller import CallSessionController, ControllerConfig
from interview_call.orchestrator.state_machine import SessionPhase

logger = get_logger(__name__)

ControllerFactory = Callable[[str | None], CallSessionController]


class SessionManager:
    """Manages multiple concurrent sessions.

    Usage:
        manager = SessionManager(max_sessions=10)

        controller = await manager.create_session()
        await controller.start(session_input)
        # ... call runs ...
        await manager.end_session(controller.session_id)
    """

    def __init__(
        self,
        max_sessions: int = SESSION.MAX_CONCURRENT_SESSIONS,
        controller_factory: ControllerFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._max_sessions = max_sessions
        self._settings = settings or get_settings()
        self._controller_factory = controller_factory or self._build_controller
        self._sessions: dict[str, CallSessionController] = {}
        self._lock = asyncio.Lock()

        self._client: httpx.AsyncClient | None = None
        self._clock_store: ClockStore | None = None

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    @property
    def active_count(self) -> int:
        """Number of active sessions."""
        return len(self._sessions)

    @property
    def available_slots(self) -> int:
        """Number of available session slots."""
        return self._max_sessions - len(self._sessions)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.conversation_api_url,
                timeout=self._settings.provisioning_timeout_s,
            )
        return self._client

    def _get_clock_store(self) -> ClockStore:
        if self._clock_store is None:
            self._clock_store = create_clock_store(
                self._settings.clock_store_path,
                max_age_s=float(self._settings.session_budget_s),
            )
        return self._clock_store

    def _build_controller(self, session_id: str | None) -> CallSessionController:
        controller_id = session_id or str(uuid.uuid4())
        resources = ConversationResourceManager(
            ConversationServiceConfig.from_settings(self._settings),
            client=self._get_client(),
            session_id=controller_id,
        )
        return CallSessionController(
            session_id=controller_id,
            resource_manager=resources,
            clock_store=self._get_clock_store(),
            config=ControllerConfig.from_settings(self._settings),
        )

    async def create_session(self, session_id: str | None = None) -> CallSessionController:
        """Create a new session controller.

        Raises:
            SessionLimitError: If at capacity
        """
        async with self._lock:
            if session_id is not None and session_id in self._sessions:
                return self._sessions[session_id]
            if len(self._sessions) >= self._max_sessions:
                raise SessionLimitError(self._max_sessions, len(self._sessions))

            controller = self._controller_factory(session_id)
            self._sessions[controller.session_id] = controller
            logger.info(
                "session_registered",
                session_id=controller.session_id,
                active=len(self._sessions),
            )
            return controller

    def get_session(self, session_id: str) -> CallSessionController | None:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> CallSessionController:
        """Get session by ID.

        Raises:
            SessionNotFoundError: If no such session
        """
        controller = self._sessions.get(session_id)
        if controller is None:
            raise SessionNotFoundError(session_id)
        return controller

    async def end_session(
        self,
        session_id: str,
        reason: CancelReason = CancelReason.USER_HANG_UP,
    ) -> bool:
        """End and remove a session.

        Returns:
            True if session was found and ended
        """
        async with self._lock:
            controller = self._sessions.pop(session_id, None)
        if controller is None:
            return False
        await controller.end(reason)
        return True

    async def end_all_sessions(self, reason: CancelReason = CancelReason.SHUTDOWN) -> int:
        """End all active sessions.

        Returns:
            Number of sessions ended
        """
        async with self._lock:
            controllers = list(self._sessions.values())
            self._sessions.clear()
        for controller in controllers:
            await controller.end(reason)
        return len(controllers)

    def list_sessions(self) -> list[str]:
        """List all active session IDs."""
        return list(self._sessions.keys())

    def get_sessions_by_phase(self, phase: SessionPhase) -> list[CallSessionController]:
        return [c for c in self._sessions.values() if c.phase == phase]

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
