"""Pytest configuration and shared fixtures."""

import json
import os
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing settings
os.environ.update({
    "ENVIRONMENT": "development",
    "MAX_CONCURRENT_SESSIONS": "5",
    "CONVERSATION_API_KEY": "test-key",
    "CONVERSATION_API_URL": "https://conversations.test/v2",
    "SESSION_BUDGET_S": "1800",
    "UNMUTE_GRACE_S": "2",
})

BASE_URL = "https://conversations.test/v2"


class FakeConversationService:
    """In-memory conversation service served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.persona_status = 200
        self.create_status = 200
        self.create_body: dict | None = None
        self.end_status = 200
        self.requests: list[httpx.Request] = []
        self.created: list[str] = []
        self.ended: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and "/personas/" in path:
            if self.persona_status != 200:
                return httpx.Response(self.persona_status, json={"message": "persona lookup failed"})
            return httpx.Response(200, json={"persona_id": path.rsplit("/", 1)[-1]})

        if request.method == "POST" and path.endswith("/conversations"):
            if self.create_status != 200:
                return httpx.Response(self.create_status, json=self.create_body or {"message": "error"})
            conversation_id = f"c{len(self.created) + 1:04d}"
            self.created.append(conversation_id)
            body = self.create_body or {
                "conversation_id": conversation_id,
                "conversation_url": f"https://call.test/{conversation_id}",
                "status": "active",
                "conversation_name": "Interview",
                "created_at": "2026-01-05T10:00:00Z",
            }
            return httpx.Response(200, json=body)

        if request.method == "POST" and path.endswith("/end"):
            conversation_id = path.split("/")[-2]
            self.ended.append(conversation_id)
            return httpx.Response(self.end_status, json={})

        return httpx.Response(404, json={"message": "not found"})

    def payloads(self) -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path.endswith("/conversations")
        ]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            base_url=BASE_URL,
        )


@pytest.fixture
def test_settings():
    """Provide test settings instance."""
    from interview_call.config.settings import Settings
    return Settings(
        max_concurrent_sessions=5,
        conversation_api_key="test-key",
        conversation_api_url=BASE_URL,
    )


@pytest.fixture
def session_input():
    """Candidate context used across tests."""
    from interview_call.conversation.models import SessionInput
    return SessionInput(
        name="Ada Lovelace",
        project_title="Analytical Engine Compiler",
        project_summary="A compiler that targets the analytical engine",
        skills="Python, compilers, distributed systems",
        certificates="",
        education="BSc Mathematics",
        experience="5 years building developer tooling",
    )


@pytest.fixture
def conversation_service() -> FakeConversationService:
    return FakeConversationService()


@pytest.fixture
def service_config():
    from interview_call.conversation.resource_manager import ConversationServiceConfig
    return ConversationServiceConfig(base_url=BASE_URL, api_key="test-key")


@pytest.fixture
def resource_manager(conversation_service, service_config):
    """Resource manager talking to the fake service."""
    from interview_call.conversation.resource_manager import ConversationResourceManager
    return ConversationResourceManager(
        service_config,
        client=conversation_service.client(),
        session_id="test-session",
    )


@pytest.fixture
def client(conversation_service, service_config, test_settings) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client backed by the fake conversation service."""
    from interview_call.api.routes import sessions
    from interview_call.clock.store import MemoryClockStore
    from interview_call.conversation.resource_manager import ConversationResourceManager
    from interview_call.main import app
    from interview_call.orchestrator.controller import CallSessionController, ControllerConfig
    from interview_call.orchestrator.manager import SessionManager

    http_client = conversation_service.client()
    clock_store = MemoryClockStore()

    def factory(session_id):
        controller = CallSessionController(
            session_id=session_id,
            resource_manager=ConversationResourceManager(service_config, client=http_client),
            clock_store=clock_store,
            config=ControllerConfig(unmute_grace_s=0.0),
        )
        return controller

    manager = SessionManager(max_sessions=2, controller_factory=factory, settings=test_settings)
    sessions.set_session_manager(manager)
    with TestClient(app) as c:
        yield c
    sessions.set_session_manager(None)
