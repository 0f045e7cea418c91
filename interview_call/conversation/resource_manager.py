"""Conversation Resource Manager - remote conversation lifecycle.

Creates, validates and destroys the remote conversation that backs one
interview, and translates the service's error responses into the typed
error taxonomy the controller branches on:

- 402, or a body mentioning credits/quota  -> QuotaExhausted
- 401 / 403, or a missing API key          -> CredentialInvalid
- 400 / 404 / 422, malformed ids           -> InvalidParameters
- anything else, network failures          -> GenericProvisioningFailure

destroy() is best effort: failures are logged and counted, never raised.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from interview_call.config.settings import Settings, get_settings
from interview_call.conversation.models import ConversationResource, SessionInput
from interview_call.exceptions import (
    CredentialInvalidError,
    ErrorKind,
    GenericProvisioningError,
    InvalidParametersError,
    ProvisioningError,
    QuotaExhaustedError,
)
from interview_call.observability.logging import ProvisioningLogger
from interview_call.observability.metrics import record_destroy_failure

_ERRORS_BY_KIND: dict[ErrorKind, type[ProvisioningError]] = {
    ErrorKind.CREDENTIAL_INVALID: CredentialInvalidError,
    ErrorKind.QUOTA_EXHAUSTED: QuotaExhaustedError,
    ErrorKind.INVALID_PARAMETERS: InvalidParametersError,
    ErrorKind.GENERIC_PROVISIONING_FAILURE: GenericProvisioningError,
}

_QUOTA_MARKERS = ("credit", "quota")
_CREDENTIAL_MARKERS = ("api key", "api_key", "unauthorized", "invalid token")


@dataclass
class ConversationServiceConfig:
    """Configuration for the remote conversation service."""

    base_url: str = "https://tavusapi.com/v2"
    api_key: str | None = None
    persona_id: str = "p25e042a1eb6"
    replica_id: str = "rf4703150052"
    timeout_s: float = 20.0
    max_call_duration_s: int = 1800
    participant_left_timeout_s: int = 60
    enable_recording: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConversationServiceConfig":
        return cls(
            base_url=settings.conversation_api_url,
            api_key=settings.conversation_api_key,
            persona_id=settings.persona_id,
            replica_id=settings.replica_id,
            timeout_s=settings.provisioning_timeout_s,
            max_call_duration_s=settings.max_call_duration_s,
            participant_left_timeout_s=settings.participant_left_timeout_s,
            enable_recording=settings.enable_recording,
        )


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str):
                return value
        return ""
    if isinstance(body, str):
        return body
    return ""


def classify_error(status_code: int | None, body: Any = None) -> ErrorKind:
    """Map a service error response to an ErrorKind.

    Args:
        status_code: HTTP status, or None for a failure without a response
        body: Parsed JSON body, raw text, or None

    Returns:
        The ErrorKind the controller should attach to the session
    """
    message = _error_message(body).lower()

    if status_code == 402 or any(marker in message for marker in _QUOTA_MARKERS):
        return ErrorKind.QUOTA_EXHAUSTED
    if status_code in (401, 403) or any(marker in message for marker in _CREDENTIAL_MARKERS):
        return ErrorKind.CREDENTIAL_INVALID
    if status_code in (400, 404, 422):
        return ErrorKind.INVALID_PARAMETERS
    return ErrorKind.GENERIC_PROVISIONING_FAILURE


def error_for(
    kind: ErrorKind,
    message: str,
    status_code: int | None = None,
    details: dict[str, Any] | None = None,
) -> ProvisioningError:
    """Build the exception class matching an ErrorKind."""
    error_cls = _ERRORS_BY_KIND.get(kind, GenericProvisioningError)
    return error_cls(message, status_code=status_code, details=details)


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    return datetime.now(timezone.utc)


class ConversationResourceManager:
    """Creates and destroys remote conversation resources.

    Usage:
        manager = ConversationResourceManager()

        resource = await manager.create(session_input)
        ...
        await manager.destroy(resource.conversation_id)

        await manager.aclose()
    """

    def __init__(
        self,
        config: ConversationServiceConfig | None = None,
        client: httpx.AsyncClient | None = None,
        session_id: str | None = None,
    ) -> None:
        if config is None:
            config = ConversationServiceConfig.from_settings(get_settings())

        self._config = config
        self._client = client
        self._owns_client = client is None
        self._in_flight: set[str] = set()
        self._logger = ProvisioningLogger(session_id)

    @property
    def config(self) -> ConversationServiceConfig:
        return self._config

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids created by this manager and not yet destroyed."""
        return frozenset(self._in_flight)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
            )
        return self._client

    def _headers(self, json_body: bool = False) -> dict[str, str]:
        headers = {"x-api-key": self._config.api_key or ""}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def build_payload(self, session_input: SessionInput) -> dict[str, Any]:
        """Request body for conversation creation."""
        return {
            "persona_id": self._config.persona_id,
            "replica_id": self._config.replica_id,
            "custom_greeting": session_input.greeting(),
            "conversational_context": json.dumps(session_input.to_context()),
            "properties": {
                "max_call_duration": self._config.max_call_duration_s,
                "participant_left_timeout": self._config.participant_left_timeout_s,
                "enable_recording": self._config.enable_recording,
            },
        }

    def _validate_identifiers(self) -> None:
        if not self._config.api_key:
            raise CredentialInvalidError("API key for the conversation service is required")
        if not self._config.persona_id or not self._config.persona_id.startswith("p"):
            raise InvalidParametersError(
                "Invalid persona_id format",
                details={"persona_id": self._config.persona_id},
            )
        if not self._config.replica_id or not self._config.replica_id.startswith("r"):
            raise InvalidParametersError(
                "Invalid replica_id format",
                details={"replica_id": self._config.replica_id},
            )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._get_client().request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GenericProvisioningError(
                f"Conversation service unreachable: {e}",
                details={"path": path},
            ) from e

    def _raise_for_response(self, response: httpx.Response, context: str) -> None:
        if not response.is_error:
            return
        body = _parse_body(response)
        kind = classify_error(response.status_code, body)
        message = _error_message(body) or response.reason_phrase
        raise error_for(
            kind,
            f"{context} failed: {message}",
            status_code=response.status_code,
        )

    async def validate_persona(self) -> None:
        """Check that the configured persona exists for this account."""
        response = await self._request(
            "GET",
            f"/personas/{self._config.persona_id}",
            headers=self._headers(),
        )
        self._raise_for_response(response, f"Persona lookup for {self._config.persona_id}")

    async def create(self, session_input: SessionInput) -> ConversationResource:
        """Provision a conversation for one interview.

        Args:
            session_input: Candidate context

        Returns:
            The created ConversationResource

        Raises:
            ProvisioningError: A typed subclass per ErrorKind
        """
        started = time.monotonic()
        try:
            self._validate_identifiers()
            await self.validate_persona()

            response = await self._request(
                "POST",
                "/conversations",
                headers=self._headers(json_body=True),
                json=self.build_payload(session_input),
            )
            self._raise_for_response(response, "Conversation creation")

            data = _parse_body(response)
            if not isinstance(data, dict):
                raise GenericProvisioningError("Conversation service returned a non-JSON body")
            conversation_id = data.get("conversation_id")
            conversation_url = data.get("conversation_url")
            if not isinstance(conversation_id, str) or not isinstance(conversation_url, str):
                raise GenericProvisioningError(
                    "Conversation service response is missing conversation_id or conversation_url",
                    details={"keys": sorted(data.keys())},
                )
        except ProvisioningError as e:
            self._logger.resource_failed(
                kind=e.kind.value,
                status_code=e.status_code,
                error=e.message,
            )
            raise

        resource = ConversationResource(
            conversation_id=conversation_id,
            conversation_url=conversation_url,
            created_at=_parse_created_at(data.get("created_at")),
            status=data.get("status"),
            name=data.get("conversation_name"),
        )
        self._in_flight.add(resource.conversation_id)
        self._logger.resource_created(
            conversation_id=resource.conversation_id,
            elapsed_ms=(time.monotonic() - started) * 1000.0,
        )
        return resource

    async def destroy(self, conversation_id: str) -> bool:
        """End a remote conversation. Never raises.

        Ids that were never created here, or were already destroyed, cause
        no remote call.

        Returns:
            True if the service acknowledged the end request
        """
        if conversation_id not in self._in_flight:
            self._logger.destroy_skipped(conversation_id)
            return False
        self._in_flight.discard(conversation_id)

        try:
            response = await self._get_client().post(
                f"/conversations/{conversation_id}/end",
                headers=self._headers(),
            )
        except Exception as e:
            self._logger.destroy_failed(conversation_id, str(e))
            record_destroy_failure()
            return False

        if response.is_error:
            self._logger.destroy_failed(
                conversation_id,
                f"status {response.status_code}",
            )
            record_destroy_failure()
            return False

        self._logger.resource_destroyed(conversation_id)
        return True

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
