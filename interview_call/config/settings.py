"""Application Settings - Environment-based configuration.

Uses Pydantic Settings for validation and type coercion.

Required variables fail startup if missing.
Conditional variables are required only when their parent feature is enabled.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from interview_call.config.constants import SESSION


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8081, ge=1024, le=65535, description="API port")
    log_level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment name"
    )

    # Conversation service
    conversation_api_url: str = Field(
        default="https://tavusapi.com/v2",
        description="Base URL of the conversational video service",
    )
    conversation_api_key: str | None = Field(
        default=None,
        description="API key sent as x-api-key (required in production)",
    )
    persona_id: str = Field(
        default="p25e042a1eb6", description="Interviewer persona identifier"
    )
    replica_id: str = Field(
        default="rf4703150052", description="Interviewer replica identifier"
    )
    provisioning_timeout_s: float = Field(
        default=SESSION.PROVISIONING_TIMEOUT_S,
        gt=0,
        le=120,
        description="Timeout for each conversation service request",
    )
    max_call_duration_s: int = Field(
        default=SESSION.MAX_CALL_DURATION_S,
        ge=60,
        le=3600,
        description="Remote-side hard cap on call length",
    )
    participant_left_timeout_s: int = Field(
        default=SESSION.PARTICIPANT_LEFT_TIMEOUT_S,
        ge=0,
        le=3600,
        description="Seconds the remote keeps the call after the user leaves",
    )
    enable_recording: bool = Field(
        default=False, description="Ask the service to record the call"
    )

    # Session lifecycle
    session_budget_s: int = Field(
        default=SESSION.SESSION_BUDGET_S,
        ge=1,
        le=3600,
        description="Hard wall-clock budget for a live interview",
    )
    clock_tick_s: float = Field(
        default=SESSION.CLOCK_TICK_S,
        gt=0,
        le=5,
        description="Budget polling cadence",
    )
    unmute_grace_s: float = Field(
        default=SESSION.UNMUTE_GRACE_S,
        ge=0,
        le=30,
        description="Delay between remote join and unmuting local audio",
    )
    transport_join_timeout_s: float = Field(
        default=SESSION.TRANSPORT_JOIN_TIMEOUT_S,
        gt=0,
        le=120,
        description="Max wait for the transport join acknowledgement",
    )
    transport_leave_timeout_s: float = Field(
        default=SESSION.TRANSPORT_LEAVE_TIMEOUT_S,
        gt=0,
        le=60,
        description="Max wait for the transport leave acknowledgement",
    )
    clock_store_path: str | None = Field(
        default=None,
        description="JSON file for persisted clock start instants (memory if unset)",
    )
    max_concurrent_sessions: int = Field(
        default=SESSION.MAX_CONCURRENT_SESSIONS,
        ge=1,
        le=100,
        description="Maximum concurrent interview sessions",
    )

    # Export
    export_dir: str = Field(
        default="exports", description="Directory for session export documents"
    )

    # Observability
    metrics_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    @field_validator("conversation_api_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths are joined with a leading slash."""
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    def model_post_init(self, __context) -> None:
        """Validate conditional requirements after model creation."""
        if self.session_budget_s > self.max_call_duration_s:
            raise ValueError(
                "session_budget_s must not exceed max_call_duration_s"
            )

        if self.environment == "production" and not self.conversation_api_key:
            raise ValueError(
                "conversation_api_key is required in production environment"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
