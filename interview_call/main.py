"""Interview Call - FastAPI Application Entry Point.

Orchestrates timed live interviews with a remote AI interviewer: provisions
the conversation, tracks the call lifecycle reported by the candidate's
device, enforces the session budget and evaluates the transcript.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from interview_call import __version__
from interview_call.api.routes import health
from interview_call.api.routes import sessions
from interview_call.config.settings import get_settings
from interview_call.exceptions import InterviewCallError
from interview_call.observability.logging import get_logger, init_logging
from interview_call.observability.metrics import set_build_info

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of the session manager.
    """
    settings = get_settings()
    init_logging(json_format=settings.environment == "production", level=settings.log_level)
    logger.info(
        "interview_call_starting",
        version=__version__,
        environment=settings.environment,
        port=settings.api_port,
    )

    try:
        session_manager = sessions.get_session_manager()
        health.set_component_health("session_manager", True)
        health.set_component_health(
            "conversation_service",
            bool(settings.conversation_api_key),
        )
        logger.info("session_manager_initialized", max_sessions=session_manager.max_sessions)

        health.set_ready(True)
        logger.info("interview_call_ready", components=health.get_component_health())

    except Exception as e:
        logger.error("interview_call_startup_failed", error=str(e))
        raise

    yield  # Application runs here

    logger.info("interview_call_shutting_down")
    health.set_ready(False)

    # End all active sessions
    session_manager = sessions.get_session_manager()
    ended_count = await session_manager.end_all_sessions()
    await session_manager.aclose()
    health.set_component_health("session_manager", False)
    logger.info("sessions_ended", count=ended_count)

    logger.info("interview_call_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Interview Call",
        description="Lifecycle orchestration for live AI interview calls",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(sessions.router)

    if settings.metrics_enabled:
        set_build_info(__version__)

    @app.exception_handler(InterviewCallError)
    async def interview_call_exception_handler(
        request: Request, exc: InterviewCallError
    ) -> JSONResponse:
        logger.warning(
            "request_failed",
            path=request.url.path,
            method=request.method,
            error=exc.message,
        )
        return JSONResponse(status_code=400, content={"detail": exc.to_dict()})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


# Create application instance
app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    log_level = settings.log_level.lower()
    if log_level == "warn":
        log_level = "warning"

    logging.basicConfig(
        format="%(message)s",
        level=logging.getLevelName(settings.log_level),
    )

    uvicorn.run(
        "interview_call.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=log_level,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
