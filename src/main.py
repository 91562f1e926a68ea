"""
FastAPI application entry point.

Run with: uvicorn src.main:app --reload
"""

import asyncio
from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from src.api.dependencies import build_orchestrator, get_story_repository
from src.api.exception_handlers import setup_exception_handlers
from src.api.routes import health, sessions, stories
from src.core.config import settings
from src.core.logging import configure_logging, get_logger, bind_context, clear_context
from src.llm.client import DEFAULTS_MAP
from src.persistence.database import init_database
from src.services.session_registry import SessionRegistry

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds a request_id to the structlog context of every request and echoes
    it in the X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# Startup checks
# =============================================================================

PROVIDER_KEYS = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "kimi": ("kimi_api_key", "KIMI_API_KEY"),
    "deepseek": ("deepseek_api_key", "DEEPSEEK_API_KEY"),
}


def validate_api_keys() -> None:
    """
    Validate that every configured LLM provider has an API key.

    Raises:
        RuntimeError: If a provider is unknown or its key is missing
    """
    errors = []
    providers = {
        "story": settings.llm_story_provider or DEFAULTS_MAP["story"]["provider"],
        "analysis": settings.llm_analysis_provider or DEFAULTS_MAP["analysis"]["provider"],
    }

    for client_type, provider in providers.items():
        if provider not in PROVIDER_KEYS:
            errors.append(
                f"Unknown LLM provider '{provider}' for {client_type}. "
                f"Supported providers: {', '.join(PROVIDER_KEYS)}"
            )
            continue

        attr_name, env_var = PROVIDER_KEYS[provider]
        if not getattr(settings, attr_name, None):
            errors.append(
                f"LLM API key missing: {env_var} is required for {provider} "
                f"(used by {client_type} client). Set it in .env file."
            )

    if errors:
        raise RuntimeError(
            "API Key Validation Failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    log.info("api_keys_validated", **providers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration, prepare the database, own the session registry
    and its idle-session sweeper."""
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
    )

    validate_api_keys()
    await init_database()

    purged = await get_story_repository().purge_expired()
    registry = SessionRegistry(
        build_orchestrator, idle_ttl_seconds=settings.session_idle_ttl_minutes * 60
    )
    app.state.session_registry = registry
    sweeper = asyncio.create_task(
        registry.run_sweeper(settings.session_sweep_interval_seconds)
    )

    log.info("application_started", expired_stories_purged=purged)

    yield

    log.info("application_shutting_down")
    sweeper.cancel()
    registry.shutdown()


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    app = FastAPI(
        title="Storyloom",
        description="Collaborative writing sessions with an AI co-author",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIDMiddleware)

    setup_exception_handlers(app)

    app.include_router(health.router, tags=["system"])
    app.include_router(sessions.router)
    app.include_router(stories.router)

    @app.get("/")
    async def root():
        return {"name": "Storyloom", "version": "0.1.0", "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
