"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from src.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    ContentFlaggedError,
    InvalidActionError,
    InvalidTransitionError,
    LLMRateLimitError,
    LLMTimeoutError,
    OpeningFailedError,
    SessionBusyError,
    SessionNotFoundError,
    StoryEngineError,
    StoryNotFoundError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def status_code_for(exc: StoryEngineError) -> int:
    """HTTP status code for an application error."""
    if isinstance(exc, (SessionNotFoundError, StoryNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (InvalidTransitionError, InvalidActionError, SessionBusyError)):
        return status.HTTP_409_CONFLICT
    elif isinstance(exc, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ContentFlaggedError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OpeningFailedError):
        return status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, LLMTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    elif isinstance(exc, LLMRateLimitError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Sets up handlers for all StoryEngineError subclasses with appropriate
    HTTP status codes, plus handlers for configuration errors and generic exceptions.
    """

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Configuration problems are server faults; details stay in the log."""
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "ConfigurationError",
                    "message": "Server configuration error",
                }
            },
        )

    @app.exception_handler(StoryEngineError)
    async def story_engine_error_handler(
        request: Request,
        exc: StoryEngineError,
    ) -> JSONResponse:
        """Map application errors to status codes with a consistent body."""
        status_code = status_code_for(exc)

        log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        ).warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "type": type(exc).__name__,
                    "message": exc.message,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        ).error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
