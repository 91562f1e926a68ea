"""
Custom exception hierarchy for the story session service.

All application exceptions inherit from StoryEngineError.
"""


class StoryEngineError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(StoryEngineError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(StoryEngineError):
    """Base for LLM-related errors."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded (too many requests)."""

    pass


class LLMServiceUnavailableError(LLMError):
    """LLM provider temporarily unavailable or overloaded."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response."""

    pass


class LLMContentError(LLMError):
    """LLM returned content that violates the expected output contract."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(StoryEngineError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    pass


class InvalidTransitionError(SessionError):
    """Requested state transition is not legal from the current state."""

    pass


class SessionBusyError(SessionError):
    """Another asynchronous operation is already in flight for this session."""

    pass


class InvalidActionError(SessionError):
    """Action is not allowed in the current mode or sub-state."""

    pass


class OpeningFailedError(SessionError):
    """Opening line could not be generated; session returned to the menu."""

    pass


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(StoryEngineError):
    """Story storage operation failed."""

    pass


class StoryNotFoundError(PersistenceError):
    """Stored story does not exist."""

    pass


# =============================================================================
# Publish Errors
# =============================================================================


class AuthorizationError(StoryEngineError):
    """Caller is not authenticated or does not own the resource."""

    pass


class ContentFlaggedError(StoryEngineError):
    """Story content contains forbidden words and cannot be published."""

    pass


class ValidationError(StoryEngineError):
    """Input validation failed."""

    pass
