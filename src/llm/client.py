"""
LLM client abstraction for multiple LLM providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Usage tracking (tokens)
- Provider failures mapped onto the LLM exception hierarchy so callers can
  classify them (rate limit, temporarily unavailable, timeout, other)
- Two-client architecture (story, analysis)

Each call is a single HTTP attempt. Retrying is the caller's decision
(see src/services/turn_engine.py).

Supported providers:
- anthropic: Claude models
- kimi: Moonshot AI models
- deepseek: DeepSeek models
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Literal
import time

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import (
    ConfigurationError,
    LLMError,
    LLMRateLimitError,
    LLMServiceUnavailableError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)


LLMClientType = Literal["story", "analysis"]

# 529 is Anthropic's "overloaded" status
UNAVAILABLE_STATUS_CODES = frozenset({502, 503, 504, 529})


# =============================================================================
# Default configurations for each client type
# =============================================================================

STORY_DEFAULTS = dict(
    provider="anthropic",
    model="claude-sonnet-4-6",
    temperature=0.9,  # Creative continuation
    max_tokens=300,  # Two or three lines of prose
)

ANALYSIS_DEFAULTS = dict(
    provider="anthropic",
    model="claude-sonnet-4-6",
    temperature=0.4,  # Consistent structured output
    max_tokens=2048,  # Script polish can be long
)

DEFAULTS_MAP: Dict[LLMClientType, Dict[str, Any]] = {
    "story": STORY_DEFAULTS,
    "analysis": ANALYSIS_DEFAULTS,
}


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


def raise_for_llm_status(response: httpx.Response, provider: str) -> None:
    """Map an HTTP error status onto the LLM exception hierarchy.

    Raises:
        LLMRateLimitError: 429
        LLMServiceUnavailableError: 502/503/504/529
        LLMError: any other 4xx/5xx
    """
    status_code = response.status_code
    if status_code < 400:
        return

    detail = response.text[:200]
    if status_code == 429:
        log.warning("llm_rate_limit", provider=provider)
        raise LLMRateLimitError(f"{provider} rate limit exceeded (429): {detail}")
    if status_code in UNAVAILABLE_STATUS_CODES:
        log.warning("llm_unavailable", provider=provider, status_code=status_code)
        raise LLMServiceUnavailableError(
            f"{provider} temporarily unavailable ({status_code}): {detail}"
        )

    log.error("llm_http_error", provider=provider, status_code=status_code)
    raise LLMError(f"{provider} request failed ({status_code}): {detail}")


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider_name: str = "unknown"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        client_type: LLMClientType,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client_type = client_type
        self.timeout = timeout

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            prompt: User message/prompt
            system: Optional system prompt
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMRateLimitError: Provider answered 429
            LLMServiceUnavailableError: Provider temporarily unavailable
            LLMTimeoutError: Network timeout (only when a timeout is configured)
            LLMError: Any other provider failure
        """
        pass

    async def _post(
        self, url: str, headers: Dict[str, str], payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Single POST to the provider, with errors mapped to LLM exceptions."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=headers, json=payload)
                raise_for_llm_status(response, self.provider_name)
                return response.json()
        except httpx.TimeoutException as e:
            log.warning(
                "llm_timeout",
                provider=self.provider_name,
                client_type=self.client_type,
                timeout_seconds=self.timeout,
            )
            raise LLMTimeoutError(
                f"{self.provider_name} call timed out (timeout={self.timeout}s)"
            ) from e
        except httpx.TransportError as e:
            log.warning(
                "llm_transport_error", provider=self.provider_name, error=str(e)
            )
            raise LLMServiceUnavailableError(
                f"{self.provider_name} unreachable: {e}"
            ) from e


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(LLMClient):
    """Anthropic Claude API client.

    Uses httpx for async HTTP calls to the Messages API.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        client_type: LLMClientType,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize Anthropic client.

        Args:
            model: Model ID (e.g., claude-sonnet-4-6)
            temperature: Default sampling temperature
            max_tokens: Default maximum tokens in response
            client_type: Client type for logging
            timeout: Request timeout in seconds (None disables it)
            api_key: API key (defaults to settings.anthropic_api_key)

        Raises:
            ConfigurationError: If API key is not configured
        """
        super().__init__(model, temperature, max_tokens, client_type, timeout)
        self.api_key = api_key or settings.anthropic_api_key
        self.base_url = "https://api.anthropic.com/v1"

        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        log.info(
            "anthropic_client_initialized",
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Call the Anthropic Messages API once."""
        if max_tokens is None:
            max_tokens = self.max_tokens
        if temperature is None:
            temperature = self.temperature

        headers = {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if system:
            payload["system"] = system

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            prompt_length=len(prompt),
            system_length=len(system) if system else 0,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        start = time.perf_counter()
        data = await self._post(f"{self.base_url}/messages", headers, payload)
        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("content"):
            content = data["content"][0].get("text", "")

        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI-Compatible Client Base
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Base class for OpenAI-compatible API clients.

    Used by providers that follow the OpenAI API format:
    - Kimi (Moonshot AI): https://api.moonshot.ai/v1
    - DeepSeek: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        client_type: LLMClientType,
        base_url: str,
        provider_name: str,
        api_key: str,
        timeout: Optional[float] = None,
    ):
        super().__init__(model, temperature, max_tokens, client_type, timeout)
        self.base_url = base_url
        self.provider_name = provider_name
        self.api_key = api_key

        log.info(
            "openai_compatible_client_initialized",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Call the chat completions endpoint once."""
        if max_tokens is None:
            max_tokens = self.max_tokens
        if temperature is None:
            temperature = self.temperature

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            prompt_length=len(prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )

        start = time.perf_counter()
        data = await self._post(f"{self.base_url}/chat/completions", headers, payload)
        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content", "")

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


class KimiClient(OpenAICompatibleClient):
    """Kimi (Moonshot AI) API client."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        client_type: LLMClientType,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or settings.kimi_api_key
        if not api_key:
            raise ConfigurationError("KIMI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            client_type=client_type,
            base_url="https://api.moonshot.ai/v1",
            provider_name="kimi",
            api_key=api_key,
            timeout=timeout,
        )


class DeepSeekClient(OpenAICompatibleClient):
    """DeepSeek API client."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        client_type: LLMClientType,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or settings.deepseek_api_key
        if not api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            client_type=client_type,
            base_url="https://api.deepseek.com",
            provider_name="deepseek",
            api_key=api_key,
            timeout=timeout,
        )


# Provider-specific model used when a provider override replaces the default
PROVIDER_MODELS: Dict[str, str] = {
    "anthropic": "claude-sonnet-4-6",
    "kimi": "kimi-k2-0905-preview",
    "deepseek": "deepseek-chat",
}


# =============================================================================
# Client Factory Functions
# =============================================================================


def get_llm_client(client_type: LLMClientType) -> LLMClient:
    """
    Factory for LLM client based on client type.

    Uses the defaults for each client type, with optional environment
    variable overrides (LLM_STORY_PROVIDER, LLM_ANALYSIS_PROVIDER).

    Args:
        client_type: "story" or "analysis"

    Returns:
        LLMClient instance configured for the specified client type

    Raises:
        ConfigurationError: If unknown provider configured or API key missing
    """
    defaults = DEFAULTS_MAP[client_type]

    override = getattr(settings, f"llm_{client_type}_provider", None)
    provider = override or defaults["provider"]
    if provider == defaults["provider"]:
        model = defaults["model"]
    else:
        model = PROVIDER_MODELS.get(provider, "")
    kwargs: Dict[str, Any] = dict(
        model=model,
        temperature=defaults["temperature"],
        max_tokens=defaults["max_tokens"],
        client_type=client_type,
        timeout=settings.llm_timeout_seconds,
    )

    if provider == "anthropic":
        return AnthropicClient(**kwargs)
    elif provider == "kimi":
        return KimiClient(**kwargs)
    elif provider == "deepseek":
        return DeepSeekClient(**kwargs)
    else:
        raise ConfigurationError(
            f"Unknown LLM provider '{provider}' for {client_type}. "
            f"Supported providers: anthropic, kimi, deepseek"
        )


def get_story_llm_client() -> LLMClient:
    """LLM client for opening and turn lines."""
    return get_llm_client("story")


def get_analysis_llm_client() -> LLMClient:
    """LLM client for post-session analysis."""
    return get_llm_client("analysis")
