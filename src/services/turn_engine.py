"""
Turn engine: one content-generator call wrapped in a bounded retry policy.

Failure classes:
- rate limit (too many requests): fixed delay, then retry
- temporarily unavailable: exponential backoff (base * multiplier ** n), then retry
- anything else: raised immediately

When every attempt fails, the last error is re-raised to the caller. No
delay follows the final attempt. The sleep function is injectable so tests
can run on simulated time.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from src.core.config import RetryConfig, story_config
from src.core.exceptions import LLMRateLimitError, LLMServiceUnavailableError
from src.domain.models.turn import GenerationRequest
from src.services.protocols import IContentGenerator

log = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class FailureClass(str, Enum):
    RATE_LIMIT = "rate_limit"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


def classify_failure(error: BaseException) -> FailureClass:
    """
    Classify a generator failure for the retry policy.

    Raw httpx status errors are classified by status code as well, so
    generators that do not map provider errors still retry correctly.
    """
    if isinstance(error, LLMRateLimitError):
        return FailureClass.RATE_LIMIT
    if isinstance(error, LLMServiceUnavailableError):
        return FailureClass.UNAVAILABLE
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code == 429:
            return FailureClass.RATE_LIMIT
        if status_code == 503:
            return FailureClass.UNAVAILABLE
    return FailureClass.OTHER


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy shared by turns and retried analysis calls."""

    max_attempts: int = 3
    rate_limit_delay: float = 5.0
    base_delay: float = 1.0
    multiplier: float = 2.0

    @classmethod
    def from_config(cls, config: Optional[RetryConfig] = None) -> "RetryPolicy":
        config = config or story_config.retry
        return cls(
            max_attempts=config.max_attempts,
            rate_limit_delay=config.rate_limit_delay_seconds,
            base_delay=config.unavailable_base_delay_seconds,
            multiplier=config.backoff_multiplier,
        )

    def delay_for(self, failure: FailureClass, retry_index: int) -> Optional[float]:
        """
        Seconds to wait before the next attempt, or None if not retriable.

        Args:
            failure: Classified failure of the attempt that just failed
            retry_index: 0 for the first retry, 1 for the second, ...
        """
        if failure == FailureClass.RATE_LIMIT:
            return self.rate_limit_delay
        elif failure == FailureClass.UNAVAILABLE:
            return self.base_delay * (self.multiplier**retry_index)
        elif failure == FailureClass.OTHER:
            return None
        else:
            raise ValueError(f"Unknown failure class: {failure}")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    label: str = "generator_call",
) -> T:
    """
    Run `operation` under the retry policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy
        sleep: Awaitable sleep (asyncio.sleep in production)
        label: Operation name for logs

    Returns:
        The first successful result

    Raises:
        Exception: The non-retriable error, or the last error once every
            attempt has failed
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            failure = classify_failure(e)
            delay = policy.delay_for(failure, retry_index=attempt - 1)

            if delay is None:
                log.warning(
                    "retry_not_attempted",
                    operation=label,
                    attempt=attempt,
                    failure=failure.value,
                    error=str(e),
                )
                raise

            if attempt >= policy.max_attempts:
                log.error(
                    "retry_exhausted",
                    operation=label,
                    attempts=attempt,
                    failure=failure.value,
                    error=str(e),
                )
                raise

            log.info(
                "retry_scheduled",
                operation=label,
                attempt=attempt,
                failure=failure.value,
                delay_seconds=delay,
            )
            await sleep(delay)

    # max_attempts >= 1 so the loop always returns or raises
    raise AssertionError("unreachable")


class TurnEngine:
    """Produces the next story line for a generation request."""

    def __init__(
        self,
        generator: IContentGenerator,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Args:
            generator: Content generator (LLM-backed or stub)
            policy: Retry policy (default from story_config.yaml)
            sleep: Awaitable sleep, injectable for simulated time
        """
        self.generator = generator
        self.policy = policy or RetryPolicy.from_config()
        self.sleep = sleep

    async def take_turn(self, request: GenerationRequest) -> str:
        """
        Generate one line, retrying transient failures.

        Raises:
            Exception: Last observed generator error when no line could be
                produced
        """
        return await call_with_retry(
            lambda: self.generator.generate_line(request),
            self.policy,
            sleep=self.sleep,
            label="take_turn",
        )
