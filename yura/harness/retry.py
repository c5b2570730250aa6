"""
Retry Logic — resilience against transient API failures.

API calls fail. Networks drop. Rate limits hit. This module keeps transient
failures from turning into apologies in the chat: they are retried with
exponential backoff and jitter, and only the errors worth retrying are.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Optional, TypeVar

import anthropic
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        exponential_base: float = 2.0,
        jitter_range: float = 0.25,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter_range = jitter_range


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error is transient and worth retrying.

    Retryable:
    - 429 (rate limit) and 500/502/503/529 server errors
    - connection errors and timeouts

    NOT retryable:
    - 400/401/403/404 — retrying the same request will not help
    """
    if isinstance(error, anthropic.RateLimitError):
        return True
    if isinstance(error, anthropic.InternalServerError):
        return True
    if isinstance(error, anthropic.APIStatusError):
        return error.status_code in (429, 500, 502, 503, 529)
    if isinstance(error, (anthropic.APIConnectionError, anthropic.APITimeoutError)):
        return True
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    # OSError covers network-level issues
    if isinstance(error, OSError):
        return True
    return False


def compute_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """
    Compute the delay before the next retry attempt.

        delay = min(max_delay, base_delay * (exponential_base ^ attempt))
        delay += random jitter in [-jitter_range * delay, +jitter_range * delay]

    A positive Retry-After from the server wins (never less than 1 second).
    """
    if retry_after is not None and retry_after > 0:
        return max(1.0, retry_after)

    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    jitter = delay * config.jitter_range * (2 * random.random() - 1)
    return max(0.05, delay + jitter)


def _retry_after_seconds(error: Exception) -> Optional[float]:
    if not isinstance(error, anthropic.APIStatusError):
        return None
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        return float(response.headers.get("retry-after", 0))
    except (ValueError, AttributeError, TypeError):
        return None


async def with_retries(
    func: Callable,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable] = None,
) -> Any:
    """
    Execute an async function with retry logic.

    Args:
        func: The async function to execute (no arguments; use a closure)
        config: Retry configuration (uses defaults if not specified)
        on_retry: Optional callback receiving (attempt, error, delay)

    Returns:
        The result of the function call

    Raises:
        The last error if it is not retryable or all retries are exhausted
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry.exhausted",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    total_attempts=attempt + 1,
                )
                raise

            delay = compute_delay(attempt, config, _retry_after_seconds(e))

            logger.warning(
                "retry.attempt",
                error_type=type(e).__name__,
                error=str(e)[:200],
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_seconds=round(delay, 1),
            )

            if on_retry:
                on_retry(attempt + 1, e, delay)

            await asyncio.sleep(delay)

    raise RuntimeError("with_retries exited without a result")  # pragma: no cover
