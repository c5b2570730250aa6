"""
Claude API Client — the engine that writes Yura's replies.

This module wraps the Anthropic SDK behind a single ``generate(prompt)`` call.
The prompt compiler already renders persona, history and image knowledge into
one string, so the engine sends it as a single user turn and returns the
concatenated text blocks of the answer.

The engine keeps no conversation state. It receives a prompt and returns text.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import anthropic
import structlog

from yura.config import GenerativeConfig
from yura.harness.retry import RetryConfig, with_retries

logger = structlog.get_logger(__name__)


class GenerativeEngineInitError(RuntimeError):
    """Raised when the generative engine cannot be initialized safely."""


class GenerativeEngine:
    """Async Claude client with timeout, retries and basic telemetry."""

    def __init__(self, config: GenerativeConfig):
        try:
            self._async_client = anthropic.AsyncAnthropic(api_key=config.api_key)
            self._model = config.model
            self._max_tokens = config.max_tokens
            self._request_timeout_seconds = float(config.request_timeout_seconds)
            self._retry_config = RetryConfig(
                max_retries=int(config.retry_max_retries),
                base_delay=float(config.retry_base_delay),
                max_delay=float(config.retry_max_delay),
                exponential_base=float(config.retry_exponential_base),
                jitter_range=float(config.retry_jitter_range),
            )

            # Telemetry
            self._total_input_tokens = 0
            self._total_output_tokens = 0
            self._total_calls = 0
            self._last_call_time: Optional[float] = None

            logger.info(
                "generative_engine.initialized",
                model=self._model,
                base_url=str(self._async_client.base_url),
            )
        except Exception as exc:
            raise GenerativeEngineInitError(
                f"Failed to initialize generative engine: {exc}"
            ) from exc

    async def generate(self, prompt: str) -> str:
        """
        Send *prompt* as one user turn and return the reply text.

        Whitespace-only answers come back as ``""``; the caller decides what an
        empty reply means.  API errors propagate after retries are exhausted.
        """
        start_time = time.monotonic()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        async def _create() -> anthropic.types.Message:
            return await asyncio.wait_for(
                self._async_client.messages.create(**kwargs),
                timeout=self._request_timeout_seconds,
            )

        try:
            response = await with_retries(_create, config=self._retry_config)
        except anthropic.RateLimitError as e:
            logger.warning("generative_engine.rate_limited", error=str(e))
            raise
        except anthropic.APIError as e:
            logger.warning(
                "generative_engine.api_error",
                error=str(e),
                status=getattr(e, "status_code", None),
            )
            raise

        elapsed = time.monotonic() - start_time
        usage = getattr(response, "usage", None)
        if usage is not None:
            self._total_input_tokens += getattr(usage, "input_tokens", 0) or 0
            self._total_output_tokens += getattr(usage, "output_tokens", 0) or 0
        self._total_calls += 1
        self._last_call_time = elapsed

        text = self.extract_text(response).strip()
        logger.debug(
            "generative_engine.reply_complete",
            elapsed_seconds=round(elapsed, 2),
            stop_reason=getattr(response, "stop_reason", None),
            reply_chars=len(text),
        )
        return text

    def extract_text(self, response: anthropic.types.Message) -> str:
        """Join all text blocks of a response, ignoring everything else."""
        parts = []
        for block in getattr(response, "content", None) or []:
            if getattr(block, "type", None) == "text":
                parts.append(block.text or "")
        return "\n".join(parts)

    async def close(self) -> None:
        await self._async_client.close()

    @property
    def telemetry(self) -> dict[str, Any]:
        """Return current telemetry snapshot."""
        return {
            "total_calls": self._total_calls,
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "last_call_seconds": self._last_call_time if self._last_call_time is not None else 0.0,
        }
