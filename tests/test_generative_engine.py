from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest

from yura.api.claude import GenerativeEngine, GenerativeEngineInitError
from yura.config import GenerativeConfig


def _engine(monkeypatch, create: AsyncMock) -> GenerativeEngine:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    engine = GenerativeEngine(GenerativeConfig(_env_file=None, YURA_MODEL="test-model", YURA_MAX_TOKENS=256))
    engine._async_client = SimpleNamespace(messages=SimpleNamespace(create=create), close=AsyncMock())

    async def _fast_sleep(_: float) -> None:
        return None

    monkeypatch.setattr("yura.harness.retry.asyncio.sleep", _fast_sleep)
    return engine


def _response(*texts: str, extra_blocks: list | None = None) -> SimpleNamespace:
    blocks = [SimpleNamespace(type="text", text=t) for t in texts]
    blocks.extend(extra_blocks or [])
    return SimpleNamespace(
        content=blocks,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        stop_reason="end_turn",
    )


@pytest.mark.asyncio
async def test_generate_sends_prompt_as_single_user_turn(monkeypatch):
    create = AsyncMock(return_value=_response("  Hi there!  "))
    engine = _engine(monkeypatch, create)

    reply = await engine.generate("the whole prompt")

    assert reply == "Hi there!"
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["max_tokens"] == 256
    assert kwargs["messages"] == [{"role": "user", "content": "the whole prompt"}]


@pytest.mark.asyncio
async def test_generate_joins_text_blocks_only(monkeypatch):
    response = _response("part one", "part two", extra_blocks=[SimpleNamespace(type="thinking", thinking="...")])
    engine = _engine(monkeypatch, AsyncMock(return_value=response))
    assert await engine.generate("p") == "part one\npart two"


@pytest.mark.asyncio
async def test_generate_whitespace_reply_is_empty(monkeypatch):
    engine = _engine(monkeypatch, AsyncMock(return_value=_response("   \n ")))
    assert await engine.generate("p") == ""


@pytest.mark.asyncio
async def test_generate_retries_transient_errors(monkeypatch):
    create = AsyncMock(side_effect=[OSError("network blip"), _response("ok")])
    engine = _engine(monkeypatch, create)

    assert await engine.generate("p") == "ok"
    assert create.await_count == 2
    assert engine.telemetry["total_calls"] == 1
    assert engine.telemetry["total_input_tokens"] == 10
    assert engine.telemetry["total_output_tokens"] == 5


@pytest.mark.asyncio
async def test_generate_propagates_permanent_api_errors(monkeypatch):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    error = anthropic.BadRequestError(
        message="bad request",
        response=httpx.Response(400, request=request),
        body={},
    )
    create = AsyncMock(side_effect=error)
    engine = _engine(monkeypatch, create)

    with pytest.raises(anthropic.BadRequestError):
        await engine.generate("p")
    assert create.await_count == 1
    assert engine.telemetry["total_calls"] == 0


@pytest.mark.asyncio
async def test_close_closes_client(monkeypatch):
    engine = _engine(monkeypatch, AsyncMock())
    await engine.close()
    engine._async_client.close.assert_awaited_once()


def test_init_failure_is_wrapped(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    config = GenerativeConfig(_env_file=None)

    def _boom(**_kwargs):
        raise RuntimeError("client construction failed")

    monkeypatch.setattr("yura.api.claude.anthropic.AsyncAnthropic", _boom)
    with pytest.raises(GenerativeEngineInitError, match="client construction failed"):
        GenerativeEngine(config)
