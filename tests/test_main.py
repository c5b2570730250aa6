"""Tests for yura/main.py — wiring, config loading and the session lifecycle."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import FakeTransport, FakeRecognizer
from yura.channels.whatsapp_channel import WhatsAppChannel
from yura.main import YuraSession, _truncate_sensitive_fields, build_channel, load_config


def _config(tmp_path) -> SimpleNamespace:
    return SimpleNamespace(
        context=SimpleNamespace(
            max_history=4,
            max_ocr_docs=2,
            prompt_docs=2,
            knowledge_summary_chars=100,
            history_summary_chars=200,
            persona_name="Naomi",
        ),
        generative=SimpleNamespace(model="test-model"),
        whatsapp=SimpleNamespace(
            auth_dir=tmp_path,
            owner_local="",
            maintenance_command="!fix",
            webhook_host="127.0.0.1",
            webhook_port=8088,
        ),
        ocr=SimpleNamespace(),
    )


class TestTruncateSensitiveFields:
    def test_long_text_truncated(self):
        event = _truncate_sensitive_fields(None, "info", {"event": "x", "text": "a" * 200})
        assert event["text"] == "a" * 80 + "... [truncated]"

    def test_short_and_other_fields_untouched(self):
        event = {"event": "x", "prompt": "short", "chat_id": "c" * 200}
        assert _truncate_sensitive_fields(None, "info", dict(event)) == event


class TestLoadConfig:
    def test_invalid_config_exits(self):
        with patch("yura.main.YuraConfig", side_effect=ValueError("ANTHROPIC_API_KEY is not set")):
            with pytest.raises(SystemExit) as excinfo:
                load_config()
        assert excinfo.value.code == 1


class TestBuildChannel:
    @pytest.mark.asyncio
    async def test_wires_context_settings(self, tmp_path):
        generator = SimpleNamespace(generate=AsyncMock(return_value="hi"))
        transport = FakeTransport()
        channel = build_channel(
            _config(tmp_path),
            generator=generator,
            recognizer=FakeRecognizer(tmp_dir=tmp_path),
            transport=transport,
        )
        assert isinstance(channel, WhatsAppChannel)

        for i in range(6):
            await channel.handle_event(
                {"key": {"remoteJid": "6283333333333@s.whatsapp.net"}, "message": {"conversation": f"m{i}"}}
            )
        prompt = generator.generate.await_args.args[0]
        assert prompt.endswith("User: m5\nNaomi:")
        # max_history=4 keeps only the latest two exchanges.
        assert "User: m3" not in prompt
        assert "User: m4\nNaomi: hi" in prompt


class TestYuraSession:
    @pytest.mark.asyncio
    async def test_run_starts_and_stops_cleanly(self, tmp_path):
        config = _config(tmp_path)
        session = YuraSession(config)
        engine = MagicMock(close=AsyncMock())
        channel = MagicMock(stop=AsyncMock())
        channel.start = AsyncMock(side_effect=lambda: session.request_shutdown())

        with patch("yura.main.GenerativeEngine", return_value=engine), \
                patch("yura.main.build_channel", return_value=channel) as build, \
                patch("yura.main.logger") as logger:
            await session.run()

        build.assert_called_once_with(config, generator=engine)
        logger.info.assert_called_once()
        assert logger.info.call_args.args[0] == "yura.ready"
        logger.warning.assert_not_called()
        channel.start.assert_awaited_once()
        channel.stop.assert_awaited_once()
        engine.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_cleans_up_when_start_fails(self, tmp_path):
        session = YuraSession(_config(tmp_path))
        engine = MagicMock(close=AsyncMock())
        channel = MagicMock(start=AsyncMock(side_effect=OSError("address in use")), stop=AsyncMock())

        with patch("yura.main.GenerativeEngine", return_value=engine), \
                patch("yura.main.build_channel", return_value=channel):
            with pytest.raises(OSError):
                await session.run()

        channel.stop.assert_awaited_once()
        engine.close.assert_awaited_once()
