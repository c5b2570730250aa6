"""
Shared fixtures for the Yura test suite.

Provides a recording fake transport, event builders and a ready-wired
WhatsAppChannel so individual test modules can focus on behavior rather than
setup.  Nothing here touches the network or the Tesseract binary.
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Mapping
from unittest.mock import AsyncMock

import pytest

from yura.channels.base import BaseTransport
from yura.channels.prompt import PromptCompiler
from yura.channels.session import ChatStateStore
from yura.channels.whatsapp_channel import WhatsAppChannel

AGENT_JID = "6281111111111:7@s.whatsapp.net"
AGENT_LOCAL = "6281111111111"
OWNER_LOCAL = "6282222222222"
GROUP_JID = "120363000000000001@g.us"
DIRECT_JID = "6283333333333@s.whatsapp.net"


class FakeTransport(BaseTransport):
    """In-memory transport that records everything the channel does."""

    def __init__(self, self_jid: str | None = AGENT_JID, media: bytes = b"\xff\xd8fake") -> None:
        super().__init__()
        self._jid = self_jid
        self.media = media
        self.sent: list[tuple[str, str, Any]] = []
        self.presence: list[tuple[str, str]] = []
        self.started = False
        self.send_error: Exception | None = None
        self.download_error: Exception | None = None

    @property
    def self_jid(self) -> str | None:
        return self._jid

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_text(self, chat_id: str, text: str, *, quoted: Mapping[str, Any] | None = None) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((chat_id, text, quoted))

    async def set_presence(self, chat_id: str, state: str) -> None:
        self.presence.append((chat_id, state))

    async def download_media(self, event: Mapping[str, Any]) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        return self.media

    @property
    def sent_texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]


class FakeRecognizer:
    """Stands in for TextRecognizer; returns a canned OCR result."""

    languages = "eng+ind"

    def __init__(self, text: str = "", min_chars: int = 8, tmp_dir: Path | None = None) -> None:
        self.text = text
        self.min_chars = min_chars
        self.tmp_dir = tmp_dir or Path(".")
        self.error: Exception | None = None
        self.saved: list[bytes] = []
        self.recognize_calls: list[tuple[Any, str | None]] = []

    async def save_image(self, data: bytes) -> Path:
        self.saved.append(data)
        return self.tmp_dir / "1700000000000.jpg"

    async def recognize(self, image_path: Any, language: str | None = None) -> str:
        self.recognize_calls.append((image_path, language))
        if self.error is not None:
            raise self.error
        return self.text

    def is_meaningful(self, text: str) -> bool:
        compact = "".join((text or "").split())
        return bool(compact) and len(compact) >= self.min_chars


# ---------------------------------------------------------------------------
# Event builders
# ---------------------------------------------------------------------------


def make_event(
    message: Mapping[str, Any] | None,
    *,
    chat_id: str = DIRECT_JID,
    participant: str | None = None,
    from_me: bool = False,
    msg_id: str = "ABCDEF123456",
) -> dict[str, Any]:
    key: dict[str, Any] = {"remoteJid": chat_id, "fromMe": from_me, "id": msg_id}
    if participant is not None:
        key["participant"] = participant
    return {"key": key, "message": message}


def text_message(text: str, *, mentioned: list[str] | None = None,
                 reply_to: str | None = None) -> dict[str, Any]:
    """An extendedTextMessage with optional mention/reply context."""
    context: dict[str, Any] = {}
    if mentioned is not None:
        context["mentionedJid"] = mentioned
    if reply_to is not None:
        context["participant"] = reply_to
    body: dict[str, Any] = {"text": text}
    if context:
        body["contextInfo"] = context
    return {"extendedTextMessage": body}


def image_message(caption: str | None = None, *, mentioned: list[str] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"mimetype": "image/jpeg"}
    if caption is not None:
        body["caption"] = caption
    if mentioned is not None:
        body["contextInfo"] = {"mentionedJid": mentioned}
    return {"imageMessage": body}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def wa_config(tmp_path: Path) -> SimpleNamespace:
    """A minimal WhatsAppConfig-like namespace."""
    auth_dir = tmp_path / "auth"
    auth_dir.mkdir()
    return SimpleNamespace(
        auth_dir=auth_dir,
        owner_local=OWNER_LOCAL,
        maintenance_command="!fix",
    )


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def store() -> ChatStateStore:
    return ChatStateStore(max_history=20, max_ocr_docs=5)


@pytest.fixture()
def compiler() -> PromptCompiler:
    return PromptCompiler("Yura")


@pytest.fixture()
def generator() -> SimpleNamespace:
    return SimpleNamespace(generate=AsyncMock(return_value="Hello there!"))


@pytest.fixture()
def recognizer(tmp_path: Path) -> FakeRecognizer:
    return FakeRecognizer(text="", tmp_dir=tmp_path)


@pytest.fixture()
def channel(transport, store, compiler, generator, recognizer, wa_config) -> WhatsAppChannel:
    return WhatsAppChannel(
        transport=transport,
        store=store,
        compiler=compiler,
        generator=generator,
        recognizer=recognizer,
        config=wa_config,
    )
