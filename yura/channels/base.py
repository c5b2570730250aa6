"""
Base transport abstract class.

A transport is Yura's connection to WhatsApp.  It does not speak the WhatsApp
protocol itself; it fronts whatever does (see ``bridge.py``) and exposes the
handful of capabilities the channel needs:

  - deliver inbound events to a registered async handler
  - send a text message, optionally quoting the message being answered
  - set the typing indicator (composing / paused)
  - download the media attached to an event
  - report the agent's own JID

Inbound events have the shape ``{"key": {"remoteJid", "fromMe",
"participant"?}, "message": <envelope>}``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping

from yura.types import PresenceState

EventHandler = Callable[[Mapping[str, Any]], Awaitable[None]]


class BaseTransport(ABC):
    """Abstract base for WhatsApp transports."""

    def __init__(self) -> None:
        self._handler: EventHandler | None = None

    def set_event_handler(self, handler: EventHandler) -> None:
        """Register the coroutine that receives every inbound event."""
        self._handler = handler

    @property
    @abstractmethod
    def self_jid(self) -> str | None:
        """The agent's own JID, once known."""

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin delivering events."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering events and release connections."""

    @abstractmethod
    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        quoted: Mapping[str, Any] | None = None,
    ) -> None:
        """Send *text* to *chat_id*, quoting *quoted* when given."""

    @abstractmethod
    async def set_presence(self, chat_id: str, state: PresenceState) -> None:
        """Show or clear the typing indicator in *chat_id*."""

    @abstractmethod
    async def download_media(self, event: Mapping[str, Any]) -> bytes:
        """Return the raw bytes of the media attached to *event*."""
