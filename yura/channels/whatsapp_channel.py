"""
WhatsApp channel — the message pipeline.

Every inbound event from the transport goes through the same steps:

  1. unwrap the envelope and pull out text, image flag and sender
  2. owner maintenance command (``!fix`` in a group), handled and done
  3. group gate: in groups, only @mentions of Yura and replies to Yura pass;
     the first @mention token is stripped from the text
  4. under the chat's lock: record the user turn (images are OCR'd first and
     their text added to the chat's knowledge), compile the prompt, ask
     Claude, reformat for WhatsApp, send, record the reply

Per-message failures never escape: the person gets a short warning or an
apology, and the failure is logged at a severity matching its kind.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Mapping, Protocol

import structlog

from yura.channels.envelope import (
    extract_context_info,
    extract_text,
    has_image,
    unwrap_message,
)
from yura.channels.formatting import format_for_whatsapp
from yura.channels.gate import (
    detect_mention,
    is_maintenance_command,
    jid_local,
    strip_agent_mention,
)
from yura.channels.maintenance import reset_reply_text, reset_sender_keys
from yura.channels.prompt import DEFAULT_HISTORY_SUMMARY_CHARS, image_text_entry
from yura.harness.errors import log_reply_failure
from yura.types import NormalizedMessage, is_group_jid

if TYPE_CHECKING:
    from pathlib import Path

    from yura.channels.base import BaseTransport
    from yura.channels.prompt import PromptCompiler
    from yura.channels.session import ChatState, ChatStateStore
    from yura.config import WhatsAppConfig

logger = structlog.get_logger(__name__)

IMAGE_UNREADABLE_TEXT = (
    "⚠️ The image is a bit blurry, I couldn't read it yet. "
    "Try a brighter photo taken straight on."
)
IMAGE_FAILED_TEXT = "⚠️ I couldn't read the image. Please send it again."
EMPTY_REPLY_TEXT = "⚠️ I didn't get a reply yet. Could you repeat your message?"
APOLOGY_TEXT = (
    "❌ Oops, something went wrong while reaching the AI. "
    "Please try again in a moment."
)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class ImageReader(Protocol):
    languages: str

    async def save_image(self, data: bytes) -> "Path": ...

    async def recognize(self, image_path: Any, language: str | None = None) -> str: ...

    def is_meaningful(self, text: str) -> bool: ...


class WhatsAppChannel:
    """Yura's WhatsApp adapter: gating, context, generation and delivery."""

    def __init__(
        self,
        transport: BaseTransport,
        store: ChatStateStore,
        compiler: PromptCompiler,
        generator: TextGenerator,
        recognizer: ImageReader,
        config: WhatsAppConfig,
        *,
        history_summary_chars: int = DEFAULT_HISTORY_SUMMARY_CHARS,
    ) -> None:
        self._transport = transport
        self._store = store
        self._compiler = compiler
        self._generator = generator
        self._recognizer = recognizer
        self._config = config
        self._history_summary_chars = history_summary_chars

    @property
    def channel_name(self) -> str:
        return "whatsapp"

    async def start(self) -> None:
        self._transport.set_event_handler(self.handle_event)
        await self._transport.start()
        logger.info("whatsapp_channel.started", self_jid=self._transport.self_jid)

    async def stop(self) -> None:
        await self._transport.stop()
        logger.info("whatsapp_channel.stopped", chats=self._store.chat_count())

    # ------------------------------------------------------------------
    # Normalization and gating
    # ------------------------------------------------------------------

    @property
    def agent_local_id(self) -> str:
        return jid_local(self._transport.self_jid)

    def normalize(self, event: Mapping[str, Any]) -> NormalizedMessage | None:
        """Unwrap *event* into a NormalizedMessage; None for events to drop."""
        key = event.get("key") or {}
        envelope = event.get("message")
        if not envelope or key.get("fromMe"):
            return None
        chat_id = key.get("remoteJid")
        if not chat_id:
            return None
        content = unwrap_message(envelope) or {}
        return NormalizedMessage(
            chat_id=chat_id,
            is_group=is_group_jid(chat_id),
            sender_local_id=jid_local(key.get("participant") or chat_id),
            text=extract_text(content),
            has_image=has_image(content),
            content=dict(content),
            event=dict(event),
        )

    def apply_group_gate(self, msg: NormalizedMessage) -> NormalizedMessage | None:
        """Return the message if Yura should engage, else None.

        Direct chats always pass.  In groups the first @mention of Yura is
        removed from the text.
        """
        if not msg.is_group:
            return msg
        agent_local = self.agent_local_id
        mention = detect_mention(extract_context_info(msg.content), agent_local)
        if not mention.addresses_agent:
            return None
        msg.mention = mention
        if mention.is_mentioned:
            msg.text = strip_agent_mention(msg.text, agent_local)
        return msg

    def is_maintenance(self, msg: NormalizedMessage) -> bool:
        return is_maintenance_command(
            msg.text,
            is_group=msg.is_group,
            sender_local_id=msg.sender_local_id,
            owner_local_id=self._config.owner_local,
            command=self._config.maintenance_command,
        )

    # ------------------------------------------------------------------
    # Event handler
    # ------------------------------------------------------------------

    async def handle_event(self, event: Mapping[str, Any]) -> None:
        """Route one transport event through the pipeline."""
        msg = self.normalize(event)
        if msg is None:
            return

        if self.is_maintenance(msg):
            await self._run_maintenance(msg)
            return

        gated = self.apply_group_gate(msg)
        if gated is None:
            logger.debug("whatsapp_channel.group_message_ignored", chat_id=msg.chat_id)
            return

        # Stickers and other media carry neither text nor image.
        if not gated.has_image and not gated.text:
            return

        async with self._store.lock(gated.chat_id):
            await self._handle_turn(gated)

    async def _run_maintenance(self, msg: NormalizedMessage) -> None:
        removed = await asyncio.to_thread(reset_sender_keys, self._config.auth_dir, msg.chat_id)
        await self._safe_send(msg, reset_reply_text(removed))

    async def _handle_turn(self, msg: NormalizedMessage) -> None:
        state = self._store.ensure(msg.chat_id)
        if msg.has_image:
            if not await self._ingest_image(msg, state):
                return
        else:
            self._store.push_history(state, "user", msg.text)
        await self._reply(msg, state)

    async def _ingest_image(self, msg: NormalizedMessage, state: ChatState) -> bool:
        """OCR the attached image into the chat's knowledge and history.

        Returns False (after warning the user) when the image could not be
        read; state is left untouched in that case.
        """
        try:
            data = await self._transport.download_media(msg.event)
            path = await self._recognizer.save_image(data)
            text = await self._recognizer.recognize(path, self._recognizer.languages)
        except Exception as exc:
            logger.warning(
                "whatsapp_channel.ocr_failed",
                chat_id=msg.chat_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            await self._safe_send(msg, IMAGE_FAILED_TEXT)
            return False

        if not self._recognizer.is_meaningful(text):
            logger.warning("whatsapp_channel.ocr_unreadable", chat_id=msg.chat_id, chars=len(text))
            await self._safe_send(msg, IMAGE_UNREADABLE_TEXT)
            return False

        doc_id = self._store.add_doc(state, text)
        self._store.push_history(
            state,
            "user",
            image_text_entry(doc_id, text, msg.text, self._history_summary_chars),
        )
        return True

    async def _reply(self, msg: NormalizedMessage, state: ChatState) -> None:
        chat_id = msg.chat_id
        try:
            await self._transport.set_presence(chat_id, "composing")
            prompt = self._compiler.compile(state, msg.text)
            generated = await self._generator.generate(prompt)
            reply = format_for_whatsapp(generated)
            if not reply.strip():
                await self._transport.send_text(chat_id, EMPTY_REPLY_TEXT, quoted=msg.event)
                return
            await self._transport.send_text(chat_id, reply, quoted=msg.event)
            self._store.push_history(state, "assistant", reply)
        except Exception as exc:
            log_reply_failure(exc, chat_id=chat_id)
            await self._safe_send(msg, APOLOGY_TEXT)
        finally:
            try:
                await self._transport.set_presence(chat_id, "paused")
            except Exception as exc:
                logger.debug("whatsapp_channel.presence_reset_failed", error=str(exc))

    async def _safe_send(self, msg: NormalizedMessage, text: str) -> None:
        """Send a notice quoting *msg*; delivery failures are logged, not raised."""
        try:
            await self._transport.send_text(msg.chat_id, text, quoted=msg.event)
        except Exception as exc:
            logger.error(
                "whatsapp_channel.send_failed",
                chat_id=msg.chat_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
