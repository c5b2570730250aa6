"""
Per-chat conversation state.

Each WhatsApp chat (direct or group) gets a ChatState holding a bounded
history of turns and a bounded list of texts read from images ("OCR docs").
Both are FIFO: once full, the oldest entry makes room for the newest.

State lives in memory for the lifetime of the process and is never persisted
or expired.  The store also hands out one asyncio lock per chat; the channel
holds it for a whole turn so two messages in the same chat never interleave
their reads and writes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

import structlog

from yura.types import Role

logger = structlog.get_logger(__name__)

DEFAULT_MAX_HISTORY = 20
DEFAULT_MAX_OCR_DOCS = 5


@dataclass
class HistoryEntry:
    role: Role
    content: str


@dataclass
class OcrDoc:
    """Text read from one image."""

    id: str
    text: str
    # Wall-clock epoch seconds.
    timestamp: float


@dataclass
class ChatState:
    """Everything Yura remembers about one chat."""

    chat_id: str
    history: list[HistoryEntry] = field(default_factory=list)
    ocr_docs: list[OcrDoc] = field(default_factory=list)


class ChatStateStore:
    """
    Owns every ChatState, keyed by chat id.

    Safe to share within one asyncio event loop only.
    """

    def __init__(
        self,
        max_history: int = DEFAULT_MAX_HISTORY,
        max_ocr_docs: int = DEFAULT_MAX_OCR_DOCS,
    ) -> None:
        self._states: dict[str, ChatState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._max_history = max(1, int(max_history))
        self._max_ocr_docs = max(1, int(max_ocr_docs))
        self._last_doc_millis = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure(self, chat_id: str) -> ChatState:
        """Return the chat's state, creating it on first sight."""
        state = self._states.get(chat_id)
        if state is None:
            state = ChatState(chat_id=chat_id)
            self._states[chat_id] = state
            logger.debug("chat_state.created", chat_id=chat_id)
        return state

    def push_history(self, state: ChatState, role: Role, content: str) -> None:
        """Append a turn, evicting the oldest turns beyond capacity."""
        state.history.append(HistoryEntry(role=role, content=content))
        overflow = len(state.history) - self._max_history
        if overflow > 0:
            del state.history[:overflow]

    def add_doc(self, state: ChatState, text: str) -> str:
        """Append image text and return its ``OCR-<millis>`` id."""
        now = time.time()
        millis = max(int(now * 1000), self._last_doc_millis + 1)
        self._last_doc_millis = millis
        doc_id = f"OCR-{millis}"
        state.ocr_docs.append(OcrDoc(id=doc_id, text=text, timestamp=millis / 1000.0))
        overflow = len(state.ocr_docs) - self._max_ocr_docs
        if overflow > 0:
            del state.ocr_docs[:overflow]
        return doc_id

    def lock(self, chat_id: str) -> asyncio.Lock:
        """Return the per-chat lock that serialises turns within one chat."""
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    def get(self, chat_id: str) -> ChatState | None:
        return self._states.get(chat_id)

    def chat_count(self) -> int:
        """Return the number of chats seen so far."""
        return len(self._states)

    @property
    def max_history(self) -> int:
        return self._max_history

    @property
    def max_ocr_docs(self) -> int:
        return self._max_ocr_docs
