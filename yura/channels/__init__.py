"""
Yura's WhatsApp channel and the pipeline pieces it is built from.

Usage (from yura/main.py):
    from yura.channels import BridgeTransport, WhatsAppChannel

aiohttp and httpx are only needed by the bridge transport; the pipeline
modules (envelope, gate, session, prompt, formatting) are pure Python.
"""

from yura.channels.base import BaseTransport
from yura.channels.bridge import BridgeTransport
from yura.channels.formatting import format_for_whatsapp, to_unicode_bold
from yura.channels.prompt import PromptCompiler, summarize
from yura.channels.session import ChatState, ChatStateStore, HistoryEntry, OcrDoc
from yura.channels.whatsapp_channel import WhatsAppChannel

__all__ = [
    "BaseTransport",
    "BridgeTransport",
    "ChatState",
    "ChatStateStore",
    "HistoryEntry",
    "OcrDoc",
    "PromptCompiler",
    "WhatsAppChannel",
    "format_for_whatsapp",
    "summarize",
    "to_unicode_bold",
]
