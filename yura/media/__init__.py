"""
Media processing for the WhatsApp channel.

Images people send are saved to disk and read with Tesseract; the recognized
text becomes part of the chat's knowledge base.
"""

from __future__ import annotations

from yura.media.ocr import TextRecognizer

__all__ = ["TextRecognizer"]
