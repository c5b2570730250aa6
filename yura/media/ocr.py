"""
Text recognition for images via Tesseract.

Tesseract is CPU-bound and blocking, so recognition runs in a worker thread
off the event loop.  ``pytesseract`` and Pillow are imported lazily: a
missing package surfaces as ``ImportError`` at recognition time and is handled
by the channel like any other unreadable image.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from yura.config import OcrConfig

logger = structlog.get_logger(__name__)


class TextRecognizer:
    """Read text out of image files with Tesseract."""

    def __init__(self, config: OcrConfig) -> None:
        self._config = config

    @property
    def languages(self) -> str:
        return self._config.languages

    @property
    def min_chars(self) -> int:
        return self._config.min_chars

    async def save_image(self, data: bytes) -> Path:
        """Write downloaded image bytes to the download dir as ``<millis>.jpg``."""
        return await asyncio.to_thread(self._write_image, bytes(data))

    def _write_image(self, data: bytes) -> Path:
        directory = Path(self._config.download_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{time.time_ns() // 1_000_000}.jpg"
        path.write_bytes(data)
        return path

    async def recognize(self, image_path: str | Path, language: str | None = None) -> str:
        """Return the text Tesseract finds in *image_path*, stripped.

        Unreadable images come back as ``""``.  Errors from Tesseract and the
        configured timeout propagate to the caller.
        """
        lang = language or self._config.languages
        text = await asyncio.wait_for(
            asyncio.to_thread(self._recognize_sync, str(image_path), lang),
            timeout=self._config.timeout_seconds,
        )
        text = (text or "").strip()
        logger.debug("ocr.recognized", path=str(image_path), lang=lang, chars=len(text))
        return text

    def _recognize_sync(self, image_path: str, language: str) -> str:
        import pytesseract
        from PIL import Image

        if self._config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self._config.tesseract_cmd
        with Image.open(image_path) as image:
            return pytesseract.image_to_string(image, lang=language) or ""

    def is_meaningful(self, text: str) -> bool:
        """True when *text* has at least ``min_chars`` non-whitespace characters."""
        compact = "".join((text or "").split())
        return bool(compact) and len(compact) >= self._config.min_chars
