"""
Main — Yura's startup sequence.

When you run ``yura run`` (or ``python -m yura.main``), this module:
  1. Loads configuration from the environment
  2. Configures logging
  3. Builds the Claude engine, the OCR reader, the chat state store and the
     bridge transport, and wires them into the WhatsApp channel
  4. Starts the channel and waits for SIGINT/SIGTERM
  5. Shuts everything down cleanly

Chat state lives only in memory; a restart starts every chat fresh.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from rich.console import Console

from yura.api.claude import GenerativeEngine, GenerativeEngineInitError
from yura.channels.bridge import BridgeTransport
from yura.channels.prompt import PromptCompiler
from yura.channels.session import ChatStateStore
from yura.channels.whatsapp_channel import WhatsAppChannel
from yura.config import YuraConfig
from yura.media.ocr import TextRecognizer

# Log fields that may carry chat content.
_SENSITIVE_KEYS = ("content", "text", "prompt", "reply")
_MAX_FIELD_DISPLAY_LEN = 80


def _truncate_sensitive_fields(logger, method_name, event_dict):
    """
    Structlog processor that shortens chat content in log output.

    Keeps message bodies, prompts and replies from being written in full to
    log files while leaving enough to recognise them.
    """
    for key in _SENSITIVE_KEYS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_FIELD_DISPLAY_LEN:
            event_dict[key] = val[:_MAX_FIELD_DISPLAY_LEN] + "... [truncated]"
    return event_dict


_logging_configured = False


def configure_logging(level: str = "warning") -> None:
    """Configure structlog and standard-library logging.

    Safe to call more than once; later calls are no-ops.
    """
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _truncate_sensitive_fields,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger(__name__)
console = Console(stderr=True)


def load_config() -> YuraConfig:
    """Load configuration, exiting the process when it is unusable."""
    try:
        return YuraConfig()
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Yura cannot start:[/red] {exc}")
        sys.exit(1)


def build_channel(
    config: YuraConfig,
    *,
    generator: Any = None,
    recognizer: Any = None,
    transport: Any = None,
) -> WhatsAppChannel:
    """Wire the WhatsApp channel from *config*.

    Any collaborator may be passed in to replace the real one.
    """
    ctx = config.context
    store = ChatStateStore(max_history=ctx.max_history, max_ocr_docs=ctx.max_ocr_docs)
    compiler = PromptCompiler(
        ctx.persona_name,
        prompt_docs=ctx.prompt_docs,
        knowledge_summary_chars=ctx.knowledge_summary_chars,
    )
    return WhatsAppChannel(
        transport=transport if transport is not None else BridgeTransport(config.whatsapp),
        store=store,
        compiler=compiler,
        generator=generator if generator is not None else GenerativeEngine(config.generative),
        recognizer=recognizer if recognizer is not None else TextRecognizer(config.ocr),
        config=config.whatsapp,
        history_summary_chars=ctx.history_summary_chars,
    )


class YuraSession:
    """
    Manages a single runtime session of Yura.

    Handles initialization, waiting for shutdown, and graceful teardown.
    """

    def __init__(self, config: YuraConfig):
        self._config = config
        self._channel: Optional[WhatsAppChannel] = None
        self._shutdown_event = asyncio.Event()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        try:
            engine = GenerativeEngine(self._config.generative)
        except GenerativeEngineInitError as exc:
            logger.error("yura.startup_failed", error=str(exc))
            raise
        self._channel = build_channel(self._config, generator=engine)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                pass  # e.g. Windows; KeyboardInterrupt still ends asyncio.run()

        try:
            await self._channel.start()
            logger.info(
                "yura.ready",
                model=self._config.generative.model,
                webhook=f"{self._config.whatsapp.webhook_host}:{self._config.whatsapp.webhook_port}",
            )
            await self._shutdown_event.wait()
        finally:
            await self._channel.stop()
            await engine.close()


def run() -> None:
    """Load config, configure logging and run until interrupted."""
    config = load_config()
    configure_logging(config.logging.level)
    session = YuraSession(config)
    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted. Exiting.[/dim]")
    except GenerativeEngineInitError:
        sys.exit(1)


def main() -> None:
    """Entry point for ``python -m yura.main``."""
    run()


if __name__ == "__main__":
    main()
