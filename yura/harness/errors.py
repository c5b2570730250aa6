"""
Error classification for failed reply attempts.

A reply attempt covers the presence update, the Claude call and the outbound
send.  In WhatsApp groups the send step regularly trips over the Signal
session layer (missing pre-keys, stale sender keys, MAC failures); those heal
on their own once the keys are renegotiated, so they are logged quietly.
Everything else is a real error and is logged with a traceback.  The person
in the chat gets the same apology either way.
"""

from __future__ import annotations

import enum
import re

import structlog

logger = structlog.get_logger(__name__)

# Substrings the Signal layer uses for session/key/MAC trouble.
TRANSIENT_PROTOCOL_MARKERS: tuple[str, ...] = (
    "PreKey",
    "No session record",
    "No SenderKeyRecord",
    "InvalidMessageException",
    "Bad MAC",
)

_TRANSIENT_PROTOCOL_RE = re.compile(
    "|".join(re.escape(marker) for marker in TRANSIENT_PROTOCOL_MARKERS),
    re.IGNORECASE,
)


class ErrorKind(enum.Enum):
    TRANSIENT_PROTOCOL = "transient_protocol"
    OTHER = "other"


class TransportError(RuntimeError):
    """Raised by a transport when the bridge rejects or fails a request."""


class TransientProtocolError(TransportError):
    """Raised by a transport when the bridge reports session/key trouble."""


def classify_error(error: BaseException) -> ErrorKind:
    """Return the kind of a failed reply attempt.

    Typed transport errors are authoritative; anything else is matched on its
    description against the known Signal-layer markers.
    """
    if isinstance(error, TransientProtocolError):
        return ErrorKind.TRANSIENT_PROTOCOL
    description = str(error) or type(error).__name__
    if _TRANSIENT_PROTOCOL_RE.search(description):
        return ErrorKind.TRANSIENT_PROTOCOL
    return ErrorKind.OTHER


def log_reply_failure(error: BaseException, **context: object) -> ErrorKind:
    """Log a failed reply attempt at the severity its kind deserves."""
    kind = classify_error(error)
    if kind is ErrorKind.TRANSIENT_PROTOCOL:
        logger.warning(
            "reply.transient_protocol_error",
            error_type=type(error).__name__,
            **context,
        )
    else:
        logger.error(
            "reply.failed",
            error_type=type(error).__name__,
            error=str(error),
            exc_info=error,
            **context,
        )
    return kind
