"""
Harness — the resilience layer around external calls.

  retry.py   — exponential backoff for transient Claude API failures
  errors.py  — classification and logging of failed reply attempts
"""

from yura.harness.errors import (
    ErrorKind,
    TransientProtocolError,
    TransportError,
    classify_error,
    log_reply_failure,
)
from yura.harness.retry import RetryConfig, with_retries

__all__ = [
    "ErrorKind",
    "RetryConfig",
    "TransientProtocolError",
    "TransportError",
    "classify_error",
    "log_reply_failure",
    "with_retries",
]
