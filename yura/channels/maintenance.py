"""
Group session maintenance.

When a group's Signal sender keys go stale, members see "waiting for this
message" instead of Yura's replies.  Deleting the group's sender-key files
from the bridge's session directory forces the keys to be renegotiated on the
next plain text message.  The owner triggers this with the maintenance command
in the affected group, or offline with ``yura reset-keys``.
"""

from __future__ import annotations

from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

SENDER_KEY_PREFIX = "sender-key-"


def sender_key_prefix(group_jid: str) -> str:
    return f"{SENDER_KEY_PREFIX}{group_jid}"


def reset_sender_keys(auth_dir: str | Path, group_jid: str) -> int:
    """Delete the group's sender-key files and return how many were removed.

    An absent or unreadable directory counts as nothing to delete.
    """
    directory = Path(auth_dir)
    prefix = sender_key_prefix(group_jid)
    try:
        candidates = [p for p in directory.iterdir() if p.name.startswith(prefix)]
    except OSError as exc:
        logger.warning(
            "maintenance.auth_dir_unreadable",
            auth_dir=str(directory),
            error=str(exc),
        )
        return 0

    removed = 0
    for path in candidates:
        try:
            path.unlink()
            removed += 1
        except OSError as exc:
            logger.warning("maintenance.unlink_failed", path=str(path), error=str(exc))
    logger.info("maintenance.sender_keys_reset", group=group_jid, removed=removed)
    return removed


def reset_reply_text(removed: int) -> str:
    """The confirmation Yura sends back into the group."""
    if removed:
        return (
            f"𝐆𝐫𝐨𝐮𝐩 𝐬𝐞𝐬𝐬𝐢𝐨𝐧 𝐫𝐞𝐬𝐞𝐭 ({removed} files). "
            "Send one plain text message so the new SenderKey gets distributed."
        )
    return (
        "No sender keys to delete. "
        "Try sending one plain text message to refresh the SenderKey."
    )
