"""
Group gating — when should Yura speak up in a group?

In direct chats Yura answers everything.  In groups she only answers when she
is @mentioned or when someone replies to one of her messages; everything else
is ignored without touching chat state.

WhatsApp identifiers (JIDs) look like ``628123:2@s.whatsapp.net``: a local
number, an optional ``:device`` qualifier and a server suffix.  All
comparisons here are on the bare local part.
"""

from __future__ import annotations

from typing import Any, Mapping

from yura.types import MentionInfo


def jid_local(jid: object) -> str:
    """``"628xxx:2@s.whatsapp.net"`` -> ``"628xxx"``; empty for ``None``/``""``."""
    if not jid:
        return ""
    return str(jid).split("@", 1)[0].split(":", 1)[0]


def mention_token(agent_local_id: str) -> str:
    return f"@{agent_local_id}"


def detect_mention(context_info: Mapping[str, Any] | None, agent_local_id: str) -> MentionInfo:
    """Work out whether a group message mentions or replies to the agent."""
    if not agent_local_id or not isinstance(context_info, Mapping):
        return MentionInfo()
    mentioned = context_info.get("mentionedJid") or []
    if isinstance(mentioned, str):
        mentioned = [mentioned]
    is_mentioned = any(jid_local(jid) == agent_local_id for jid in mentioned)
    is_reply = jid_local(context_info.get("participant")) == agent_local_id
    return MentionInfo(is_mentioned=is_mentioned, is_reply_to_agent=is_reply)


def strip_agent_mention(text: str, agent_local_id: str) -> str:
    """Remove the first ``@<agent>`` token from *text*; later ones stay."""
    token = mention_token(agent_local_id)
    if agent_local_id and token in text:
        return text.replace(token, "", 1).strip()
    return text.strip()


def is_maintenance_command(
    text: str,
    *,
    is_group: bool,
    sender_local_id: str,
    owner_local_id: str,
    command: str = "!fix",
) -> bool:
    """True when the owner sent the maintenance command in a group.

    The owner check is a suffix match so the configured number may omit a
    country prefix.  An unset owner disables the command entirely.
    """
    if not is_group or not owner_local_id or not sender_local_id:
        return False
    if (text or "").strip().lower() != command.strip().lower():
        return False
    return sender_local_id.endswith(owner_local_id)
