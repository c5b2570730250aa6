"""
Core data types shared across Yura subsystems.

Lightweight containers that cross module boundaries live here rather than in a
specific subsystem to avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["user", "assistant"]
PresenceState = Literal["composing", "paused"]

GROUP_JID_SUFFIX = "@g.us"


@dataclass(frozen=True)
class MentionInfo:
    """How a group message addresses the agent."""

    is_mentioned: bool = False
    is_reply_to_agent: bool = False

    @property
    def addresses_agent(self) -> bool:
        return self.is_mentioned or self.is_reply_to_agent


@dataclass
class NormalizedMessage:
    """One inbound event after unwrapping and gating.

    Built per event by the WhatsApp channel and never stored.  ``content`` is
    the innermost message envelope; ``event`` is the raw transport event, kept
    so media can be downloaded and replies can quote the original.
    """

    chat_id: str
    is_group: bool
    sender_local_id: str
    text: str
    has_image: bool
    mention: MentionInfo = field(default_factory=MentionInfo)
    content: dict[str, Any] = field(default_factory=dict)
    event: dict[str, Any] = field(default_factory=dict)


def is_group_jid(chat_id: str | None) -> bool:
    return bool(chat_id) and str(chat_id).endswith(GROUP_JID_SUFFIX)
