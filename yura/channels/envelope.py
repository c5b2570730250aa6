"""
WhatsApp message envelopes.

WhatsApp wraps the real content of a message in envelopes: disappearing
messages arrive inside ``ephemeralMessage``, view-once media inside
``viewOnceMessage``/``viewOnceMessageV2``, edits inside ``editedMessage`` and
captioned documents inside ``documentWithCaptionMessage``.  Every wrapper keeps
its payload under a ``message`` key, and wrappers can be stacked (an edited
message in a disappearing chat, for instance).

The helpers here work on the plain JSON the bridge delivers and never mutate
it.
"""

from __future__ import annotations

from typing import Any, Mapping

# Checked in this order on every pass.
WRAPPER_KINDS: tuple[str, ...] = (
    "ephemeralMessage",
    "viewOnceMessageV2",
    "viewOnceMessage",
    "editedMessage",
    "documentWithCaptionMessage",
)

# Stacked wrappers seen in practice are two or three deep.
_MAX_UNWRAP_DEPTH = 8


def _unwrap_once(envelope: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for kind in WRAPPER_KINDS:
        wrapper = envelope.get(kind)
        if isinstance(wrapper, Mapping):
            inner = wrapper.get("message")
            if isinstance(inner, Mapping) and inner:
                return inner
            return None
    return None


def unwrap_message(envelope: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    """Return the innermost content envelope of *envelope*.

    Unwraps repeatedly until no wrapper kind matches.  When nothing is wrapped
    the very same object is returned.
    """
    if not isinstance(envelope, Mapping):
        return envelope
    current = envelope
    for _ in range(_MAX_UNWRAP_DEPTH):
        inner = _unwrap_once(current)
        if inner is None:
            break
        current = inner
    return current


def extract_text(content: Mapping[str, Any] | None) -> str:
    """Plain text, extended text or image caption — whichever comes first."""
    if not isinstance(content, Mapping):
        return ""
    conversation = content.get("conversation")
    if isinstance(conversation, str) and conversation.strip():
        return conversation.strip()
    extended = content.get("extendedTextMessage")
    if isinstance(extended, Mapping):
        text = extended.get("text")
        if isinstance(text, str) and text.strip():
            return text.strip()
    image = content.get("imageMessage")
    if isinstance(image, Mapping):
        caption = image.get("caption")
        if isinstance(caption, str) and caption.strip():
            return caption.strip()
    return ""


def has_image(content: Mapping[str, Any] | None) -> bool:
    return isinstance(content, Mapping) and isinstance(content.get("imageMessage"), Mapping)


def extract_context_info(content: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Return the message's context metadata (mentions, quoted participant).

    Looks at the content envelope itself first, then at the first
    sub-message that carries a ``contextInfo`` mapping. WhatsApp puts it on
    ``extendedTextMessage``, ``imageMessage`` and friends.
    """
    if not isinstance(content, Mapping):
        return {}
    direct = content.get("contextInfo")
    if isinstance(direct, Mapping):
        return direct
    for value in content.values():
        if isinstance(value, Mapping):
            nested = value.get("contextInfo")
            if isinstance(nested, Mapping):
                return nested
    return {}
