"""
Strict WhatsApp formatting for generated replies.

Claude writes Markdown; WhatsApp understands a much smaller dialect with
single-character delimiters: *bold*, _italic_, ~strikethrough~ and ```code```.
Double delimiters show up literally in the chat, and WhatsApp has no
headings at all, so:

  - a line that is wholly **bold**, __bold__ or a # heading becomes a heading
    rendered in Unicode mathematical-bold letters, with no delimiters left
  - inline **x** / __x__ / ~~x~~ collapse to *x* / _x_ / ~x~
  - bold italic ***x*** becomes *_x_*, or a bold heading when it fills the line
  - trailing spaces are trimmed from every prose line

Fenced code is never touched: the text is split on the ``` fence, and only
the even-numbered segments (the prose between fences) are rewritten.
"""

from __future__ import annotations

import re

FENCE: str = "```"

# Mathematical Bold block: capitals, small letters and digits are contiguous.
_BOLD_UPPER_START = 0x1D400
_BOLD_LOWER_START = 0x1D41A
_BOLD_DIGIT_START = 0x1D7CE

BOLD_MAP: dict[str, str] = {
    **{chr(ord("A") + i): chr(_BOLD_UPPER_START + i) for i in range(26)},
    **{chr(ord("a") + i): chr(_BOLD_LOWER_START + i) for i in range(26)},
    **{chr(ord("0") + i): chr(_BOLD_DIGIT_START + i) for i in range(10)},
}
_BOLD_TABLE = str.maketrans(BOLD_MAP)

# ── Compiled regexes ─────────────────────────────────────────────────────────

# Whole-line headings.  The inner text may not contain its own delimiter pair,
# so "**a** and **b**" stays an inline line.  ***x*** (bold italic) is checked
# before **x**.
_TRIPLE_STAR_HEADING_RE = re.compile(r"^\s*\*\*\*((?:(?!\*\*).)+)\*\*\*\s*$")
_STAR_HEADING_RE = re.compile(r"^\s*\*\*((?:(?!\*\*).)+)\*\*\s*$")
_UNDERSCORE_HEADING_RE = re.compile(r"^\s*__((?:(?!__).)+)__\s*$")
_HASH_HEADING_RE = re.compile(r"^\s*#{1,6}[ \t]+(.+?)\s*$")

_BOLD_ITALIC_RE = re.compile(r"\*\*\*(.+?)\*\*\*")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"__(.+?)__")
_STRIKETHROUGH_RE = re.compile(r"~~(.+?)~~")


def to_unicode_bold(text: str) -> str:
    """Map A-Z, a-z and 0-9 to Mathematical Bold; everything else passes through."""
    return (text or "").translate(_BOLD_TABLE)


def _heading_text(line: str) -> str | None:
    for pattern in (
        _TRIPLE_STAR_HEADING_RE,
        _STAR_HEADING_RE,
        _UNDERSCORE_HEADING_RE,
        _HASH_HEADING_RE,
    ):
        m = pattern.match(line)
        if m:
            return m.group(1).strip()
    return None


def format_line(line: str) -> str:
    """Rewrite one prose line."""
    heading = _heading_text(line)
    if heading is not None:
        return to_unicode_bold(heading)
    line = _BOLD_ITALIC_RE.sub(r"*_\1_*", line)
    line = _BOLD_RE.sub(r"*\1*", line)
    line = _ITALIC_RE.sub(r"_\1_", line)
    line = _STRIKETHROUGH_RE.sub(r"~\1~", line)
    return line.rstrip(" \t")


def format_prose(segment: str) -> str:
    return "\n".join(format_line(line) for line in segment.split("\n"))


def format_for_whatsapp(text: str | None) -> str:
    """
    Return *text* rewritten into WhatsApp's strict markup.

    Segment structure around ``` fences is preserved exactly: the number and
    order of segments is unchanged and code segments are byte-identical.
    """
    if not text:
        return ""
    parts = text.split(FENCE)
    for i in range(0, len(parts), 2):
        parts[i] = format_prose(parts[i])
    return FENCE.join(parts)
