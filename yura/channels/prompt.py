"""
Prompt compilation.

Turns a ChatState plus the new user turn into the single prompt string sent to
Claude.  The template is fixed and the function is pure: the same state and
turn always produce the same prompt.

Layout:
  1. persona and WhatsApp markup rules
  2. [Conversation History] — every stored turn, oldest first
  3. [Knowledge from Recent Images] — the last few OCR docs, summarized
     (only when the chat has any)
  4. closing instructions
  5. the current user turn and the persona's answer cue
"""

from __future__ import annotations

from datetime import datetime

from yura.channels.session import ChatState, OcrDoc

DEFAULT_PERSONA_NAME = "Yura"
DEFAULT_PROMPT_DOCS = 3
DEFAULT_KNOWLEDGE_SUMMARY_CHARS = 600
DEFAULT_HISTORY_SUMMARY_CHARS = 800

ELLIPSIS = "…"
KNOWLEDGE_HEADING = "[Knowledge from Recent Images]"
HISTORY_HEADING = "[Conversation History]"
EMPTY_HISTORY = "(No conversation yet)"

_PERSONA_TEMPLATE = """
You are "{name}", the cheerful little-sister mascot of Gachaverse.
Style: warm, upbeat, helpful and polite; one light kaomoji when it fits (e.g. (˶ᵔ ᵕ ᵔ˶)).
Rules:
- Use WhatsApp formatting: *bold*, _italic_, ~strikethrough~, code blocks with three backticks.
- Never use **double asterisks**. For headings, use Unicode bold letters (no asterisks).
- Keep answers short and clear; bullet points or numbered lists are fine when they help.
- When you rely on text read from an image, say "from the earlier image" or cite its OCR id.
- Do not make things up; if unsure, ask a short clarifying question.
- Vary your openings and closings so you don't sound repetitive.
"""

_INSTRUCTIONS_TEMPLATE = """
Instructions:
- Answer as "{name}".
- If the question refers to something "earlier", an image or OCR, use the summaries in {heading}.
- Avoid overly long output.
"""


def summarize(text: str | None, limit: int = DEFAULT_HISTORY_SUMMARY_CHARS) -> str:
    """Collapse whitespace and hard-truncate to *limit* chars, marking the cut."""
    collapsed = " ".join((text or "").split())
    if len(collapsed) > limit:
        return collapsed[:limit] + ELLIPSIS
    return collapsed


def format_timestamp(timestamp: float) -> str:
    """Local wall-clock rendering used in the knowledge section."""
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def persona_preamble(name: str = DEFAULT_PERSONA_NAME) -> str:
    return _PERSONA_TEMPLATE.format(name=name).strip()


def image_text_entry(doc_id: str, text: str, user_text: str = "",
                     limit: int = DEFAULT_HISTORY_SUMMARY_CHARS) -> str:
    """History entry for a turn that carried an image."""
    block = f"[Text from {doc_id}]:\n{summarize(text, limit)}"
    return f"{user_text}\n\n{block}" if user_text else block


class PromptCompiler:
    """Render persona, history, image knowledge and the new turn into one prompt."""

    def __init__(
        self,
        persona_name: str = DEFAULT_PERSONA_NAME,
        *,
        prompt_docs: int = DEFAULT_PROMPT_DOCS,
        knowledge_summary_chars: int = DEFAULT_KNOWLEDGE_SUMMARY_CHARS,
    ) -> None:
        self.persona_name = persona_name
        self._prompt_docs = max(1, int(prompt_docs))
        self._knowledge_summary_chars = max(1, int(knowledge_summary_chars))

    def role_label(self, role: str) -> str:
        return "User" if role == "user" else self.persona_name

    def render_history(self, state: ChatState) -> str:
        lines = [f"{self.role_label(entry.role)}: {entry.content}" for entry in state.history]
        return "\n".join(lines) if lines else EMPTY_HISTORY

    def render_doc(self, doc: OcrDoc) -> str:
        summary = summarize(doc.text, self._knowledge_summary_chars)
        return f"- {doc.id} ({format_timestamp(doc.timestamp)}): {summary}"

    def render_knowledge(self, state: ChatState) -> str:
        if not state.ocr_docs:
            return ""
        docs = state.ocr_docs[-self._prompt_docs:]
        body = "\n".join(self.render_doc(doc) for doc in docs)
        return f"\n\n{KNOWLEDGE_HEADING}\n{body}"

    def compile(self, state: ChatState, user_turn: str = "") -> str:
        name = self.persona_name
        turn = f"\nUser: {user_turn}" if user_turn else ""
        instructions = _INSTRUCTIONS_TEMPLATE.format(name=name, heading=KNOWLEDGE_HEADING).strip()
        prompt = (
            f"{persona_preamble(name)}\n\n"
            f"{HISTORY_HEADING}\n"
            f"{self.render_history(state)}\n"
            f"{self.render_knowledge(state)}\n\n"
            f"{instructions}\n\n"
            f"{turn}\n"
            f"{name}:"
        )
        return prompt.strip()
