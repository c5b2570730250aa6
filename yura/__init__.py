"""
Yura — WhatsApp chat-automation agent.

Yura listens to a WhatsApp account through an external bridge process, keeps a
short rolling context per chat, reads text out of images people send, asks
Claude for a reply and rewrites that reply into WhatsApp's own markup.

Layout (bottom to top):
    1. Claude API client (generative engine) + retry harness
    2. Text recognition (Tesseract OCR)
    3. Channel pipeline: envelope unwrapping, group gating, chat state,
       prompt compilation, strict WhatsApp formatting
    4. Transport (HTTP bridge) and process bootstrap
"""

__version__ = "0.1.0"
