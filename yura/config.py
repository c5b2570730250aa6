# yura/config.py
"""
Configuration for Yura.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. The pipeline itself never
reads the environment; it only receives the resolved values from here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above yura/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


def resolve_project_path(path: Path) -> Path:
    """Resolve a relative path against the project root (where .env lives),
    not the current working directory, so ``yura`` works from any directory."""
    path = Path(path)
    if path.is_absolute():
        return path
    return (_PROJECT_ROOT / path).resolve()


class GenerativeConfig(BaseSettings):
    """Configuration for the Claude API connection that writes Yura's replies."""

    api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")
    model: str = Field("claude-sonnet-4-5-20250929", alias="YURA_MODEL")
    max_tokens: int = Field(1024, alias="YURA_MAX_TOKENS")
    request_timeout_seconds: float = Field(120.0, alias="YURA_REQUEST_TIMEOUT_SECONDS")
    retry_max_retries: int = Field(3, alias="YURA_RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(0.5, alias="YURA_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(8.0, alias="YURA_RETRY_MAX_DELAY")
    retry_exponential_base: float = Field(2.0, alias="YURA_RETRY_EXPONENTIAL_BASE")
    retry_jitter_range: float = Field(0.25, alias="YURA_RETRY_JITTER_RANGE")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore"}

    @model_validator(mode="after")
    def require_api_key(self) -> "GenerativeConfig":
        if isinstance(self.api_key, str):
            self.api_key = self.api_key.strip() or None
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set (environment or .env).")
        return self

    @model_validator(mode="after")
    def normalize_runtime_limits(self) -> "GenerativeConfig":
        self.max_tokens = max(1, int(self.max_tokens))
        self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.retry_max_retries = max(0, int(self.retry_max_retries))
        self.retry_base_delay = max(0.05, float(self.retry_base_delay))
        self.retry_max_delay = max(self.retry_base_delay, float(self.retry_max_delay))
        self.retry_exponential_base = max(1.0, float(self.retry_exponential_base))
        self.retry_jitter_range = max(0.0, min(1.0, float(self.retry_jitter_range)))
        return self


class OcrConfig(BaseSettings):
    """Configuration for reading text out of images (Tesseract)."""

    # Tesseract language codes joined with '+', e.g. "eng+ind".
    languages: str = Field("eng+ind", alias="YURA_OCR_LANG")
    # Fewer non-whitespace characters than this counts as "unreadable".
    min_chars: int = Field(8, alias="YURA_OCR_MIN_CHARS")
    timeout_seconds: float = Field(60.0, alias="YURA_OCR_TIMEOUT_SECONDS")
    tesseract_cmd: Optional[str] = Field(None, alias="YURA_TESSERACT_CMD")
    download_dir: Path = Field(Path("./yura_data/download"), alias="YURA_DOWNLOAD_DIR")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "env_ignore_empty": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "OcrConfig":
        self.languages = self.languages.strip() or "eng"
        self.min_chars = max(0, int(self.min_chars))
        self.timeout_seconds = max(1.0, float(self.timeout_seconds))
        return self


class ContextConfig(BaseSettings):
    """Per-chat context window: how much history and image text Yura keeps."""

    max_history: int = Field(20, alias="YURA_MAX_HISTORY")
    max_ocr_docs: int = Field(5, alias="YURA_MAX_OCR_DOCS")
    prompt_docs: int = Field(3, alias="YURA_PROMPT_DOCS")
    knowledge_summary_chars: int = Field(600, alias="YURA_KNOWLEDGE_SUMMARY_CHARS")
    history_summary_chars: int = Field(800, alias="YURA_HISTORY_SUMMARY_CHARS")
    persona_name: str = Field("Yura", alias="YURA_PERSONA_NAME")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "env_ignore_empty": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "ContextConfig":
        self.max_history = max(1, int(self.max_history))
        self.max_ocr_docs = max(1, int(self.max_ocr_docs))
        self.prompt_docs = max(1, min(self.max_ocr_docs, int(self.prompt_docs)))
        self.knowledge_summary_chars = max(1, int(self.knowledge_summary_chars))
        self.history_summary_chars = max(1, int(self.history_summary_chars))
        self.persona_name = self.persona_name.strip() or "Yura"
        return self


class WhatsAppConfig(BaseSettings):
    """Configuration for the WhatsApp channel and its HTTP bridge."""

    # Directory where the bridge keeps its session / sender-key files.
    auth_dir: Path = Field(Path("./auth"), alias="YURA_AUTH_DIR")
    # Local part of the owner's number, e.g. 62821xxxxxxx. Empty disables
    # the maintenance command.
    owner_local: str = Field("", validation_alias=AliasChoices("YURA_OWNER_LOCAL", "OWNER_LOCAL"))
    maintenance_command: str = Field("!fix", alias="YURA_MAINTENANCE_COMMAND")
    bridge_url: str = Field("http://127.0.0.1:3000", alias="YURA_BRIDGE_URL")
    bridge_token: Optional[str] = Field(None, alias="YURA_BRIDGE_TOKEN")
    bridge_timeout_seconds: float = Field(30.0, alias="YURA_BRIDGE_TIMEOUT_SECONDS")
    webhook_host: str = Field("127.0.0.1", alias="YURA_WEBHOOK_HOST")
    webhook_port: int = Field(8088, alias="YURA_WEBHOOK_PORT")

    model_config = {
        "env_file": _ENV_FILE,
        "extra": "ignore",
        "populate_by_name": True,
        "env_ignore_empty": True,
    }

    @model_validator(mode="after")
    def normalize_limits(self) -> "WhatsAppConfig":
        self.owner_local = "".join(ch for ch in str(self.owner_local) if ch.isdigit())
        self.maintenance_command = self.maintenance_command.strip().lower() or "!fix"
        self.bridge_url = self.bridge_url.strip().rstrip("/")
        if isinstance(self.bridge_token, str):
            self.bridge_token = self.bridge_token.strip() or None
        self.bridge_timeout_seconds = max(1.0, float(self.bridge_timeout_seconds))
        self.webhook_port = max(1, min(65535, int(self.webhook_port)))
        return self


class LoggingConfig(BaseSettings):
    """Log verbosity for the whole process."""

    level: str = Field(
        "warning",
        validation_alias=AliasChoices("YURA_LOG_LEVEL", "LOG_LEVEL"),
    )

    model_config = {"env_file": _ENV_FILE, "extra": "ignore"}

    @model_validator(mode="after")
    def normalize_level(self) -> "LoggingConfig":
        level = self.level.strip().lower()
        if level == "warn":
            level = "warning"
        if level not in _LOG_LEVELS:
            logger.warning("config.unknown_log_level", level=self.level, fallback="warning")
            level = "warning"
        self.level = level
        return self


class YuraConfig:
    """
    Master configuration that composes all subsystem configs.

    Every component receives its config from here. Construction raises
    ``pydantic.ValidationError`` (a ``ValueError``) when a required credential
    is missing, which the entry point treats as fatal.
    """

    def __init__(self):
        self.logging = LoggingConfig()
        self.generative = GenerativeConfig()
        self.ocr = OcrConfig()
        self.context = ContextConfig()
        self.whatsapp = WhatsAppConfig()

        # Resolve all Path fields to absolute so CWD changes don't break them.
        self._resolve_paths()

    def _resolve_paths(self) -> None:
        self.ocr.download_dir = resolve_project_path(self.ocr.download_dir)
        self.whatsapp.auth_dir = resolve_project_path(self.whatsapp.auth_dir)

    def __repr__(self) -> str:
        return (
            f"YuraConfig(model={self.generative.model}, "
            f"ocr_lang={self.ocr.languages}, "
            f"history={self.context.max_history}, "
            f"bridge={self.whatsapp.bridge_url})"
        )
