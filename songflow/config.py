from __future__ import annotations

import os
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .constants import DEFAULT_MAX_POLLS, DEFAULT_POLL_INTERVAL, DEFAULT_WEBHOOK_PATH
from .contracts import ConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8080
    base_url: str = "http://localhost:8080"
    uploads_dir: str = "uploads"


class LLMConfig(BaseModel):
    """Chat-completions endpoint settings."""

    api_key: str = ""
    model: str = "gpt-4o"
    base_url: str = "https://api.openai.com/v1"


class SunoConfig(BaseModel):
    """suno-api server settings."""

    base_url: str = "http://localhost:3000"
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_polls: int = DEFAULT_MAX_POLLS


class TelegramConfig(BaseModel):
    """Telegram bot settings for notifications and the inbound webhook."""

    bot_token: str = ""
    chat_id: str = ""
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    webhook_secret: str = ""
    webhook_url: str = ""


class WorkflowConfig(BaseModel):
    premium_by_default: bool = False
    max_audio_size_mb: int = 50


class SongflowConfig(BaseModel):
    """Top-level configuration model."""

    server: ServerConfig = ServerConfig()
    llm: LLMConfig = LLMConfig()
    suno: SunoConfig = SunoConfig()
    telegram: TelegramConfig = TelegramConfig()
    workflow: WorkflowConfig = WorkflowConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"

    @property
    def webhook_path(self) -> str:
        return normalize_webhook_path(self.telegram.webhook_path)

    @property
    def public_base_url(self) -> str:
        return self.server.base_url.rstrip("/")

    def require_llm_key(self) -> None:
        if not self.llm.api_key:
            raise ConfigError("OPENAI_API_KEY is required")


def normalize_webhook_path(path: str) -> str:
    normalized = (path or "").strip()
    if not normalized:
        return DEFAULT_WEBHOOK_PATH
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    return normalized


def _env_str(key: str) -> Optional[str]:
    value = os.getenv(key)
    return value if value else None


def _env_int(key: str, default: int) -> int:
    value = _env_str(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = _env_str(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = _env_str(key)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return default


def _apply_env(config: SongflowConfig) -> SongflowConfig:
    server, llm, suno, tg, wf = (
        config.server,
        config.llm,
        config.suno,
        config.telegram,
        config.workflow,
    )
    server.host = _env_str("SERVER_HOST") or server.host
    server.port = _env_int("SERVER_PORT", server.port)
    server.base_url = _env_str("BASE_URL") or server.base_url
    server.uploads_dir = _env_str("UPLOADS_DIR") or server.uploads_dir

    llm.api_key = _env_str("OPENAI_API_KEY") or llm.api_key
    llm.model = _env_str("OPENAI_MODEL") or llm.model
    llm.base_url = _env_str("OPENAI_BASE_URL") or llm.base_url

    suno.base_url = _env_str("SUNO_BASE_URL") or suno.base_url
    suno.poll_interval = _env_float("SUNO_POLL_INTERVAL", suno.poll_interval)
    suno.max_polls = _env_int("SUNO_MAX_POLLS", suno.max_polls)

    tg.bot_token = _env_str("TELEGRAM_BOT_TOKEN") or tg.bot_token
    tg.chat_id = _env_str("TELEGRAM_CHAT_ID") or tg.chat_id
    tg.webhook_path = _env_str("TELEGRAM_WEBHOOK_PATH") or tg.webhook_path
    tg.webhook_secret = _env_str("TELEGRAM_WEBHOOK_SECRET") or tg.webhook_secret
    tg.webhook_url = _env_str("TELEGRAM_WEBHOOK_URL") or tg.webhook_url

    wf.premium_by_default = _env_bool("ENABLE_PREMIUM_FEATURES", wf.premium_by_default)
    wf.max_audio_size_mb = _env_int("MAX_AUDIO_SIZE_MB", wf.max_audio_size_mb)

    config.database_url = (
        _env_str("SONGFLOW_DATABASE_URL")
        or _env_str("DATABASE_URL")
        or config.database_url
    )
    config.log_level = _env_str("LOG_LEVEL") or config.log_level
    return config


def load_config(path: Optional[str] = None, use_dotenv: bool = True) -> SongflowConfig:
    """Load configuration from YAML file and environment.

    Args:
        path: Optional path to config file. Falls back to SONGFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
        use_dotenv: Read a ``.env`` file from the working directory first.
            Variables already present in the environment win.
    """

    if use_dotenv:
        load_dotenv()

    config_path = path or os.getenv("SONGFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SongflowConfig(**data)
    else:
        config = SongflowConfig()

    return _apply_env(config)
