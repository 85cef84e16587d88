"""HTTP adapters for the LLM, the music generation server and Telegram."""

from __future__ import annotations

from typing import Optional

from ..config import SongflowConfig, load_config
from .llm import LLMClient
from .suno import AudioInfo, CustomGenerateRequest, SunoClient
from .telegram import TelegramNotifier, verify_webhook_secret


def build_clients(
    config: Optional[SongflowConfig] = None,
) -> tuple[LLMClient, SunoClient, TelegramNotifier]:
    """Construct the three adapters from configuration."""

    config = config or load_config()
    llm = LLMClient(
        api_key=config.llm.api_key,
        model=config.llm.model,
        base_url=config.llm.base_url,
    )
    suno = SunoClient(config.suno.base_url)
    notifier = TelegramNotifier(config.telegram.bot_token, config.telegram.chat_id)
    return llm, suno, notifier


__all__ = [
    "AudioInfo",
    "CustomGenerateRequest",
    "LLMClient",
    "SunoClient",
    "TelegramNotifier",
    "build_clients",
    "verify_webhook_secret",
]
