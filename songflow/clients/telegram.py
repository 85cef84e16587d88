"""Telegram Bot API notifier and webhook helpers."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from ..constants import WEBHOOK_SECRET_HEADER
from ..contracts import ConfigError, NotifierError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier:
    """Best-effort chat notifications.

    Sends are silently skipped when the bot token or target chat id is not
    configured. Transport and API errors raise :class:`NotifierError`; callers
    decide whether they matter.
    """

    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        api_url: str = TELEGRAM_API_URL,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        chat_id: Optional[str],
        text: str,
        link: Optional[str] = None,
        link_text: str = "Open",
    ) -> None:
        """Send ``text`` to ``chat_id`` with an optional inline link button."""
        if not self.bot_token or not chat_id:
            return

        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if link:
            payload["reply_markup"] = {
                "inline_keyboard": [[{"text": link_text, "url": link}]]
            }
        await self._call("sendMessage", payload)

    async def notify(
        self, text: str, link: Optional[str] = None, link_text: str = "Open"
    ) -> None:
        """Send to the configured default chat."""
        await self.send(self.chat_id, text, link=link, link_text=link_text)

    async def set_webhook(self, webhook_url: str, secret_token: str = "") -> None:
        """Register ``webhook_url`` with Telegram (no-op without a bot token)."""
        if not self.bot_token:
            return
        if not webhook_url:
            raise ConfigError("webhook URL is required")

        payload: Dict[str, Any] = {
            "url": webhook_url,
            "allowed_updates": ["message", "edited_message"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        await self._call("setWebhook", payload)

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.api_url}/bot{self.bot_token}/{method}"
        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise NotifierError(f"failed to send request: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise NotifierError(
                f"failed to unmarshal response: {exc}", status_code=response.status_code
            ) from exc

        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else data
            raise NotifierError(
                f"telegram API error: {description}", status_code=response.status_code
            )
        return data.get("result")


def verify_webhook_secret(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the webhook secret header.

    An empty ``expected`` secret disables the check.
    """
    expected = (expected or "").strip()
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


__all__ = ["TelegramNotifier", "verify_webhook_secret", "WEBHOOK_SECRET_HEADER"]
