"""Chat-completions client used for every pre-review LLM call."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..contracts import LLMError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 120.0


class LLMClient:
    """Stateless single-shot chat client for an OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        client: Optional[httpx.AsyncClient] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat(self, system_prompt: str, user_prompt: str) -> str:
        """Send one system+user exchange and return the assistant text."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.chat_with_messages(messages)

    async def chat_with_messages(self, messages: List[Dict[str, str]]) -> str:
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        try:
            response = await self._client.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise LLMError(f"failed to send request: {exc}") from exc

        data = _decode(response)
        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LLMError(f"API error: {message}", status_code=response.status_code)
        if response.is_error:
            raise LLMError(
                f"API error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        choices = data.get("choices") or []
        if not choices:
            raise LLMError("no choices in response", status_code=response.status_code)
        content = choices[0].get("message", {}).get("content") or ""
        logger.debug(f"LLM returned {len(content)} characters from model={self.model}")
        return content


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        if response.is_error:
            raise LLMError(
                f"API error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
            ) from exc
        raise LLMError(f"failed to decode response: {exc}") from exc
