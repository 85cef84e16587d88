"""Client for the suno-api music generation server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..constants import DEFAULT_MAX_POLLS, DEFAULT_POLL_INTERVAL, SUNO_READY_STATUSES
from ..contracts import SunoError, SunoTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0


class CustomGenerateRequest(BaseModel):
    """Body of ``POST /api/custom_generate``."""

    prompt: str
    tags: str
    title: str
    make_instrumental: bool = False
    wait_audio: bool = False
    negative_tags: Optional[str] = None
    model: Optional[str] = None
    persona: Optional[str] = None
    inspo: Optional[str] = None
    audio_reference: Optional[str] = None


class AudioInfo(BaseModel):
    """One generated clip as reported by the server."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    id: str
    status: str = ""
    title: str = ""
    audio_url: Optional[str] = ""
    video_url: Optional[str] = ""
    image_url: Optional[str] = ""
    lyric: Optional[str] = ""
    tags: Optional[str] = ""
    model_name: Optional[str] = ""
    created_at: Optional[str] = ""
    duration: Optional[float] = None

    @property
    def is_ready(self) -> bool:
        return self.status in SUNO_READY_STATUSES


class QuotaInfo(BaseModel):
    credits_left: int = 0
    period: Optional[str] = None
    monthly_limit: int = 0
    monthly_usage: int = 0


class SunoClient:
    """Submit generation requests and poll jobs on a suno-api server."""

    def __init__(
        self, base_url: str, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def custom_generate(self, request: CustomGenerateRequest) -> List[AudioInfo]:
        """Submit a lyrics+style request; returns the created clips."""
        data = await self._request(
            "POST",
            "/api/custom_generate",
            json=request.model_dump(exclude_none=True),
        )
        clips = _parse_clips(data)
        if not clips:
            raise SunoError("no results returned from Suno")
        return clips

    async def submit(self, request: CustomGenerateRequest) -> List[AudioInfo]:
        return await self.custom_generate(request)

    async def get(self, ids: str = "", page: int = 0) -> List[AudioInfo]:
        """Fetch clip information; ``ids`` may be comma-separated."""
        params = {}
        if ids:
            params["ids"] = ids
        if page > 0:
            params["page"] = str(page)
        data = await self._request("GET", "/api/get", params=params)
        return _parse_clips(data)

    async def get_quota(self) -> QuotaInfo:
        data = await self._request("GET", "/api/get_limit")
        try:
            return QuotaInfo.model_validate(data)
        except ValidationError as exc:
            raise SunoError(f"failed to unmarshal response: {exc}") from exc

    async def wait_for_completion(
        self,
        job_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: int = DEFAULT_MAX_POLLS,
    ) -> AudioInfo:
        """Poll ``job_id`` until it is streaming or complete.

        Raises:
            SunoTimeoutError: If ``max_polls`` reads pass without a ready status.
            SunoError: On transport errors or when the job disappears.
        """
        for attempt in range(max_polls):
            clips = await self.get(job_id)
            if not clips:
                raise SunoError(f"no audio found with ID: {job_id}")
            clip = clips[0]
            if clip.is_ready:
                return clip
            logger.debug(
                f"Suno job {job_id} status={clip.status} attempt={attempt + 1}/{max_polls}"
            )
            await asyncio.sleep(poll_interval)

        raise SunoTimeoutError("max retries exceeded waiting for audio completion")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, self.base_url + path, **kwargs)
        except httpx.HTTPError as exc:
            raise SunoError(f"failed to send request: {exc}") from exc
        if response.is_error:
            raise SunoError(
                f"API error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise SunoError(f"failed to unmarshal response: {exc}") from exc


def _parse_clips(data: Any) -> List[AudioInfo]:
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise SunoError(f"unexpected response shape: {type(data).__name__}")
    try:
        return [AudioInfo.model_validate(item) for item in data]
    except ValidationError as exc:
        raise SunoError(f"failed to unmarshal response: {exc}") from exc


__all__ = [
    "AudioInfo",
    "CustomGenerateRequest",
    "QuotaInfo",
    "SunoClient",
]
