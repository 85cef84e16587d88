"""Shared fixtures: in-process fakes for the LLM, Suno and Telegram adapters."""

from __future__ import annotations

import json
from typing import Dict, List, Optional, Union

import pytest

import songflow.persistence as persistence
from songflow.clients.suno import AudioInfo, CustomGenerateRequest
from songflow.config import ServerConfig, SongflowConfig, SunoConfig
from songflow.contracts import NotifierError
from songflow.engine import WorkflowEngine
from songflow.persistence import InMemoryWorkflowRepository
from songflow.prompts import PromptSet

PROMPTS = PromptSet()

LYRICS = "Rain on the window, neon in the street\nLast train is leaving, I can hear the beat"
PROPERTIES_JSON = json.dumps(
    {
        "style": "lofi hip hop, mellow, rainy",
        "vocal_type": "soft female vocals",
        "lyrics_mode": "custom",
        "weirdness": 0.3,
        "style_influence": "nujabes",
    }
)
BRACKETED = "[Verse]\n[Female Voice]\n" + LYRICS + "\n[Outro]"
PERSONA_JSON = json.dumps(
    {"persona": "Mira, a night-shift violinist", "inspo": "Hans Zimmer, Ludovico Einaudi"}
)

Response = Union[str, Exception]


class FakeLLM:
    """Answers by system prompt; an ``Exception`` value is raised instead."""

    def __init__(self) -> None:
        self.responses: Dict[str, Response] = {
            PROMPTS.lyrics_generation: LYRICS,
            PROMPTS.song_properties: PROPERTIES_JSON,
            PROMPTS.bracket_instructions: BRACKETED,
            PROMPTS.persona_inspo: PERSONA_JSON,
        }
        self.calls: List[tuple[str, str]] = []

    async def chat(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        response = self.responses[system_prompt]
        if isinstance(response, Exception):
            raise response
        return response

    def prompts_called(self) -> List[str]:
        return [system for system, _ in self.calls]

    async def aclose(self) -> None:
        pass


class FakeSuno:
    def __init__(self) -> None:
        self.requests: List[CustomGenerateRequest] = []
        self.waits: List[tuple[str, float, int]] = []
        self.submit_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.jobs = [
            AudioInfo(id="job-1", status="submitted"),
            AudioInfo(id="job-2", status="submitted"),
        ]
        self.result = AudioInfo(
            id="job-1",
            status="complete",
            title="a rainy-evening lofi track",
            audio_url="https://cdn.example/job-1.mp3",
            video_url="https://cdn.example/job-1.mp4",
        )

    async def submit(self, request: CustomGenerateRequest) -> List[AudioInfo]:
        self.requests.append(request)
        if self.submit_error is not None:
            raise self.submit_error
        return list(self.jobs)

    async def wait_for_completion(
        self, job_id: str, poll_interval: float, max_polls: int
    ) -> AudioInfo:
        self.waits.append((job_id, poll_interval, max_polls))
        if self.wait_error is not None:
            raise self.wait_error
        return self.result

    async def aclose(self) -> None:
        pass


class FakeNotifier:
    def __init__(self, chat_id: str = "42") -> None:
        self.chat_id = chat_id
        self.messages: List[dict] = []
        self.webhooks: List[tuple[str, str]] = []
        self.error: Optional[Exception] = None

    async def send(self, chat_id, text, link=None, link_text="Open") -> None:
        if self.error is not None:
            raise self.error
        self.messages.append(
            {"chat_id": chat_id, "text": text, "link": link, "link_text": link_text}
        )

    async def notify(self, text, link=None, link_text="Open") -> None:
        await self.send(self.chat_id, text, link=link, link_text=link_text)

    async def set_webhook(self, webhook_url: str, secret_token: str = "") -> None:
        self.webhooks.append((webhook_url, secret_token))

    async def aclose(self) -> None:
        pass


@pytest.fixture(autouse=True)
def _isolated_repository(monkeypatch):
    """Keep the module-level repository singleton from leaking between tests."""
    for key in ("SONGFLOW_DATABASE_URL", "DATABASE_URL", "SONGFLOW_CONFIG"):
        monkeypatch.delenv(key, raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


@pytest.fixture
def config(tmp_path) -> SongflowConfig:
    return SongflowConfig(
        server=ServerConfig(base_url="http://songflow.test", uploads_dir=str(tmp_path / "uploads")),
        suno=SunoConfig(poll_interval=0, max_polls=3),
    )


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def suno() -> FakeSuno:
    return FakeSuno()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def engine(repository, llm, suno, notifier, config) -> WorkflowEngine:
    return WorkflowEngine(repository, llm, suno, notifier, config=config)
