"""Pytest configuration and shared fixtures."""
import json
import os
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from llamachat.conversation import ConversationStore, Message, Role


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "gemini": os.getenv("GEMINI_API_KEY"),
        "openrouter": os.getenv("OPENROUTER_API_KEY"),
    }


@pytest.fixture
def clock():
    """Return a fake clock starting at 2024-05-01T12:30:00Z."""
    return FakeClock()


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Isolated data home with no credentials leaking in from the environment."""
    for var in ("GEMINI_API_KEY", "OPENROUTER_API_KEY", "OPENROUTER_CUSTOM_MODELS", "LLAMACHAT_HOME"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def conversations():
    """Empty conversation store."""
    return ConversationStore(model="llama3.2:3b")


@pytest.fixture
def complete_chat(conversations):
    """Store whose active conversation has one question and one answer."""
    chat_id = conversations.start_new()
    conversations.append(chat_id, Role.USER, "Hello")
    conversations.append(chat_id, Role.ASSISTANT, "Hi there")
    return chat_id


@pytest.fixture
def sample_history():
    """Three-turn transcript ending with a user message."""
    return [
        Message(role=Role.USER, content="What is 2+2?"),
        Message(role=Role.ASSISTANT, content="4"),
        Message(role=Role.USER, content="And 3+3?"),
    ]


class OllamaServer:
    """In-process fake of the Ollama HTTP API for httpx.MockTransport."""

    def __init__(self, answer: str = "Hi there", stream_lines: list[str] | None = None,
                 status_code: int = 200, models: list[str] | None = None):
        self.answer = answer
        self.stream_lines = stream_lines
        self.status_code = status_code
        self.models = models or ["llama3.2:3b"]
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": name} for name in self.models]})

        body = json.loads(request.content)
        self.requests.append(body)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text="model 'missing' not found")
        if body.get("stream"):
            lines = self.stream_lines or [json.dumps({"response": self.answer, "done": True})]
            return httpx.Response(200, content="\n".join(lines).encode())
        return httpx.Response(200, json={"response": self.answer, "done": True})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def ollama_server():
    """Fake Ollama server answering "Hi there"."""
    return OllamaServer()


@pytest.fixture
def make_ollama_server():
    """Factory for fake Ollama servers with custom answers or failures."""
    return OllamaServer
