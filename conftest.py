from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

import agents
import app as app_module
import settings
from retry import RetryPolicy

_RealAsyncClient = httpx.AsyncClient


class FakeModel:
    """Stands in for ``llm.ask_model``: returns queued replies and records every prompt."""

    def __init__(self) -> None:
        self.replies: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *replies: Any) -> "FakeModel":
        self.replies.extend(replies)
        return self

    async def __call__(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def workbench_env(monkeypatch):
    app_module.tokens.clear()
    app_module.entities.clear()
    app_module.audit_events.clear()
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "ELEVENLABS_API_KEY", "")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "")
    monkeypatch.setattr(settings, "CALENDAR_TIMEZONE", "UTC")
    monkeypatch.setattr(app_module, "strategy_retry", RetryPolicy(backoff_seconds=0))


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def fake_model(monkeypatch):
    fake = FakeModel()
    monkeypatch.setattr(agents, "ask_model", fake)
    return fake


@pytest.fixture
def google_configured(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "client-id.apps.googleusercontent.com")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "client-secret")


@pytest.fixture
def tts_configured(monkeypatch):
    monkeypatch.setattr(settings, "ELEVENLABS_API_KEY", "  xi-test-key \n")


def mock_async_client(monkeypatch, module, handler):
    """Route every ``httpx.AsyncClient`` built by ``module`` through ``handler``."""
    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _RealAsyncClient(*args, **kwargs)

    monkeypatch.setattr(module.httpx, "AsyncClient", factory)
