"""
Tests for web/app.py

Run with: pytest tests/test_app.py
"""

from __future__ import annotations

import json
import time

import pytest

from config.settings import Settings
from intellimaker.errors import ProviderError, ProviderTimeoutError
from intellimaker.runner import BackgroundLoop
from tests.conftest import FakeChatClient, FakePromptClient
from web.app import create_app


class EchoClient:
    """Relay fake: echoes the user prompt or raises a canned error."""

    def __init__(self, error: Exception = None) -> None:
        self.error = error

    async def complete(self, prompt) -> str:
        if self.error is not None:
            raise self.error
        return f"echo:{getattr(prompt, 'user', prompt)}"


@pytest.fixture
def runner():
    loop = BackgroundLoop(name="test-loop").start()
    yield loop
    loop.stop()


@pytest.fixture
def settings() -> Settings:
    return Settings(perplexity_api_key="pplx", anthropic_api_key="sk-ant")


def make_client(settings, runner, chat=None, prompt=None):
    app = create_app(
        settings,
        chat_client=chat or FakeChatClient(),
        prompt_client=prompt or FakePromptClient(),
        runner=runner,
    )
    app.config["TESTING"] = True
    return app.test_client()


def wait_until_settled(client, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        snapshot = client.get("/api/session").get_json()
        if not snapshot["is_generating"]:
            return snapshot
        time.sleep(0.02)
    raise AssertionError("session did not settle")


# ── Relays ─────────────────────────────────────────────────────────────────────


class TestRelays:
    def test_chat_relay_returns_content(self, settings, runner):
        client = make_client(settings, runner, chat=EchoClient())
        resp = client.post("/api/chat", json={"systemPrompt": "s", "userPrompt": "u"})
        assert resp.status_code == 200
        assert resp.get_json() == {"content": "echo:u"}

    def test_chat_relay_requires_user_prompt(self, settings, runner):
        client = make_client(settings, runner, chat=EchoClient())
        resp = client.post("/api/chat", json={"systemPrompt": "s"})
        assert resp.status_code == 400

    def test_chat_relay_without_key_is_500(self, runner):
        client = make_client(Settings(perplexity_api_key="", anthropic_api_key="x"), runner)
        resp = client.post("/api/chat", json={"userPrompt": "u"})
        assert resp.status_code == 500
        assert "API key" in resp.get_json()["error"]

    def test_upstream_status_is_forwarded(self, settings, runner):
        chat = EchoClient(ProviderError("Too Many Requests", status_code=429))
        client = make_client(settings, runner, chat=chat)
        resp = client.post("/api/chat", json={"userPrompt": "u"})
        assert resp.status_code == 429
        assert resp.get_json()["status"] == 429

    def test_generate_timeout_is_504(self, settings, runner):
        prompt = EchoClient(ProviderTimeoutError("Prompt completion", 1.0))
        client = make_client(settings, runner, prompt=prompt)
        resp = client.post("/api/generate", json={"prompt": "hello"})
        assert resp.status_code == 504

    def test_generate_relay_returns_content(self, settings, runner):
        client = make_client(settings, runner, prompt=EchoClient())
        resp = client.post("/api/generate", json={"prompt": "hello"})
        assert resp.get_json() == {"content": "echo:hello"}


# ── Sessions ───────────────────────────────────────────────────────────────────


class TestSessions:
    def test_blank_topic_rejected(self, settings, runner):
        client = make_client(settings, runner)
        resp = client.post("/api/session", json={"topic": "  "})
        assert resp.status_code == 400

    def test_session_runs_to_completion(self, settings, runner):
        client = make_client(settings, runner)

        resp = client.post("/api/session", json={"topic": "大谷翔平"})

        assert resp.status_code == 202
        assert resp.get_json() == {"session_id": 1, "topic": "大谷翔平"}
        snapshot = wait_until_settled(client)
        assert snapshot["completed"] == 5
        assert {s["status"] for s in snapshot["sections"].values()} == {"success"}
        assert len(snapshot["sections"]["glossary"]["data"]) == 8

    def test_retry_unknown_section_is_404(self, settings, runner):
        client = make_client(settings, runner)
        resp = client.post("/api/session/sections/weather/retry")
        assert resp.status_code == 404

    def test_retry_without_session_is_409(self, settings, runner):
        client = make_client(settings, runner)
        resp = client.post("/api/session/sections/glossary/retry")
        assert resp.status_code == 409

    def test_retry_failed_section(self, settings, runner):
        chat = FakeChatClient({"trivia": "not json"})
        client = make_client(settings, runner, chat=chat)
        client.post("/api/session", json={"topic": "AI"})
        snapshot = wait_until_settled(client)
        assert snapshot["sections"]["trivia"]["status"] == "error"

        chat.responses["trivia"] = FakeChatClient().responses["trivia"]
        resp = client.post("/api/session/sections/trivia/retry")

        assert resp.status_code == 202
        deadline = time.monotonic() + 5
        trivia = {}
        while time.monotonic() < deadline:
            trivia = client.get("/api/session").get_json()["sections"]["trivia"]
            if trivia["status"] != "loading":
                break
            time.sleep(0.02)
        assert trivia["status"] == "success"
        assert len(trivia["data"]) == 5

    def test_stream_after_settle_sends_snapshot_then_done(self, settings, runner):
        client = make_client(settings, runner)
        client.post("/api/session", json={"topic": "AI"})
        wait_until_settled(client)

        resp = client.get("/api/session/stream")

        assert resp.mimetype == "text/event-stream"
        frames = [f for f in resp.get_data(as_text=True).split("\n\n") if f]
        assert frames[-1] == "data: [DONE]"
        first = json.loads(frames[0][len("data: "):])
        assert first["type"] == "snapshot"
        assert first["data"]["completed"] == 5
