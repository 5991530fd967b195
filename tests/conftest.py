"""Shared fixtures: canned provider payloads and fake provider clients."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import pytest

from intellimaker.diagnostics import DiagnosticEvent, Diagnostics
from intellimaker.providers import Prompt


# ── Canned payloads ────────────────────────────────────────────────────────────


def phrases_payload(n: int = 5) -> dict:
    return {
        "phrases": [
            {
                "quote": f"実は<keyword>用語{i}</keyword>が鍵なんだよね",
                "background": f"<keyword>用語{i}</keyword>についての背景説明{i}",
                "rating": 4.5,
                "tags": ["トレンド", "unknown", "トレンド"],
            }
            for i in range(n)
        ]
    }


def trivia_payload(n: int = 5) -> dict:
    return {"trivia": [{"content": f"<keyword>豆知識{i}</keyword>は意外と古い"} for i in range(n)]}


def glossary_payload(n: int = 8) -> dict:
    return {"glossary": [{"term": f"用語{i}", "definition": f"定義{i}の説明"} for i in range(n)]}


def key_persons_payload(n: int = 5) -> dict:
    return {
        "keyPersons": [
            {
                "name": f"人物{i}",
                "description": f"人物{i}の説明",
                "twitter": f"https://twitter.com/p{i}",
                "linkedin": "",
                "website": f"https://p{i}.example.com",
                "image": "https://example.com/should-be-ignored.png",
            }
            for i in range(n)
        ]
    }


def remarks_payload(n: int = 6) -> list:
    return [{"content": f"ちなみに<keyword>一言{i}</keyword>って知ってる？"} for i in range(n)]


# ── Fake providers ─────────────────────────────────────────────────────────────


class FakeChatClient:
    """Answers each first-stage prompt based on the result key it asks for.

    Responses are raw strings, JSON-serialisable payloads, exceptions, or
    ``asyncio.Event`` instances to wait on before answering with the default.
    """

    KEYS = ("phrases", "trivia", "glossary", "keyPersons")

    def __init__(self, overrides: Optional[dict[str, Any]] = None) -> None:
        self.responses: dict[str, Any] = {
            "phrases": phrases_payload(),
            "trivia": trivia_payload(),
            "glossary": glossary_payload(),
            "keyPersons": key_persons_payload(),
        }
        self.responses.update(overrides or {})
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    def key_for(self, prompt: Prompt) -> str:
        for key in self.KEYS:
            if f'"{key}"' in prompt.user:
                return key
        raise AssertionError(f"Unexpected prompt: {prompt.user[:80]}")

    async def complete(self, prompt: Prompt) -> str:
        key = self.key_for(prompt)
        self.calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        response = self.responses[key]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response, ensure_ascii=False)


class FakePromptClient:
    """Single-prompt fake used for synthesis."""

    def __init__(self, response: Any = None) -> None:
        self.response = remarks_payload() if response is None else response
        self.prompts: list[Prompt] = []

    async def complete(self, prompt: Prompt) -> str:
        self.prompts.append(prompt)
        if isinstance(self.response, BaseException):
            raise self.response
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response, ensure_ascii=False)


# ── Fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def events() -> list[DiagnosticEvent]:
    return []


@pytest.fixture
def diagnostics(events) -> Diagnostics:
    return Diagnostics(sinks=[events.append])


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def prompt_client() -> FakePromptClient:
    return FakePromptClient()
