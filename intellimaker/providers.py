"""LLM provider clients.

Two providers with different request shapes sit behind the same
``complete(prompt) -> str`` coroutine:

* ``ChatCompletionClient`` – Perplexity-style chat completions over
  ``httpx``; the prompt's system instruction and user content travel as two
  separate messages.
* ``PromptCompletionClient`` – the Anthropic Messages API via the
  ``anthropic`` SDK; the prompt is flattened into one user message.

Each call is a single attempt. Timeouts, non-2xx statuses and error payloads
are all raised as ``ProviderError`` (``ProviderTimeoutError`` for timeouts);
the caller never receives partial output.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import anthropic
import httpx

from intellimaker.errors import ProviderError, ProviderTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 100.0

#: Sampling and search options sent with every chat-completion request.
CHAT_OPTIONS: dict[str, Any] = {
    "max_tokens": 4096,
    "temperature": 0.2,
    "top_p": 0.9,
    "return_citations": False,
    "search_domain_filter": ["-kyoko-np.net", "-notion.site"],
    "return_images": False,
    "return_related_questions": False,
    "search_recency_filter": "year",
    "top_k": 0,
    "stream": False,
    "presence_penalty": 0,
    "frequency_penalty": 1,
}


@dataclass(frozen=True)
class Prompt:
    """A system instruction plus the user-facing request."""

    system: str
    user: str

    def combined(self) -> str:
        """Single-string form for providers without a system role."""
        if not self.system:
            return self.user
        return f"{self.system}\n\n{self.user}"


class CompletionClient(Protocol):
    async def complete(self, prompt: Prompt) -> str: ...


# ── Provider A: chat completions ───────────────────────────────────────────────


class ChatCompletionClient:
    """Chat-completion client (system + user message pair)."""

    name = "chat"

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str = "https://api.perplexity.ai/chat/completions",
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        # The asyncio deadline is authoritative; httpx gets no timeout of its own.
        self.client = http_client or httpx.AsyncClient(timeout=None)

    async def close(self) -> None:
        await self.client.aclose()

    def build_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **CHAT_OPTIONS,
        }

    async def complete(self, prompt: Prompt) -> str:
        """Send *prompt* and return the first choice's message content.

        Raises:
            ProviderTimeoutError: If no response arrives within ``timeout``.
            ProviderError: On transport failures, non-2xx statuses or a
                response without ``choices[0].message.content``.
        """
        try:
            return await asyncio.wait_for(self._post(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Chat completion timed out after %ss", self.timeout)
            raise ProviderTimeoutError(self.name, self.timeout) from exc

    async def _post(self, prompt: Prompt) -> str:
        try:
            response = await self.client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=self.build_payload(prompt.system, prompt.user),
            )
        except httpx.RequestError as exc:
            raise ProviderError(f"Chat completion request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "Chat completion failed: %s %s\n%s",
                response.status_code, response.reason_phrase, response.text[:500],
            )
            raise ProviderError(
                f"{response.reason_phrase} (chat completion)", status_code=response.status_code
            )

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                f"Malformed chat completion response: {exc!r}",
                status_code=response.status_code,
            ) from exc


# ── Provider B: single-prompt generation ───────────────────────────────────────


class PromptCompletionClient:
    """Single-prompt client backed by the Anthropic Messages API.

    The Anthropic client is lazy-initialised so that the class can be
    instantiated in tests without requiring a live API key.
    """

    name = "prompt"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = 2048,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        """Lazy-initialise and return the async Anthropic SDK client."""
        if self._client is None:
            # max_retries=0: retries are the caller's decision.
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def complete(self, prompt: Prompt | str) -> str:
        """Send a single combined prompt and return the generated text.

        Raises:
            ProviderTimeoutError: If no response arrives within ``timeout``.
            ProviderError: On API errors; carries the HTTP status when known.
        """
        text = prompt.combined() if isinstance(prompt, Prompt) else prompt
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": text}],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Prompt completion timed out after %ss", self.timeout)
            raise ProviderTimeoutError(self.name, self.timeout) from exc
        except anthropic.APITimeoutError as exc:
            raise ProviderTimeoutError(self.name, self.timeout) from exc
        except anthropic.APIStatusError as exc:
            detail = _status_detail(exc)
            logger.error("Prompt completion failed: %s %s", exc.status_code, detail)
            raise ProviderError(detail, status_code=exc.status_code) from exc
        except anthropic.APIError as exc:
            raise ProviderError(f"Prompt completion request failed: {exc}") from exc

        return "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )


def _status_detail(exc: anthropic.APIStatusError) -> str:
    """Error text from the response body; ``exc.message`` already embeds the status code."""
    detail: Any = exc.body.get("error") if isinstance(exc.body, dict) else None
    if isinstance(detail, dict):
        detail = detail.get("message")
    if detail:
        return str(detail)
    return exc.response.reason_phrase or "Prompt completion failed"
