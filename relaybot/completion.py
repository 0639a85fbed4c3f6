from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from relaybot.errors import CompletionCallFailed
from relaybot.models import ChatMessage, MessageContent, content_from_wire


@dataclass(frozen=True)
class ChatOptions:
    reasoning: str | None = None
    verbosity: str | None = None
    top_p: float | None = None
    n: int | None = None
    store: bool | None = None


@dataclass(frozen=True)
class ChatCompletionRequest:
    model: str
    messages: list[ChatMessage]
    options: ChatOptions = field(default_factory=ChatOptions)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_wire() for message in self.messages],
        }
        optional = {
            "reasoning_effort": self.options.reasoning,
            "verbosity": self.options.verbosity,
            "top_p": self.options.top_p,
            "n": self.options.n,
            "store": self.options.store,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0


@dataclass(frozen=True)
class Choice:
    index: int
    content: MessageContent
    finish_reason: str | None


@dataclass(frozen=True)
class ChatCompletionResponse:
    id: str
    model: str
    choices: list[Choice]
    usage: Usage

    @property
    def first_text(self) -> str | None:
        if not self.choices:
            return None
        return self.choices[0].content.as_text()

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "ChatCompletionResponse":
        choices = []
        for idx, item in enumerate(raw.get("choices") or []):
            message = item.get("message") or {}
            choices.append(
                Choice(
                    index=int(item.get("index", idx)),
                    content=content_from_wire(message.get("content")),
                    finish_reason=item.get("finish_reason"),
                )
            )
        usage_raw = raw.get("usage") or {}
        details = usage_raw.get("completion_tokens_details") or {}
        usage = Usage(
            prompt_tokens=int(usage_raw.get("prompt_tokens") or 0),
            completion_tokens=int(usage_raw.get("completion_tokens") or 0),
            total_tokens=int(usage_raw.get("total_tokens") or 0),
            reasoning_tokens=int(details.get("reasoning_tokens") or 0),
        )
        return cls(
            id=str(raw.get("id", "")),
            model=str(raw.get("model", "")),
            choices=choices,
            usage=usage,
        )


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


class CompletionClient:
    """Stateless wrapper over the OpenAI chat completions endpoint."""

    def __init__(self, client: httpx.AsyncClient, api_key: str, retries: int = 2) -> None:
        self._client = client
        self._api_key = api_key
        self._retries = retries
        self._logger = logging.getLogger("completion")

    async def complete(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatCompletionResponse:
        request = ChatCompletionRequest(model=model, messages=messages, options=options or ChatOptions())
        attempt = 0
        last_exc: Exception | None = None
        while attempt <= self._retries:
            try:
                response = await self._client.post(
                    "/chat/completions",
                    json=request.to_payload(),
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
                result = ChatCompletionResponse.from_json(response.json())
                self._logger.info(
                    "Completion received model=%s choices=%s total_tokens=%s",
                    model,
                    len(result.choices),
                    result.usage.total_tokens,
                )
                return result
            except (httpx.HTTPError, ValueError) as exc:
                last_exc = exc
                if not _is_retryable(exc) or attempt == self._retries:
                    break
                self._logger.warning("Completion failed model=%s attempt=%s: %s", model, attempt + 1, exc)
                await asyncio.sleep(0.5 * (attempt + 1))
                attempt += 1
        raise CompletionCallFailed(_describe(last_exc)) from last_exc

    async def complete_text(
        self,
        model: str,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> str:
        response = await self.complete(model, messages, options)
        text = response.first_text
        if text is None:
            raise CompletionCallFailed("No choices in response")
        return text


def _describe(exc: Exception | None) -> str:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return f"non-OK HTTP status: {exc.response.status_code}\nResponse body: {exc.response.text}"
    if exc is None:
        return "completion request failed"
    return f"error sending HTTP request: {exc}"
