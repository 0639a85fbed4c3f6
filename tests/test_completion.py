"""Tests for the chat completion client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from relaybot.completion import ChatCompletionResponse, ChatOptions, CompletionClient
from relaybot.errors import CompletionCallFailed
from relaybot.models import ChatMessage, ImageUrlSegment, MultipartContent, TextContent, build_user_content

OK_BODY = {
    "id": "cmpl-1",
    "model": "chat-model",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi there"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13},
}


def make_client(responses, seen=None):
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        status, body = queue.pop(0)
        return httpx.Response(status, json=body)

    http = httpx.AsyncClient(base_url="https://api.example.com/v1", transport=httpx.MockTransport(handler))
    return CompletionClient(http, "sk-test", retries=2)


class TestPayload:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = []
        client = make_client([(200, OK_BODY)], seen)
        messages = [
            ChatMessage("system", TextContent("be brief")),
            ChatMessage("user", build_user_content("what is this?", ["data:image/png;base64,AAA"])),
        ]
        text = await client.complete_text("chat-model", messages, ChatOptions(reasoning="low", verbosity="low"))

        assert text == "Hi there"
        request = seen[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload["reasoning_effort"] == "low"
        assert payload["verbosity"] == "low"
        assert "top_p" not in payload
        assert payload["messages"][0] == {"role": "system", "content": "be brief"}
        assert payload["messages"][1]["content"] == [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}},
        ]

    def test_user_content_without_images_is_plain_text(self):
        assert build_user_content("hello", []) == TextContent("hello")

    def test_images_only(self):
        content = build_user_content("", ["data:a", "data:b"])
        assert content == MultipartContent((ImageUrlSegment("data:a"), ImageUrlSegment("data:b")))

    def test_parses_multipart_answer(self):
        body = dict(OK_BODY, choices=[{"message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}}])
        assert ChatCompletionResponse.from_json(body).first_text == "ab"


class TestErrors:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        client = make_client([(500, {"error": "x"}), (200, OK_BODY)])
        with patch("relaybot.completion.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await client.complete_text("chat-model", [ChatMessage("user", TextContent("hi"))]) == "Hi there"
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        seen = []
        client = make_client([(400, {"error": "bad"}), (200, OK_BODY)], seen)
        with pytest.raises(CompletionCallFailed, match="non-OK HTTP status: 400"):
            await client.complete_text("chat-model", [ChatMessage("user", TextContent("hi"))])
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        seen = []
        client = make_client([(503, {})] * 3, seen)
        with patch("relaybot.completion.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(CompletionCallFailed):
                await client.complete("chat-model", [ChatMessage("user", TextContent("hi"))])
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client = make_client([(200, dict(OK_BODY, choices=[]))])
        with pytest.raises(CompletionCallFailed, match="No choices in response"):
            await client.complete_text("chat-model", [ChatMessage("user", TextContent("hi"))])
