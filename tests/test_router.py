"""Tests for web-search routing and mention detection."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import BOT_ID, make_bot_message, make_message

from relaybot.config import DEFAULT_SEARCH_TRIGGERS
from relaybot.errors import CompletionCallFailed
from relaybot.router import (
    WebSearchRouter,
    contains_trigger,
    is_bot_mentioned,
    is_reply_to_bot,
    parse_routing_answer,
)


def make_router(routing_model=None, answer="NO_SEARCH"):
    completion = MagicMock()
    if isinstance(answer, Exception):
        completion.complete_text = AsyncMock(side_effect=answer)
    else:
        completion.complete_text = AsyncMock(return_value=answer)
    router = WebSearchRouter(
        completion,
        chatting_model="chat-model",
        web_search_model="search-model",
        routing_model=routing_model,
        triggers=DEFAULT_SEARCH_TRIGGERS,
    )
    return router, completion


class TestDetection:
    def test_mention_case_insensitive(self):
        assert is_bot_mentioned("hey @Relay_Bot, hi", "relay_bot") is True

    def test_no_mention(self):
        assert is_bot_mentioned("hey relay_bot", "relay_bot") is False

    def test_reply_to_bot(self):
        assert is_reply_to_bot(make_message(text="ok", reply_to_message=make_bot_message()), BOT_ID) is True

    def test_reply_to_someone_else(self):
        assert is_reply_to_bot(make_message(text="ok", reply_to_message=make_message(1, "x")), BOT_ID) is False

    def test_triggers(self):
        assert contains_trigger("Загугли погоду", DEFAULT_SEARCH_TRIGGERS) is True
        assert contains_trigger("see https://example.com/page", []) is True
        assert contains_trigger("hello", DEFAULT_SEARCH_TRIGGERS) is False


class TestParseRoutingAnswer:
    def test_search(self):
        assert parse_routing_answer("SEARCH") is True

    def test_no_search_not_confused_with_search(self):
        assert parse_routing_answer("no_search.") is False

    def test_only_first_token(self):
        assert parse_routing_answer("NO_SEARCH because SEARCH is not needed") is False

    def test_garbage(self):
        assert parse_routing_answer("maybe") is None
        assert parse_routing_answer("   ") is None


class TestWebSearchRouter:
    @pytest.mark.asyncio
    async def test_trigger_skips_model(self):
        router, completion = make_router(routing_model="router-model")
        assert await router.should_use_web_search("search for cats") is True
        completion.complete_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_routing_model(self):
        router, completion = make_router()
        assert await router.should_use_web_search("hello") is False
        completion.complete_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_url_wins_regardless_of_routing_model(self):
        for routing_model in (None, "router-model"):
            router, completion = make_router(routing_model=routing_model)
            assert await router.should_use_web_search("visit http://example.com") is True
            completion.complete_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_in_reply_text(self):
        router, _ = make_router()
        assert await router.should_use_web_search("what about this?", "https://example.com") is True

    @pytest.mark.asyncio
    async def test_model_says_search(self):
        router, completion = make_router(routing_model="router-model", answer="SEARCH")
        assert await router.should_use_web_search("what is the weather today") is True
        assert completion.complete_text.await_args.args[0] == "router-model"

    @pytest.mark.asyncio
    async def test_model_failure_defaults_to_no_search(self):
        router, _ = make_router(routing_model="router-model", answer=CompletionCallFailed("timeout"))
        assert await router.should_use_web_search("tell me about rust") is False

    @pytest.mark.asyncio
    async def test_unrecognized_answer_defaults_to_no_search(self):
        router, _ = make_router(routing_model="router-model", answer="perhaps")
        assert await router.should_use_web_search("tell me about rust") is False

    @pytest.mark.asyncio
    async def test_search_decision(self):
        router, _ = make_router()
        decision = await router.decide("google cats", "", has_media=False)
        assert decision.model == "search-model"
        assert decision.reasoning is None
        assert decision.verbosity is None
        assert decision.history_limit == 10

    @pytest.mark.asyncio
    async def test_search_with_media_keeps_chatting_model(self):
        router, _ = make_router()
        decision = await router.decide("google this picture", "", has_media=True)
        assert decision.use_web_search is True
        assert decision.model == "chat-model"

    @pytest.mark.asyncio
    async def test_plain_decision(self):
        router, _ = make_router()
        decision = await router.decide("hello", "", has_media=False)
        assert decision.model == "chat-model"
        assert (decision.reasoning, decision.verbosity) == ("low", "low")
        assert decision.history_limit == 300
