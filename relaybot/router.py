from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from relaybot.completion import CompletionClient
from relaybot.errors import CompletionCallFailed, RoutingCallFailed
from relaybot.models import ChatMessage, RoutingDecision, TextContent

logger = logging.getLogger("router")

URL_PATTERN = re.compile(r"\b(?:https?://|www\.)\S+", re.IGNORECASE)

ROUTING_SYSTEM_PROMPT = (
    "You are a router. Decide if the user text requires live web search. "
    "Return exactly one token: SEARCH (if web search is needed) or NO_SEARCH (if not). "
    "Use SEARCH for queries asking to search, containing URLs, or requesting fresh info; otherwise NO_SEARCH."
)

NO_SEARCH_REASONING = "low"
NO_SEARCH_VERBOSITY = "low"


def is_bot_mentioned(text: str, bot_username: str) -> bool:
    if not text or not bot_username:
        return False
    return f"@{bot_username.lstrip('@').lower()}" in text.lower()


def is_reply_to_bot(message: Any, bot_id: int) -> bool:
    reply = getattr(message, "reply_to_message", None)
    if reply is None or reply.from_user is None:
        return False
    return reply.from_user.id == bot_id


def contains_trigger(text: str, triggers: Iterable[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    for trigger in triggers:
        if trigger and trigger.lower() in lowered:
            return True
    return URL_PATTERN.search(text) is not None


def parse_routing_answer(answer: str) -> bool | None:
    """Read the router verdict from its first token only.

    NO_SEARCH contains SEARCH as a substring, so the prefix checks run on the
    first whitespace-delimited token, NO_SEARCH first.
    """
    fields = answer.strip().upper().split()
    if not fields:
        return None
    decision = fields[0].strip(" .!,")
    if decision.startswith("NO_SEARCH"):
        return False
    if decision.startswith("SEARCH"):
        return True
    return None


class WebSearchRouter:
    def __init__(
        self,
        completion: CompletionClient,
        *,
        chatting_model: str,
        web_search_model: str,
        routing_model: str | None,
        triggers: Iterable[str],
        history_limit: int = 300,
        search_history_limit: int = 10,
    ) -> None:
        self._completion = completion
        self._chatting_model = chatting_model
        self._web_search_model = web_search_model
        self._routing_model = routing_model
        self._triggers = [trigger for trigger in triggers if trigger]
        self._history_limit = history_limit
        self._search_history_limit = search_history_limit

    async def classify(self, combined: str) -> bool:
        """Ask the routing model; raises RoutingCallFailed when it cannot answer."""
        if not self._routing_model:
            raise RoutingCallFailed("routing model is not configured")
        messages = [
            ChatMessage("system", TextContent(ROUTING_SYSTEM_PROMPT)),
            ChatMessage("user", TextContent(f"Message to classify:\n{combined}")),
        ]
        try:
            answer = await self._completion.complete_text(self._routing_model, messages)
        except CompletionCallFailed as exc:
            raise RoutingCallFailed(str(exc)) from exc
        verdict = parse_routing_answer(answer)
        logger.info("Routing verdict answer=%r search=%s", answer[:40], verdict)
        if verdict is None:
            raise RoutingCallFailed(f"unrecognized routing answer: {answer[:40]!r}")
        return verdict

    async def should_use_web_search(self, user_text: str, reply_text: str = "") -> bool:
        combined = user_text.strip()
        if reply_text:
            combined = f"{combined}\n{reply_text}".strip()

        if contains_trigger(combined, self._triggers):
            return True
        if not combined or not self._routing_model:
            return False
        return await self._classify_or_no_search(combined)

    async def _classify_or_no_search(self, combined: str) -> bool:
        try:
            return await self.classify(combined)
        except RoutingCallFailed as exc:
            logger.warning("Routing model error, defaulting to no search: %s", exc)
            return False

    def decision_for(self, use_web_search: bool, has_media: bool) -> RoutingDecision:
        model = self._chatting_model
        if use_web_search and not has_media:
            model = self._web_search_model
        if use_web_search:
            return RoutingDecision(
                use_web_search=True,
                model=model,
                reasoning=None,
                verbosity=None,
                history_limit=self._search_history_limit,
            )
        return RoutingDecision(
            use_web_search=False,
            model=model,
            reasoning=NO_SEARCH_REASONING,
            verbosity=NO_SEARCH_VERBOSITY,
            history_limit=self._history_limit,
        )

    async def decide(self, user_text: str, reply_text: str, has_media: bool) -> RoutingDecision:
        use_web_search = await self.should_use_web_search(user_text, reply_text)
        decision = self.decision_for(use_web_search, has_media)
        logger.info(
            "Routing decision search=%s model=%s history_limit=%s media=%s",
            decision.use_web_search,
            decision.model,
            decision.history_limit,
            has_media,
        )
        return decision
