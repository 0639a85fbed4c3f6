from __future__ import annotations

import logging

from relaybot.completion import CompletionClient
from relaybot.errors import CompletionCallFailed, EmptySummary
from relaybot.models import ChatMessage, TextContent

SUMMARY_SYSTEM_PROMPT = (
    "You are a summarizer. Create a concise summary of the assistant's reply in 150-300 characters. "
    "Keep key facts, names, and numbers. Return plain text without markdown, lists, or introductions."
)


class ReplyAggregator:
    """Compacts long bot replies into a short digest for future chat history."""

    def __init__(self, completion: CompletionClient, model: str, max_chars: int = 300) -> None:
        self._completion = completion
        self._model = model
        self._max_chars = max_chars
        self._logger = logging.getLogger("summarizer")

    async def aggregate_bot_message(self, text: str) -> str:
        messages = [
            ChatMessage("system", TextContent(SUMMARY_SYSTEM_PROMPT)),
            ChatMessage("user", TextContent(f"Summarize this reply:\n{text}")),
        ]
        summary = (await self._completion.complete_text(self._model, messages)).strip()
        if not summary:
            raise EmptySummary()
        # str slicing counts code points, so multi-byte text is never split
        return summary[: self._max_chars]

    async def summarize_or_none(self, text: str, message_id: int) -> str | None:
        try:
            return await self.aggregate_bot_message(text)
        except (CompletionCallFailed, EmptySummary) as exc:
            self._logger.warning("Error aggregating bot message %s: %s", message_id, exc)
            return None
