from __future__ import annotations

import logging
import sqlite3
from typing import Any

from relaybot.models import StoredMessage
from relaybot.services.summarizer import ReplyAggregator
from relaybot.storage import Storage

logger = logging.getLogger("bot")


class MessageRecorder:
    """Persists chat turns; long bot replies are stored with a digest."""

    def __init__(
        self,
        storage: Storage,
        aggregator: ReplyAggregator,
        bot_id: int,
        summary_threshold_chars: int = 300,
    ) -> None:
        self._storage = storage
        self._aggregator = aggregator
        self._bot_id = bot_id
        self._threshold = summary_threshold_chars

    async def save(self, message: Any, text: str | None = None) -> StoredMessage | None:
        if text is None:
            text = message.text or ""
        author = message.from_user
        if not text:
            logger.info(
                "Skip saving, empty message message_id=%s from=%s",
                message.message_id,
                author.username if author else None,
            )
            return None
        if author is None:
            logger.info("Skip saving, message without author message_id=%s", message.message_id)
            return None

        aggregated_text = None
        if author.id == self._bot_id and len(text) > self._threshold:
            aggregated_text = await self._aggregator.summarize_or_none(text, message.message_id)

        stored = StoredMessage(
            message_id=message.message_id,
            chat_id=message.chat.id,
            user_id=author.id,
            text=text,
            aggregated_text=aggregated_text,
            date=message.date,
        )
        try:
            self._storage.save_message(stored)
        except sqlite3.Error:
            logger.exception("Error saving message chat_id=%s message_id=%s", stored.chat_id, stored.message_id)
            return None
        return stored
