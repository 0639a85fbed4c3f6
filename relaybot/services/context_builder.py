from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from telegram.error import TelegramError

from relaybot.storage import Storage

logger = logging.getLogger("bot")

CURRENT_DATE_PLACEHOLDER = "%current_date%"
HISTORY_HEADING = "**Chat history:**"


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def display_name(user: Any, user_id: int) -> str:
    if user is not None:
        if user.username:
            return f"@{user.username}"
        full_name = f"{user.first_name or ''} {user.last_name or ''}".strip()
        if full_name:
            return full_name
    return f"User{user_id}"


class UsernameCache:
    """Process-wide author id -> display name memo, filled from getChatMember.

    Reads run lock-free on the event loop; misses are serialised so one
    lookup per author is made. No eviction.
    """

    def __init__(self, bot: Any) -> None:
        self._bot = bot
        self._names: dict[int, str] = {}
        self._lock = asyncio.Lock()

    async def resolve(self, chat_id: int, user_id: int) -> str:
        cached = self._names.get(user_id)
        if cached is not None:
            return cached
        async with self._lock:
            cached = self._names.get(user_id)
            if cached is not None:
                return cached
            try:
                member = await self._bot.get_chat_member(chat_id=chat_id, user_id=user_id)
                name = display_name(member.user, user_id)
            except TelegramError as exc:
                logger.warning("Error getting chat member user_id=%s: %s", user_id, exc)
                name = display_name(None, user_id)
            self._names[user_id] = name
            return name


class ConversationContextBuilder:
    def __init__(self, storage: Storage, usernames: UsernameCache) -> None:
        self._storage = storage
        self._usernames = usernames

    async def get_formatted_messages(self, chat_id: int, limit: int) -> str:
        lines = []
        for message in self._storage.get_last_messages(chat_id, limit):
            name = await self._usernames.resolve(chat_id, message.user_id)
            date = as_utc(message.date).strftime("%d.%m.%Y %H:%M:%S")
            lines.append(f"msg{message.message_id} {date} {name} : {message.context_text}\n")
        return "".join(lines)

    async def build_system_prompt(self, chat_id: int, limit: int, now: datetime | None = None) -> str:
        prompt = self._storage.get_system_prompt(use_cache=True)
        current_date = as_utc(now or datetime.now(timezone.utc)).strftime("%d-%b-%Y %H:%M:%S").upper()
        prompt = prompt.replace(CURRENT_DATE_PLACEHOLDER, current_date, 1)
        transcript = await self.get_formatted_messages(chat_id, limit)
        if transcript:
            prompt += f"\n\n{HISTORY_HEADING}\n{transcript}"
        return prompt
