from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from relaybot.media.classifier import has_supported_media


@dataclass
class MediaGroupEntry:
    messages: dict[int, Any] = field(default_factory=dict)
    updated: float = 0.0


class MediaGroupCache:
    """Collects album members by (chat_id, media_group_id) for a limited time.

    Entries are evicted only by a sweep that runs on every write; reads
    refresh the entry timestamp. Telegram message objects are immutable,
    so the stored reference is already a snapshot.
    """

    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[int, str], MediaGroupEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def record(self, message: Any) -> None:
        if message is None or not message.media_group_id or not has_supported_media(message):
            return
        key = (message.chat.id, str(message.media_group_id))
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = MediaGroupEntry()
                self._entries[key] = entry
            entry.messages[message.message_id] = message
            entry.updated = self._clock()
            self._sweep_locked(entry.updated)

    async def get_messages(self, chat_id: int, media_group_id: str) -> list[Any]:
        key = (chat_id, str(media_group_id))
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return []
            entry.updated = self._clock()
            messages = list(entry.messages.values())
        messages.sort(key=lambda item: item.message_id)
        return messages

    def _sweep_locked(self, now: float) -> None:
        cutoff = now - self._ttl
        expired = [key for key, entry in self._entries.items() if entry.updated < cutoff]
        for key in expired:
            self._entries.pop(key, None)


async def collect_media_messages(message: Any, cache: MediaGroupCache) -> list[Any]:
    """Resolve the attachment set for a turn: the message itself, else the replied-to message.

    When the carrier belongs to an album, every cached album member is returned.
    """
    if message is None:
        return []

    for candidate in (message, message.reply_to_message):
        if candidate is None or not has_supported_media(candidate):
            continue
        if candidate.media_group_id:
            group_messages = await cache.get_messages(message.chat.id, candidate.media_group_id)
            if group_messages:
                return group_messages
        return [candidate]

    return []
