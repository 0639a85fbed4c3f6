"""Shared fakes for Telegram objects and the wired runtime."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from relaybot.config import AppConfig, DEFAULT_SEARCH_TRIGGERS, DEFAULT_SYSTEM_PROMPT
from relaybot.storage import PromptCache, Storage

BOT_ID = 999
BOT_USERNAME = "relay_bot"
ALLOWED_CHAT_ID = -100500
ADMIN_CHAT_ID = 42


def make_user(user_id: int = 1, username: str | None = "alice", first_name: str = "Alice", last_name: str | None = None):
    return SimpleNamespace(id=user_id, username=username, first_name=first_name, last_name=last_name)


def make_message(
    message_id: int = 10,
    text: str | None = None,
    *,
    chat_id: int = ALLOWED_CHAT_ID,
    chat_type: str = "supergroup",
    user=None,
    caption: str | None = None,
    photo=None,
    sticker=None,
    animation=None,
    document=None,
    media_group_id: str | None = None,
    reply_to_message=None,
    date: datetime | None = None,
):
    return SimpleNamespace(
        message_id=message_id,
        text=text,
        caption=caption,
        chat=SimpleNamespace(id=chat_id, type=chat_type),
        from_user=user if user is not None else make_user(),
        photo=photo or [],
        sticker=sticker,
        animation=animation,
        document=document,
        media_group_id=media_group_id,
        reply_to_message=reply_to_message,
        date=date or datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc),
    )


def make_photo(file_id: str = "photo-large"):
    return [SimpleNamespace(file_id="photo-small"), SimpleNamespace(file_id=file_id)]


def make_gif(frame_count: int) -> bytes:
    frames = [Image.new("RGB", (8, 8), (idx * 40 % 256, 0, 0)) for idx in range(frame_count)]
    buffer = io.BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:], duration=50, loop=0)
    return buffer.getvalue()


def make_bot_message(message_id: int = 5, text: str = "earlier answer"):
    return make_message(message_id, text, user=make_user(BOT_ID, BOT_USERNAME, "Relay"))


def make_config(**overrides) -> AppConfig:
    values = dict(
        telegram_bot_token="token",
        allowed_chat_id=ALLOWED_CHAT_ID,
        test_chat_id=None,
        admin_chat_id=ADMIN_CHAT_ID,
        database_path=":memory:",
        openai_api_key="sk-test",
        openai_base_url="https://api.example.com/v1",
        llm_timeout_sec=10.0,
        llm_retries=2,
        model_for_chatting="chat-model",
        model_for_gpt_command="gpt-model",
        model_for_web_search="search-model",
        model_for_routing=None,
        search_triggers=list(DEFAULT_SEARCH_TRIGGERS),
        history_limit=300,
        search_history_limit=10,
        max_image_bytes=2 * 1024 * 1024,
        max_video_bytes=10 * 1024 * 1024,
        download_timeout_sec=5.0,
        frame_timeout_sec=5.0,
        media_group_ttl_sec=3600.0,
        summary_threshold_chars=300,
        summary_max_chars=300,
        formatting_mode="html",
        expandable_threshold_chars=300,
        web_enabled=False,
        web_host="127.0.0.1",
        web_port=0,
        web_username="admin",
        web_password="secret",
        worker_count=5,
        update_queue_size=100,
        prompt_cache_ttl_sec=15.0,
        default_system_prompt=DEFAULT_SYSTEM_PROMPT,
    )
    values.update(overrides)
    return AppConfig(**values)


def make_bot():
    bot = MagicMock()
    bot.id = BOT_ID
    bot.username = BOT_USERNAME
    bot.send_message = AsyncMock(side_effect=lambda **kwargs: make_bot_message(777, kwargs.get("text", "")))
    bot.leave_chat = AsyncMock()
    bot.get_chat_member = AsyncMock(side_effect=lambda chat_id, user_id: SimpleNamespace(user=make_user(user_id, f"user{user_id}")))
    bot.get_file = AsyncMock()
    return bot


@pytest.fixture
def storage():
    store = Storage(":memory:", PromptCache(ttl_seconds=15))
    yield store
    store.close()


@pytest.fixture
def bot():
    return make_bot()


@pytest.fixture
def config():
    return make_config()
