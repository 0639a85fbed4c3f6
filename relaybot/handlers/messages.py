from __future__ import annotations

import logging
import sqlite3
from typing import Any

from telegram import Update
from telegram.ext import ContextTypes

from relaybot.completion import ChatOptions
from relaybot.errors import CompletionCallFailed, MediaError, PromptNotFound
from relaybot.handlers.messages_common import _runtime
from relaybot.media import collect_media_messages, has_supported_media
from relaybot.models import ChatMessage, TextContent, build_user_content
from relaybot.router import is_bot_mentioned, is_reply_to_bot
from relaybot.services.formatting import FORMATTING_PLAIN, send_formatted_with_fallback
from relaybot.services.prompt_builder import build_turn_text, message_text, reply_context

logger = logging.getLogger("bot")


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.message
    if not message or not message.from_user:
        return
    runtime = _runtime(context)
    await runtime.media_groups.record(message)

    bot = context.bot
    text = message_text(message)
    replies_to_bot = is_reply_to_bot(message, bot.id)
    if not text:
        if has_supported_media(message) and replies_to_bot:
            await handle_mention(message, context)
            return
        logger.info("Received message without text message_id=%s, ignoring", message.message_id)
        return

    if is_bot_mentioned(text, bot.username) or replies_to_bot:
        await handle_mention(message, context)
    else:
        await runtime.recorder.save(message, text)


async def handle_mention(message: Any, context: ContextTypes.DEFAULT_TYPE) -> None:
    runtime = _runtime(context)
    config = runtime.config
    bot = context.bot
    chat_id = message.chat.id

    await runtime.recorder.save(message, message_text(message))
    text = build_turn_text(message, bot.id, bot.username)

    media_messages = await collect_media_messages(message, runtime.media_groups)
    data_urls: list[str] = []
    if media_messages:
        try:
            data_urls = await runtime.materializer.download_as_data_urls(media_messages)
        except MediaError as exc:
            logger.warning("Error retrieving media chat_id=%s message_id=%s: %s", chat_id, message.message_id, exc)
            await send_formatted_with_fallback(
                bot,
                chat_id,
                f"Error processing image: {exc}",
                formatting_mode=FORMATTING_PLAIN,
            )
            return

    decision = await runtime.router.decide(text, reply_context(message), has_media=bool(media_messages))

    try:
        system_prompt = await runtime.context_builder.build_system_prompt(chat_id, decision.history_limit)
    except (PromptNotFound, sqlite3.Error) as exc:
        logger.exception("Error building chat context chat_id=%s", chat_id)
        await send_formatted_with_fallback(
            bot,
            chat_id,
            f"Error preparing chat context: {exc}",
            formatting_mode=FORMATTING_PLAIN,
        )
        return

    messages = [
        ChatMessage("system", TextContent(system_prompt)),
        ChatMessage("user", build_user_content(text, data_urls)),
    ]
    options = ChatOptions(reasoning=decision.reasoning, verbosity=decision.verbosity)
    completed = True
    try:
        reply_text = await runtime.completion.complete_text(decision.model, messages, options)
    except CompletionCallFailed as exc:
        logger.error("Error getting chat completion chat_id=%s model=%s: %s", chat_id, decision.model, exc)
        reply_text = f"Error getting chat completion: {exc}\n"
        completed = False

    sent = await send_formatted_with_fallback(
        bot,
        chat_id,
        reply_text,
        reply_to_message_id=message.message_id,
        formatting_mode=config.formatting_mode,
        expandable_threshold=config.expandable_threshold_chars,
    )
    if sent is not None and completed:
        await runtime.recorder.save(sent, reply_text)
