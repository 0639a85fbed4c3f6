from __future__ import annotations

import logging

from telegram import Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import ApplicationHandlerStop, ContextTypes

from relaybot.handlers.messages_common import _runtime

logger = logging.getLogger("bot")


async def handle_access_check(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Stops processing for chats outside the allow list; alerts the admin and leaves groups."""
    if not update.message or not update.effective_chat:
        return
    chat = update.effective_chat
    config = _runtime(context).config
    if chat.id in config.allowed_chat_ids:
        return

    try:
        await context.bot.send_message(
            chat_id=config.admin_chat_id,
            text=f"Unauthorized access attempt from chat ID: {chat.id}",
        )
    except TelegramError:
        logger.exception("Failed to alert admin chat about chat_id=%s", chat.id)

    if chat.type == ChatType.PRIVATE:
        logger.info("Private message from not allowed chat_id=%s, ignoring", chat.id)
        raise ApplicationHandlerStop

    logger.warning("Message from not allowed chat_id=%s text=%r", chat.id, update.message.text)
    try:
        await context.bot.leave_chat(chat_id=chat.id)
    except TelegramError:
        logger.exception("Failed to leave unauthorized chat_id=%s", chat.id)
    else:
        logger.info("Left unauthorized chat_id=%s", chat.id)
    raise ApplicationHandlerStop
