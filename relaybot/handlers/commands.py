from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import ContextTypes

from relaybot.completion import ChatOptions
from relaybot.errors import CompletionCallFailed
from relaybot.handlers.messages_common import _runtime
from relaybot.models import ChatMessage, TextContent
from relaybot.services.formatting import FORMATTING_PLAIN, send_formatted_with_fallback

logger = logging.getLogger("bot")

GPT_COMMAND_SYSTEM_PROMPT = "You are a helpful assistant."


def _command_arguments(text: str | None) -> str:
    parts = (text or "").split(maxsplit=1)
    if len(parts) < 2:
        return ""
    return parts[1].strip()


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message:
        return
    help_text = (
        "Available commands:\n"
        "/help - List available commands\n"
        "/getinfo - Get your account information\n"
        "/gpt - Forward message to gpt\n"
        f"Tag me @{context.bot.username} if you want to chat with me\n"
        "Если использовать \"загугли\", \"поищи\" или ссылку в сообщении, то будет веб поиск "
        "(очень долго думает секунд 30-60)"
    )
    await send_formatted_with_fallback(context.bot, update.message.chat.id, help_text, formatting_mode=FORMATTING_PLAIN)


async def handle_getinfo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.message.from_user:
        return
    user = update.message.from_user
    info = "Your Account Information:\n" f"First Name: {user.first_name}\n"
    if user.last_name:
        info += f"Last Name: {user.last_name}\n"
    if user.username:
        info += f"Username: @{user.username}\n"
    info += f"User ID: {user.id}"
    await send_formatted_with_fallback(context.bot, update.message.chat.id, info, formatting_mode=FORMATTING_PLAIN)


async def handle_gpt(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.message
    if not message or not message.from_user:
        return
    runtime = _runtime(context)
    args = _command_arguments(message.text)
    if not args:
        await send_formatted_with_fallback(
            context.bot,
            message.chat.id,
            "Please provide a message for GPT.",
            formatting_mode=FORMATTING_PLAIN,
        )
        return
    await runtime.recorder.save(message, args)

    messages = [
        ChatMessage("system", TextContent(GPT_COMMAND_SYSTEM_PROMPT)),
        ChatMessage("user", TextContent(args)),
    ]
    try:
        reply_text = await runtime.completion.complete_text(
            runtime.config.model_for_gpt_command,
            messages,
            ChatOptions(reasoning="high", verbosity="medium"),
        )
    except CompletionCallFailed as exc:
        logger.error("Error getting chat completion for /gpt chat_id=%s: %s", message.chat.id, exc)
        await send_formatted_with_fallback(
            context.bot,
            message.chat.id,
            f"Error getting chat completion: {exc}",
            reply_to_message_id=message.message_id,
            formatting_mode=FORMATTING_PLAIN,
        )
        return

    sent = await send_formatted_with_fallback(
        context.bot,
        message.chat.id,
        reply_text,
        reply_to_message_id=message.message_id,
        formatting_mode=runtime.config.formatting_mode,
        expandable_threshold=runtime.config.expandable_threshold_chars,
    )
    if sent is not None:
        await runtime.recorder.save(sent, reply_text)


async def handle_unknown_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message:
        return
    await send_formatted_with_fallback(
        context.bot,
        update.message.chat.id,
        "Sorry, I don't recognize that command. Type /help to see available commands.",
        formatting_mode=FORMATTING_PLAIN,
    )
