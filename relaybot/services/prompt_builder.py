from __future__ import annotations

from typing import Any

from relaybot.router import is_bot_mentioned, is_reply_to_bot


def message_text(message: Any) -> str:
    return message.text or message.caption or ""


def build_turn_text(message: Any, bot_id: int, bot_username: str) -> str:
    """User text for the model, prefixed with which message the turn replies to."""
    text = message_text(message)
    reply = message.reply_to_message
    if reply is None:
        return text

    if is_reply_to_bot(message, bot_id):
        if not text:
            return f"this is reply to your msg{reply.message_id}:"
        return f"this is reply to your msg{reply.message_id}:\n {text}"
    if is_bot_mentioned(text, bot_username):
        return f"You were mentioned to reply to the message msg{reply.message_id} by this message:{text}"
    return text


def reply_context(message: Any) -> str:
    reply = message.reply_to_message
    if reply is None:
        return ""
    return reply.text or ""
