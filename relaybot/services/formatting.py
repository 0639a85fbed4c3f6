from __future__ import annotations

import html
import logging
import re
from typing import Any

from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger("bot")

FORMATTING_HTML = "html"
FORMATTING_MARKDOWN_V2 = "markdown_v2"
FORMATTING_PLAIN = "plain"

_HR_RE = re.compile(r"^-{3,}$")
_LINK_RE = re.compile(r"\[(.+?)\]\((https?://[^\s)]+)\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")

# Every character Telegram reserves in MarkdownV2 outside entities
_MARKDOWN_V2_RESERVED = set("_*[]()~`>#+-=|{}.!\\")
_MARKDOWN_V2_CODE_RESERVED = set("`\\")


def _format_html_line(line: str) -> str:
    trimmed = line.strip()
    if _HR_RE.match(trimmed):
        return "<b>" + "&mdash;" * len(trimmed) + "</b>"
    if trimmed.startswith("#"):
        return "<b>" + html.escape(trimmed.lstrip("#").strip()) + "</b>"
    # Escape first; captured groups are already safe when substituted
    escaped = html.escape(line)
    escaped = _LINK_RE.sub(lambda m: f'<a href="{m.group(2)}">{m.group(1)}</a>', escaped)
    escaped = _BOLD_RE.sub(lambda m: f"<b>{m.group(1)}</b>", escaped)
    escaped = _ITALIC_RE.sub(lambda m: f"<i>{m.group(1)}</i>", escaped)
    return escaped


def format_html(text: str) -> str:
    """Render model markdown as Telegram HTML: code fences, rules, headers, links, bold, italic."""
    lines = text.split("\n")
    out: list[str] = []
    in_code = False
    for idx, line in enumerate(lines):
        last = idx == len(lines) - 1
        if line.strip().startswith("```"):
            out.append("</code></pre>" if in_code else "<pre><code>")
            in_code = not in_code
        elif in_code:
            out.append(html.escape(line))
        else:
            out.append(_format_html_line(line))
        if not last:
            out.append("\n")
    if in_code:
        out.append("</code></pre>")
    return "".join(out)


def _escape_markdown_v2(line: str, reserved: set[str] = _MARKDOWN_V2_RESERVED) -> str:
    return "".join(f"\\{char}" if char in reserved else char for char in line)


def format_markdown_v2(text: str) -> str:
    # MarkdownV2 has no headings; they become bold. Everything else is literal text.
    lines = text.split("\n")
    out: list[str] = []
    in_code = False
    for idx, line in enumerate(lines):
        trimmed = line.strip()
        if trimmed.startswith("```"):
            out.append("```" if in_code else "```" + trimmed[3:])
            in_code = not in_code
        elif in_code:
            out.append(_escape_markdown_v2(line, _MARKDOWN_V2_CODE_RESERVED))
        elif _HR_RE.match(trimmed):
            out.append("\\-" * len(trimmed))
        elif trimmed.startswith("#") and trimmed.lstrip("#").strip():
            out.append("*" + _escape_markdown_v2(trimmed.lstrip("#").strip()) + "*")
        else:
            out.append(_escape_markdown_v2(line))
        if idx < len(lines) - 1:
            out.append("\n")
    if in_code:
        out.append("\n```")
    return "".join(out)


def render_reply(text: str, formatting_mode: str, expandable_threshold: int = 300) -> tuple[str, str | None]:
    mode = formatting_mode.lower()
    if mode == FORMATTING_PLAIN:
        return text, None
    if mode == FORMATTING_MARKDOWN_V2:
        return format_markdown_v2(text), ParseMode.MARKDOWN_V2
    formatted = format_html(text)
    if len(text) > expandable_threshold:
        formatted = f"<blockquote expandable>{formatted}</blockquote>"
    return formatted, ParseMode.HTML


def is_parse_error(exc: Exception) -> bool:
    return isinstance(exc, BadRequest) and "can't parse entities" in str(exc).lower()


async def send_formatted_with_fallback(
    bot: Any,
    chat_id: int,
    text: str,
    reply_to_message_id: int | None = None,
    formatting_mode: str = FORMATTING_HTML,
    expandable_threshold: int = 300,
) -> Any | None:
    """Send rich text, retrying once as plain text if Telegram cannot parse the markup.

    Returns the sent message, or None after an error notice was posted.
    """
    rendered, parse_mode = render_reply(text, formatting_mode, expandable_threshold)
    try:
        return await bot.send_message(
            chat_id=chat_id,
            text=rendered,
            parse_mode=parse_mode,
            reply_to_message_id=reply_to_message_id,
        )
    except TelegramError as exc:
        error: TelegramError = exc
        if parse_mode is not None and is_parse_error(exc):
            logger.warning("Markup parse error chat_id=%s: %s, retrying without parse_mode", chat_id, exc)
            try:
                return await bot.send_message(
                    chat_id=chat_id,
                    text=text,
                    reply_to_message_id=reply_to_message_id,
                )
            except TelegramError as retry_exc:
                error = retry_exc

    logger.error("Error sending message chat_id=%s: %s", chat_id, error)
    try:
        await bot.send_message(chat_id=chat_id, text=f"Error sending message: {error}")
    except TelegramError:
        logger.exception("Failed to send error notice chat_id=%s", chat_id)
    return None
