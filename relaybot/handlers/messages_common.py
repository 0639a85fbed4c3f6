from __future__ import annotations

from telegram.ext import ContextTypes

from relaybot.runtime import RuntimeContext


def _runtime(context: ContextTypes.DEFAULT_TYPE) -> RuntimeContext:
    return context.application.bot_data["runtime"]
