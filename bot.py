from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from telegram import BotCommand, Update

from relaybot.app_factory import attach_runtime, build_application, build_runtime
from relaybot.config import load_config, load_dotenv

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger("bot")


async def main() -> None:
    env_values = load_dotenv(Path(__file__).with_name(".env"))
    config = load_config(Path(__file__).with_name("config.json"), env_values)

    application = build_application(config)
    await application.initialize()
    runtime = build_runtime(config, application.bot)
    attach_runtime(application, runtime)
    runtime.workers.start()
    runtime.web_server.start()

    try:
        await application.bot.set_my_commands(
            [
                BotCommand("help", "List available commands"),
                BotCommand("getinfo", "Get your account information"),
                BotCommand("gpt", "Forward message to gpt"),
            ]
        )
        await application.start()
        await application.updater.start_polling(allowed_updates=[Update.MESSAGE])
        logger.info(
            "Bot started as @%s workers=%s queue=%s",
            application.bot.username,
            config.worker_count,
            config.update_queue_size,
        )
        await asyncio.Event().wait()
    finally:
        if application.updater.running:
            await application.updater.stop()
        if application.running:
            await application.stop()
        await runtime.aclose()
        await application.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
