from __future__ import annotations

import asyncio
from typing import Any

import httpx
from telegram.ext import Application, ApplicationBuilder, CommandHandler, MessageHandler, filters

from relaybot.completion import CompletionClient
from relaybot.config import AppConfig
from relaybot.handlers.access import handle_access_check
from relaybot.handlers.commands import handle_getinfo, handle_gpt, handle_help, handle_unknown_command
from relaybot.handlers.messages import handle_message
from relaybot.media import FfmpegFrameExtractor, MediaGroupCache, MediaMaterializer
from relaybot.router import WebSearchRouter
from relaybot.runtime import RuntimeContext
from relaybot.services.context_builder import ConversationContextBuilder, UsernameCache
from relaybot.services.history import MessageRecorder
from relaybot.services.summarizer import ReplyAggregator
from relaybot.storage import PromptCache, Storage
from relaybot.web_server import PromptFormConfig, PromptFormServer
from relaybot.workers import HandlerFn, UpdateWorkerPool


def register_handlers(
    application: Application,
    workers: UpdateWorkerPool,
    *,
    access_handler: HandlerFn = handle_access_check,
    message_handler: HandlerFn = handle_message,
) -> None:
    incoming = filters.UpdateType.MESSAGE
    application.add_handler(MessageHandler(incoming, access_handler), group=-1)
    application.add_handler(CommandHandler("help", workers.wrap(handle_help), filters=incoming))
    application.add_handler(CommandHandler("getinfo", workers.wrap(handle_getinfo), filters=incoming))
    application.add_handler(CommandHandler("gpt", workers.wrap(handle_gpt), filters=incoming))
    application.add_handler(MessageHandler(incoming & filters.COMMAND, workers.wrap(handle_unknown_command)))
    application.add_handler(MessageHandler(incoming & ~filters.COMMAND, workers.wrap(message_handler)))


def build_application(config: AppConfig) -> Application:
    # Updates are dispatched sequentially; UpdateWorkerPool runs the handlers.
    # A full pool queue stalls dispatch, then this queue, then the updater.
    return (
        ApplicationBuilder()
        .token(config.telegram_bot_token)
        .update_queue(asyncio.Queue(maxsize=config.update_queue_size))
        .concurrent_updates(False)
        .build()
    )


def build_runtime(config: AppConfig, bot: Any) -> RuntimeContext:
    """Wire the pipeline around an initialized bot (its id and username must be known)."""
    storage = Storage(config.database_path, PromptCache(config.prompt_cache_ttl_sec))
    storage.seed_prompt(config.default_system_prompt)

    llm_client = httpx.AsyncClient(
        base_url=config.openai_base_url.rstrip("/"),
        timeout=config.llm_timeout_sec,
    )
    download_client = httpx.AsyncClient(timeout=config.download_timeout_sec, follow_redirects=True)

    completion = CompletionClient(llm_client, config.openai_api_key, retries=config.llm_retries)
    router = WebSearchRouter(
        completion,
        chatting_model=config.model_for_chatting,
        web_search_model=config.model_for_web_search,
        routing_model=config.model_for_routing,
        triggers=config.search_triggers,
        history_limit=config.history_limit,
        search_history_limit=config.search_history_limit,
    )
    materializer = MediaMaterializer(
        bot,
        download_client,
        FfmpegFrameExtractor(timeout_sec=config.frame_timeout_sec),
        max_image_bytes=config.max_image_bytes,
        max_video_bytes=config.max_video_bytes,
    )
    usernames = UsernameCache(bot)
    aggregator = ReplyAggregator(completion, config.model_for_chatting, max_chars=config.summary_max_chars)
    recorder = MessageRecorder(storage, aggregator, bot.id, summary_threshold_chars=config.summary_threshold_chars)
    web_server = PromptFormServer(
        storage,
        PromptFormConfig(
            host=config.web_host,
            port=config.web_port,
            enabled=config.web_enabled,
            username=config.web_username,
            password=config.web_password,
        ),
    )
    return RuntimeContext(
        config=config,
        storage=storage,
        completion=completion,
        router=router,
        media_groups=MediaGroupCache(ttl_seconds=config.media_group_ttl_sec),
        materializer=materializer,
        usernames=usernames,
        context_builder=ConversationContextBuilder(storage, usernames),
        recorder=recorder,
        workers=UpdateWorkerPool(config.worker_count, config.update_queue_size),
        web_server=web_server,
        llm_client=llm_client,
        download_client=download_client,
    )


def attach_runtime(application: Application, runtime: RuntimeContext) -> None:
    application.bot_data.update(runtime.to_bot_data())
    register_handlers(application, runtime.workers)
