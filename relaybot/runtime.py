from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from relaybot.completion import CompletionClient
from relaybot.config import AppConfig
from relaybot.media import MediaGroupCache, MediaMaterializer
from relaybot.router import WebSearchRouter
from relaybot.services.context_builder import ConversationContextBuilder, UsernameCache
from relaybot.services.history import MessageRecorder
from relaybot.storage import Storage
from relaybot.web_server import PromptFormServer
from relaybot.workers import UpdateWorkerPool


@dataclass
class RuntimeContext:
    config: AppConfig
    storage: Storage
    completion: CompletionClient
    router: WebSearchRouter
    media_groups: MediaGroupCache
    materializer: MediaMaterializer
    usernames: UsernameCache
    context_builder: ConversationContextBuilder
    recorder: MessageRecorder
    workers: UpdateWorkerPool
    web_server: PromptFormServer
    llm_client: httpx.AsyncClient
    download_client: httpx.AsyncClient

    def to_bot_data(self) -> dict[str, Any]:
        return {"runtime": self}

    async def aclose(self) -> None:
        await self.workers.stop()
        self.web_server.stop()
        await self.llm_client.aclose()
        await self.download_client.aclose()
        self.storage.close()
