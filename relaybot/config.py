from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_SEARCH_TRIGGERS = [
    "загугли",
    "погугли",
    "гугли",
    "найди",
    "поищи",
    "google",
    "search",
]

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly member of a group chat. Answer briefly and to the point. "
    "Current date: %current_date%."
)


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    allowed_chat_id: int
    test_chat_id: int | None
    admin_chat_id: int
    database_path: str
    openai_api_key: str
    openai_base_url: str
    llm_timeout_sec: float
    llm_retries: int
    model_for_chatting: str
    model_for_gpt_command: str
    model_for_web_search: str
    model_for_routing: str | None
    search_triggers: list[str]
    history_limit: int
    search_history_limit: int
    max_image_bytes: int
    max_video_bytes: int
    download_timeout_sec: float
    frame_timeout_sec: float
    media_group_ttl_sec: float
    summary_threshold_chars: int
    summary_max_chars: int
    formatting_mode: str
    expandable_threshold_chars: int
    web_enabled: bool
    web_host: str
    web_port: int
    web_username: str
    web_password: str
    worker_count: int
    update_queue_size: int
    prompt_cache_ttl_sec: float
    default_system_prompt: str

    @property
    def allowed_chat_ids(self) -> set[int]:
        ids = {self.allowed_chat_id}
        if self.test_chat_id is not None:
            ids.add(self.test_chat_id)
        return ids


def load_dotenv(path: str | Path) -> dict[str, str]:
    env_path = Path(path)
    if not env_path.exists():
        return {}
    result: dict[str, str] = {}
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and ((value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'"))):
            value = value[1:-1]
        result[key] = value
    return result


def _required(value: object, name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"{name} is not set")
    return text


def _optional_int(value: object) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    return int(value)


def load_config(path: str | Path, env_values: Mapping[str, str] | None = None) -> AppConfig:
    config_path = Path(path)
    raw = json.loads(config_path.read_text(encoding="utf-8")) if config_path.exists() else {}
    env = dict(env_values or {})
    chats_raw = raw.get("chats", {}) or {}
    openai_raw = raw.get("openai", {}) or {}
    models_raw = raw.get("models", {}) or {}
    routing_raw = raw.get("routing", {}) or {}
    history_raw = raw.get("history", {}) or {}
    media_raw = raw.get("media", {}) or {}
    summary_raw = raw.get("summary", {}) or {}
    formatting_raw = raw.get("formatting", {}) or {}
    web_raw = raw.get("web", {}) or {}
    workers_raw = raw.get("workers", {}) or {}
    prompts_raw = raw.get("prompts", {}) or {}

    triggers_raw = routing_raw.get("search_triggers", DEFAULT_SEARCH_TRIGGERS)
    if not isinstance(triggers_raw, list):
        triggers_raw = []
    search_triggers = [str(item).strip() for item in triggers_raw if str(item).strip()]

    model_for_chatting = _required(models_raw.get("chatting"), "models.chatting")
    routing_model = str(models_raw.get("routing") or "").strip() or None

    return AppConfig(
        telegram_bot_token=_required(env.get("TELEGRAM_BOT_TOKEN") or raw.get("telegram_bot_token"), "TELEGRAM_BOT_TOKEN"),
        allowed_chat_id=int(_required(chats_raw.get("allowed_chat_id"), "chats.allowed_chat_id")),
        test_chat_id=_optional_int(chats_raw.get("test_chat_id")),
        admin_chat_id=int(_required(chats_raw.get("admin_chat_id"), "chats.admin_chat_id")),
        database_path=raw.get("database_path", "./bot.sqlite3"),
        openai_api_key=_required(env.get("OPENAI_API_KEY") or openai_raw.get("api_key"), "OPENAI_API_KEY"),
        openai_base_url=str(openai_raw.get("base_url", "https://api.openai.com/v1")),
        llm_timeout_sec=float(openai_raw.get("timeout_sec", 180)),
        llm_retries=int(openai_raw.get("retries", 2)),
        model_for_chatting=model_for_chatting,
        model_for_gpt_command=str(models_raw.get("gpt_command") or model_for_chatting),
        model_for_web_search=str(models_raw.get("web_search") or model_for_chatting),
        model_for_routing=routing_model,
        search_triggers=search_triggers,
        history_limit=int(history_raw.get("limit", 300)),
        search_history_limit=int(history_raw.get("search_limit", 10)),
        max_image_bytes=int(media_raw.get("max_image_bytes", 2 * 1024 * 1024)),
        max_video_bytes=int(media_raw.get("max_video_bytes", 10 * 1024 * 1024)),
        download_timeout_sec=float(media_raw.get("download_timeout_sec", 30)),
        frame_timeout_sec=float(media_raw.get("frame_timeout_sec", 20)),
        media_group_ttl_sec=float(media_raw.get("group_ttl_sec", 3600)),
        summary_threshold_chars=int(summary_raw.get("threshold_chars", 300)),
        summary_max_chars=int(summary_raw.get("max_chars", 300)),
        formatting_mode=str(formatting_raw.get("mode", "html")).lower(),
        expandable_threshold_chars=int(formatting_raw.get("expandable_threshold_chars", 300)),
        web_enabled=bool(web_raw.get("enabled", True)),
        web_host=str(web_raw.get("host", "0.0.0.0")),
        web_port=int(env.get("WEB_SERVER_PORT") or web_raw.get("port", 8080)),
        web_username=str(env.get("BASIC_AUTH_USERNAME") or web_raw.get("username", "")),
        web_password=str(env.get("BASIC_AUTH_PASSWORD") or web_raw.get("password", "")),
        worker_count=int(workers_raw.get("count", 5)),
        update_queue_size=int(workers_raw.get("queue_size", 100)),
        prompt_cache_ttl_sec=float(prompts_raw.get("cache_ttl_sec", 15)),
        default_system_prompt=str(prompts_raw.get("default", DEFAULT_SYSTEM_PROMPT)),
    )
