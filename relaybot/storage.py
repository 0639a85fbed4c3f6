from __future__ import annotations

import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from relaybot.errors import PromptNotFound
from relaybot.models import StoredMessage

SYSTEM_PROMPT_TYPE = 1


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PromptCache:
    """Holds the latest prompt text per prompt type for a short TTL to absorb bursty reads."""

    def __init__(self, ttl_seconds: float = 15.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[int, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, prompt_type: int = SYSTEM_PROMPT_TYPE) -> str | None:
        with self._lock:
            entry = self._entries.get(prompt_type)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                return None
            return value

    def put(self, value: str, prompt_type: int = SYSTEM_PROMPT_TYPE) -> None:
        with self._lock:
            self._entries[prompt_type] = (value, self._clock())

    def invalidate(self, prompt_type: int | None = None) -> None:
        with self._lock:
            if prompt_type is None:
                self._entries.clear()
            else:
                self._entries.pop(prompt_type, None)


class Storage:
    def __init__(self, db_path: str | Path, prompt_cache: PromptCache | None = None) -> None:
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._prompt_cache = prompt_cache or PromptCache()
        self._logger = logging.getLogger("storage")
        self._init_schema()

    def _ensure_column(self, table: str, column: str, ddl: str) -> None:
        cur = self._conn.cursor()
        cur.execute(f"PRAGMA table_info({table})")
        cols = {row["name"] for row in cur.fetchall()}
        if column not in cols:
            cur.execute(f"ALTER TABLE {table} ADD COLUMN {ddl}")
            self._conn.commit()

    def _init_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    chat_id INTEGER NOT NULL,
                    message_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    date TEXT NOT NULL,
                    PRIMARY KEY (chat_id, message_id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS prompts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type INTEGER NOT NULL,
                    prompt TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_messages_chat_date ON messages(chat_id, date)")
            self._conn.commit()

            # Databases created before history compaction lack the digest column
            self._ensure_column("messages", "aggregated_text", "aggregated_text TEXT")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def save_message(self, message: StoredMessage) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                INSERT OR IGNORE INTO messages (chat_id, message_id, user_id, text, aggregated_text, date)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.chat_id,
                    message.message_id,
                    message.user_id,
                    message.text,
                    message.aggregated_text,
                    message.date.astimezone(timezone.utc).isoformat(),
                ),
            )
            self._conn.commit()

    def get_last_messages(self, chat_id: int, limit: int) -> list[StoredMessage]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                SELECT * FROM (
                    SELECT message_id, chat_id, user_id, text, aggregated_text, date
                    FROM messages
                    WHERE chat_id = ?
                    ORDER BY date DESC
                    LIMIT ?
                ) ORDER BY message_id ASC
                """,
                (chat_id, limit),
            )
            rows = cur.fetchall()
        return [
            StoredMessage(
                message_id=row["message_id"],
                chat_id=row["chat_id"],
                user_id=row["user_id"],
                text=row["text"],
                aggregated_text=row["aggregated_text"],
                date=_parse_date(row["date"]),
            )
            for row in rows
        ]

    def get_system_prompt(self, use_cache: bool = True, prompt_type: int = SYSTEM_PROMPT_TYPE) -> str:
        if use_cache:
            cached = self._prompt_cache.get(prompt_type)
            if cached is not None:
                return cached
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT prompt FROM prompts WHERE type = ? ORDER BY id DESC LIMIT 1",
                (prompt_type,),
            )
            row = cur.fetchone()
        if not row:
            raise PromptNotFound(prompt_type)
        prompt = row["prompt"]
        self._prompt_cache.put(prompt, prompt_type)
        return prompt

    def insert_prompt(self, prompt: str, prompt_type: int = SYSTEM_PROMPT_TYPE) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "INSERT INTO prompts (type, prompt, created_at) VALUES (?, ?, ?)",
                (prompt_type, prompt, _utc_now()),
            )
            self._conn.commit()
        self._prompt_cache.invalidate(prompt_type)
        self._logger.info("Prompt updated type=%s chars=%s", prompt_type, len(prompt))

    def seed_prompt(self, default_prompt: str, prompt_type: int = SYSTEM_PROMPT_TYPE) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("SELECT COUNT(*) AS total FROM prompts WHERE type = ?", (prompt_type,))
            if cur.fetchone()["total"]:
                return
        self.insert_prompt(default_prompt, prompt_type)
