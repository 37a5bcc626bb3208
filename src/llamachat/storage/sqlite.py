"""SQLite durable chat store.

One row per chat id, written with a true upsert, so duplicates cannot
arise and no collapse step is needed. Uses aiosqlite for async access.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError

from ..conversation.models import utcnow
from ..errors import SyncError
from .base import ChatStore
from .models import ChatSummary, DurableChatRecord, SaveResult

logger = logging.getLogger(__name__)


class SQLiteChatStore(ChatStore):
    """SQLite-backed durable chat store.

    Stores each conversation as its record JSON alongside the summary
    columns used for listing.
    """

    def __init__(self, path: str | Path = "./chats.db", clock=utcnow):
        self._db_path = Path(path)
        self._clock = clock
        self._connection: aiosqlite.Connection | None = None

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def connect(self) -> None:
        """Open the database and create the schema."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._create_schema()
        except (OSError, sqlite3.Error) as e:
            raise SyncError(f"Cannot open chat database {self._db_path}: {e}") from e

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                model TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT NOT NULL,
                saved_at TEXT NOT NULL,
                message_count INTEGER NOT NULL,
                record TEXT NOT NULL
            )
        """)
        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_chats_saved_at ON chats(saved_at DESC)
        """)
        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise SyncError("Chat database is not connected")
        return self._connection

    async def save(self, payload: dict[str, Any]) -> SaveResult:
        connection = self._require_connection()
        record = self.build_record(payload, self._clock())
        data = record.to_json_dict()

        try:
            async with connection.execute(
                "SELECT 1 FROM chats WHERE id = ?", (record.id,)
            ) as cursor:
                existed = await cursor.fetchone() is not None

            await connection.execute("""
                INSERT INTO chats
                (id, title, model, created_at, updated_at, saved_at, message_count, record)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    model = excluded.model,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at,
                    saved_at = excluded.saved_at,
                    message_count = excluded.message_count,
                    record = excluded.record
            """, (
                record.id,
                record.title,
                record.model,
                data.get("created_at"),
                data["updated_at"],
                data["saved_at"],
                record.message_count,
                json.dumps(data, ensure_ascii=False),
            ))
            await connection.commit()
        except sqlite3.Error as e:
            raise SyncError(f"Save chat error: {e}") from e

        return SaveResult(filename=None, chat_id=record.id, updated=existed)

    async def list_chats(self) -> list[ChatSummary]:
        connection = self._require_connection()
        try:
            async with connection.execute("""
                SELECT id, title, model, created_at, updated_at, saved_at, message_count
                FROM chats
                ORDER BY saved_at DESC
            """) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise SyncError(f"List chats error: {e}") from e

        return [
            ChatSummary(
                id=chat_id,
                title=title,
                model=model,
                created_at=created_at,
                updated_at=updated_at,
                saved_at=saved_at,
                message_count=message_count,
            )
            for chat_id, title, model, created_at, updated_at, saved_at, message_count in rows
        ]

    async def load(self, chat_id: str) -> DurableChatRecord | None:
        connection = self._require_connection()
        try:
            async with connection.execute(
                "SELECT record FROM chats WHERE id = ?", (chat_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise SyncError(f"Load chat error: {e}") from e

        if row is None:
            return None
        try:
            return DurableChatRecord.model_validate_json(row[0])
        except ValidationError as e:
            logger.error("Corrupt record for chat %s: %s", chat_id, e)
            return None

    async def delete(self, chat_id: str) -> int:
        connection = self._require_connection()
        try:
            cursor = await connection.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            await connection.commit()
        except sqlite3.Error as e:
            raise SyncError(f"Delete chat error: {e}") from e
        return cursor.rowcount

    async def cleanup(self) -> int:
        """Nothing to clean: the primary key rules out duplicates."""
        return 0
