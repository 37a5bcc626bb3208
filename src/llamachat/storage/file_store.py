"""File-backed durable chat store.

One JSON file per conversation in a cache directory, named
``chat_{YYYYMMDD}_{HHMMSS}_{id}.json`` after the time it was first
written. Saves overwrite the existing file for an id in place. Duplicate
files for one id can still appear (two writers racing, copies made by
hand); reads resolve them to the file with the latest saved_at, deletes
remove all of them.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..constants import CHAT_FILE_PREFIX, CHAT_FILE_SUFFIX
from ..conversation.models import utcnow
from ..errors import SyncError
from .base import ChatStore
from .models import ChatSummary, DurableChatRecord, SaveResult

logger = logging.getLogger(__name__)


def chat_filename(chat_id: str, when: datetime) -> str:
    """Storage key for a new record, e.g. chat_20240501_123000_1714566600000.json."""
    return f"{CHAT_FILE_PREFIX}{when.strftime('%Y%m%d_%H%M%S')}_{chat_id}{CHAT_FILE_SUFFIX}"


def chat_id_from_filename(filename: str) -> str | None:
    """Recover the chat id from a storage key, or None if it is not one."""
    if not (filename.startswith(CHAT_FILE_PREFIX) and filename.endswith(CHAT_FILE_SUFFIX)):
        return None
    stem = filename[len(CHAT_FILE_PREFIX):-len(CHAT_FILE_SUFFIX)]
    parts = stem.split("_", 2)
    if len(parts) != 3 or not parts[2]:
        return None
    return parts[2]


class FileChatStore(ChatStore):
    """Durable chat store keeping one JSON file per conversation.

    Hidden design decisions:
    - File naming scheme and directory layout
    - Atomic replace on write
    - Skipping unreadable files instead of failing a listing
    """

    def __init__(self, cache_dir: str | Path, clock=utcnow):
        """
        Args:
            cache_dir: Directory holding chat_*.json files
            clock: Returns the current aware datetime (injectable for tests)
        """
        self._cache_dir = Path(cache_dir)
        self._clock = clock

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def backend_type(self) -> str:
        return "file"

    async def connect(self) -> None:
        try:
            await asyncio.to_thread(self._cache_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise SyncError(f"Cannot open chat directory {self._cache_dir}: {e}") from e

    # Synchronous helpers, run off the event loop

    def _chat_files(self) -> list[Path]:
        if not self._cache_dir.exists():
            return []
        return sorted(
            path for path in self._cache_dir.iterdir()
            if path.is_file() and chat_id_from_filename(path.name) is not None
        )

    def _files_for(self, chat_id: str) -> list[Path]:
        return [path for path in self._chat_files() if chat_id_from_filename(path.name) == chat_id]

    def _read(self, path: Path) -> DurableChatRecord | None:
        try:
            return DurableChatRecord.model_validate_json(path.read_bytes())
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Error reading %s: %s", path.name, e)
            return None

    def _newest(self, paths: list[Path]) -> tuple[Path, DurableChatRecord] | None:
        newest: tuple[Path, DurableChatRecord] | None = None
        for path in paths:
            record = self._read(path)
            if record is None:
                continue
            if newest is None or record.saved_sort_key > newest[1].saved_sort_key:
                newest = (path, record)
        return newest

    def _write(self, path: Path, record: DurableChatRecord) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(record.to_json_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, path)

    def _save_sync(self, payload: dict[str, Any]) -> SaveResult:
        now = self._clock()
        record = self.build_record(payload, now)

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        existing = self._newest(self._files_for(record.id))
        if existing is not None:
            path = existing[0]
        else:
            path = self._cache_dir / chat_filename(record.id, now)

        self._write(path, record)
        logger.debug("%s %s", "Updated" if existing else "Created", path.name)
        return SaveResult(filename=path.name, chat_id=record.id, updated=existing is not None)

    def _list_sync(self) -> list[ChatSummary]:
        chats: dict[str, ChatSummary] = {}
        for path in self._chat_files():
            record = self._read(path)
            if record is None:
                continue
            current = chats.get(record.id)
            if current is None or record.saved_sort_key > current.saved_sort_key:
                chats[record.id] = record.summary(path.name)

        return sorted(chats.values(), key=lambda chat: chat.saved_sort_key, reverse=True)

    def _load_sync(self, chat_id: str) -> DurableChatRecord | None:
        newest = self._newest(self._files_for(chat_id))
        return newest[1] if newest else None

    def _delete_sync(self, chat_id: str) -> int:
        deleted = 0
        for path in self._files_for(chat_id):
            path.unlink(missing_ok=True)
            deleted += 1
        return deleted

    def _cleanup_sync(self) -> int:
        groups: dict[str, list[tuple[Path, DurableChatRecord]]] = {}
        for path in self._chat_files():
            record = self._read(path)
            if record is not None:
                groups.setdefault(record.id, []).append((path, record))

        cleaned = 0
        for entries in groups.values():
            entries.sort(key=lambda entry: entry[1].saved_sort_key, reverse=True)
            for path, _ in entries[1:]:
                path.unlink(missing_ok=True)
                logger.info("Deleted duplicate: %s", path.name)
                cleaned += 1
        return cleaned

    # ChatStore interface

    async def save(self, payload: dict[str, Any]) -> SaveResult:
        try:
            return await asyncio.to_thread(self._save_sync, payload)
        except OSError as e:
            raise SyncError(f"Save chat error: {e}") from e

    async def list_chats(self) -> list[ChatSummary]:
        try:
            return await asyncio.to_thread(self._list_sync)
        except OSError as e:
            raise SyncError(f"List chats error: {e}") from e

    async def load(self, chat_id: str) -> DurableChatRecord | None:
        try:
            return await asyncio.to_thread(self._load_sync, chat_id)
        except OSError as e:
            raise SyncError(f"Load chat error: {e}") from e

    async def delete(self, chat_id: str) -> int:
        try:
            return await asyncio.to_thread(self._delete_sync, chat_id)
        except OSError as e:
            raise SyncError(f"Delete chat error: {e}") from e

    async def cleanup(self) -> int:
        try:
            return await asyncio.to_thread(self._cleanup_sync)
        except OSError as e:
            raise SyncError(f"Cleanup error: {e}") from e
