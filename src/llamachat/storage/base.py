"""Abstract base class for durable chat stores."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ..constants import UNTITLED_CHAT_TITLE
from .models import ChatSummary, DurableChatRecord, SaveResult


class ChatStore(ABC):
    """
    Abstract durable chat store.

    Hides all persistence details including:
    - Storage medium (files, database)
    - Storage key scheme
    - How duplicate records for one id are resolved

    Whatever the medium, list_chats() and load() resolve every id to a single
    record: the one with the latest saved_at.
    """

    async def connect(self) -> None:
        """Prepare the store for use."""

    async def disconnect(self) -> None:
        """Release any held resources."""

    @staticmethod
    def build_record(payload: dict[str, Any], now: datetime) -> DurableChatRecord:
        """
        Turn a save request body into a record with server-side metadata.

        Args:
            payload: Conversation JSON (id, title, messages, model, created_at)
            now: Time stamped into updated_at and saved_at

        Raises:
            ValueError: If the payload has no id or is malformed
        """
        chat_id = payload.get("id")
        if not chat_id:
            raise ValueError("Chat ID is required")

        messages = payload.get("messages") or []
        try:
            return DurableChatRecord(
                id=str(chat_id),
                title=payload.get("title") or UNTITLED_CHAT_TITLE,
                messages=messages,
                model=payload.get("model") or "unknown",
                created_at=payload.get("created_at"),
                updated_at=now,
                saved_at=now,
                message_count=len(messages),
            )
        except ValidationError as e:
            raise ValueError(f"Malformed chat payload: {e}") from e

    @abstractmethod
    async def save(self, payload: dict[str, Any]) -> SaveResult:
        """
        Create or overwrite the record for payload["id"].

        Raises:
            ValueError: If the payload is invalid
            SyncError: If the write fails
        """

    @abstractmethod
    async def list_chats(self) -> list[ChatSummary]:
        """
        List one summary per chat id, newest saved_at first.

        Raises:
            SyncError: If the store cannot be read
        """

    @abstractmethod
    async def load(self, chat_id: str) -> DurableChatRecord | None:
        """
        Load the current record for an id.

        Returns:
            The record, or None if no record exists
        """

    @abstractmethod
    async def delete(self, chat_id: str) -> int:
        """
        Delete every record stored for an id.

        Returns:
            Number of records removed (0 if none existed)
        """

    @abstractmethod
    async def cleanup(self) -> int:
        """
        Remove superseded duplicate records.

        Returns:
            Number of records removed
        """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
