"""Data models for the durable chat store.

DurableChatRecord is the one JSON shape this package owns bit-for-bit:
key order, snake_case names and millisecond ``Z`` timestamps all match
the files earlier versions of the client wrote.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..constants import UNTITLED_CHAT_TITLE
from ..conversation.models import Conversation, Message, format_timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _format_optional(value: datetime | None) -> str | None:
    return format_timestamp(value) if value else None


class DurableChatRecord(BaseModel):
    """A persisted conversation as stored server-side."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = UNTITLED_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)
    model: str = "unknown"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    saved_at: datetime | None = None
    message_count: int = Field(default=0, ge=0)

    @field_serializer("created_at", "updated_at", "saved_at")
    def serialize_datetime(self, value: datetime | None) -> str | None:
        return _format_optional(value)

    @property
    def saved_sort_key(self) -> datetime:
        """saved_at for ordering; records without one sort oldest."""
        return _aware(self.saved_at) if self.saved_at else _EPOCH

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_conversation(self) -> Conversation:
        conversation = Conversation(
            id=self.id,
            title=self.title,
            messages=list(self.messages),
            model=self.model,
            last_persisted_at=self.saved_at,
        )
        if self.created_at:
            conversation.created_at = self.created_at
        return conversation

    def summary(self, filename: str | None = None) -> "ChatSummary":
        return ChatSummary(
            id=self.id,
            title=self.title,
            model=self.model,
            created_at=self.created_at,
            updated_at=self.updated_at,
            saved_at=self.saved_at,
            message_count=self.message_count,
            filename=filename,
        )


class ChatSummary(BaseModel):
    """List entry for a durable record (everything except messages)."""

    id: str
    title: str
    model: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    saved_at: datetime | None = None
    message_count: int = 0
    filename: str | None = None

    @field_serializer("created_at", "updated_at", "saved_at")
    def serialize_datetime(self, value: datetime | None) -> str | None:
        return _format_optional(value)

    @property
    def saved_sort_key(self) -> datetime:
        return _aware(self.saved_at) if self.saved_at else _EPOCH


class SaveResult(BaseModel):
    """Outcome of a save request."""

    success: bool = True
    filename: str | None = Field(default=None, description="Storage key written")
    chat_id: str
    updated: bool = Field(description="True if an existing record was overwritten")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
