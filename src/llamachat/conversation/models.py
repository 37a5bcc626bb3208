"""Data models for conversations.

These models define the structure of messages, attachments and
conversations independent of where they are stored. Field aliases
reproduce the JSON shape the chat client has always written, so records
round-trip through the durable store unchanged.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..constants import DEFAULT_CHAT_TITLE, TITLE_ELLIPSIS, TITLE_MAX_LENGTH


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Produces the same text as JavaScript's ``Date.toISOString()``,
    e.g. ``2024-05-01T12:30:00.123Z``. Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


class ImageAttachment(BaseModel):
    """An uploaded image attached to a user message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["image"] = "image"
    url: str = Field(description="Where the uploaded image can be fetched")
    mimetype: str | None = Field(default=None, description="MIME type hint")
    original_name: str | None = Field(default=None, alias="originalName")
    size: int | None = Field(default=None, ge=0)
    # Base64 payload, filled at send time and never written to storage
    data: str | None = Field(default=None, exclude=True, repr=False)

    def describe(self) -> str:
        """Short human-readable label used for titles."""
        return f"[{self.type}] {self.original_name or self.url}"


class DocumentAttachment(BaseModel):
    """An uploaded document attached to a user message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["document"] = "document"
    url: str = Field(description="Where the uploaded document can be fetched")
    original_name: str = Field(alias="originalName")
    size: int | None = Field(default=None, ge=0)
    content: str | None = Field(
        default=None,
        description="Extracted text, populated at send time"
    )
    file_type: str | None = Field(default=None, alias="fileType")
    metadata: dict[str, Any] | None = None

    def describe(self) -> str:
        """Short human-readable label used for titles."""
        return f"[{self.type}] {self.original_name}"


Attachment = Annotated[ImageAttachment | DocumentAttachment, Field(discriminator="type")]


class Message(BaseModel):
    """A single transcript entry. Immutable once created."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Role
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    attachment: Attachment | None = Field(default=None, alias="fileData")

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


def derive_title(content: str, attachment: ImageAttachment | DocumentAttachment | None = None) -> str:
    """Build a conversation title from the first user message.

    Falls back to the attachment description when the message has no
    text, and truncates to TITLE_MAX_LENGTH characters plus an ellipsis.
    """
    text = content or (attachment.describe() if attachment else DEFAULT_CHAT_TITLE)
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return text


class Conversation(BaseModel):
    """A chat: ordered messages plus identifying metadata.

    A conversation with no messages is transient and is never listed or
    persisted.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = DEFAULT_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    model: str = "unknown"
    last_persisted_at: datetime | None = None

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return format_timestamp(value)

    @field_serializer("last_persisted_at")
    def serialize_last_persisted_at(self, value: datetime | None) -> str | None:
        return format_timestamp(value) if value else None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def is_complete(self) -> bool:
        """True once both a user and an assistant message are present."""
        roles = {msg.role for msg in self.messages}
        return Role.USER in roles and Role.ASSISTANT in roles

    def to_save_payload(self) -> dict[str, Any]:
        """Body of a durable-store save request.

        Server-computed fields (updated_at, saved_at, message_count) are
        left out, as is local bookkeeping.
        """
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"last_persisted_at"},
        )
