"""Conversation module for llamachat.

Provides the in-memory conversation registry and its local cache.
"""

from .cache import LocalCache
from .models import (
    Attachment,
    Conversation,
    DocumentAttachment,
    ImageAttachment,
    Message,
    Role,
    derive_title,
    format_timestamp,
    utcnow,
)
from .store import ConversationStore

__all__ = [
    "Attachment",
    "Conversation",
    "ConversationStore",
    "DocumentAttachment",
    "ImageAttachment",
    "LocalCache",
    "Message",
    "Role",
    "derive_title",
    "format_timestamp",
    "utcnow",
]
