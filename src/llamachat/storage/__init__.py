"""Durable chat storage and synchronization for llamachat."""

from .base import ChatStore
from .factory import create_chat_store
from .file_store import FileChatStore, chat_filename, chat_id_from_filename
from .models import ChatSummary, DurableChatRecord, SaveResult
from .sqlite import SQLiteChatStore
from .sync import ReconcileReport, SyncEngine, SyncState

__all__ = [
    "ChatStore",
    "ChatSummary",
    "DurableChatRecord",
    "FileChatStore",
    "ReconcileReport",
    "SQLiteChatStore",
    "SaveResult",
    "SyncEngine",
    "SyncState",
    "chat_filename",
    "chat_id_from_filename",
    "create_chat_store",
]
