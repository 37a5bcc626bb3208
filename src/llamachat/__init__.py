"""
llamachat: a multi-provider LLM chat core.

Talks to a local inference server or hosted APIs through one gateway,
keeps conversations in memory and mirrors them to a durable chat store.
Each module hides a specific design decision behind a small interface.
"""

__version__ = "0.1.0"

from .config import ConfigStore, Settings
from .errors import (
    AttachmentProcessingError,
    BlockedError,
    ConfigError,
    LlamaChatError,
    ProviderError,
    SendInProgressError,
    SyncError,
    UnknownProviderError,
)
from .session import ChatSession, create_chat_session

__all__ = [
    "AttachmentProcessingError",
    "BlockedError",
    "ChatSession",
    "ConfigError",
    "ConfigStore",
    "LlamaChatError",
    "ProviderError",
    "SendInProgressError",
    "Settings",
    "SyncError",
    "UnknownProviderError",
    "create_chat_session",
]
