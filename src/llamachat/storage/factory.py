"""Factory for creating durable chat stores."""

from typing import Any

from .base import ChatStore


def create_chat_store(backend: str = "file", **config: Any) -> ChatStore:
    """
    Create a durable chat store instance.

    This factory function hides the implementation details of which
    backend is being used.

    Args:
        backend: Backend type ("file" or "sqlite")
        **config: Backend-specific configuration
            For file: cache_dir
            For sqlite: path

    Returns:
        Chat store (call connect() before use)

    Raises:
        ValueError: If backend type is not supported

    Example:
        >>> store = create_chat_store("file", cache_dir="~/.llamachat/cache")
        >>> await store.connect()
    """
    if backend == "file":
        from .file_store import FileChatStore
        return FileChatStore(**config)

    if backend == "sqlite":
        from .sqlite import SQLiteChatStore
        return SQLiteChatStore(**config)

    raise ValueError(
        f"Unsupported chat store backend: {backend}. "
        f"Supported backends: file, sqlite"
    )
