"""Local cache of conversations.

Mirrors the in-memory ConversationStore to a single JSON file so a
restarted client picks up where it left off, even when the durable chat
store is unreachable. Cache failures are logged and never interrupt a
chat.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .models import Conversation
from .store import ConversationStore

logger = logging.getLogger(__name__)


class LocalCacheState(BaseModel):
    """On-disk shape of the local cache."""

    chats: dict[str, Conversation] = Field(default_factory=dict)
    current_chat_id: str | None = None


class LocalCache:
    """JSON-file cache for a ConversationStore."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, store: ConversationStore) -> bool:
        """Write every non-empty conversation and the active id.

        Returns:
            True if the cache was written
        """
        chats, active_id = store.snapshot()
        state = LocalCacheState(chats=chats, current_chat_id=active_id)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(state.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Error saving local cache %s: %s", self._path, e)
            return False
        return True

    def load(self, store: ConversationStore) -> bool:
        """Restore a store from the cache file, if one exists.

        Returns:
            True if conversations were restored
        """
        if not self._path.exists():
            return False
        try:
            state = LocalCacheState.model_validate_json(self._path.read_bytes())
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Error loading local cache %s: %s", self._path, e)
            return False

        store.restore(state.chats, state.current_chat_id)
        logger.debug("Restored %d conversation(s) from local cache", len(state.chats))
        return True
