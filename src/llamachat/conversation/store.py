"""In-memory conversation registry.

This module hides how conversations are indexed and which one is active.
All operations are synchronous so no partial state is ever observable
between two awaits of the send pipeline.
"""

import logging
import time
from datetime import datetime

from .models import (
    Conversation,
    DocumentAttachment,
    ImageAttachment,
    Message,
    Role,
    derive_title,
    utcnow,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """Registry of conversations keyed by id, with an active pointer.

    Invariants:
    - At most one empty conversation exists (start_new reuses it)
    - A title is frozen once the first user message is appended
    - Only non-empty conversations are exposed for listing or persistence
    """

    def __init__(self, model: str = "unknown"):
        """Initialize an empty store.

        Args:
            model: Model identifier stamped on newly created conversations
        """
        self.model = model
        self._conversations: dict[str, Conversation] = {}
        self._active_id: str | None = None
        self._last_id = 0

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active(self) -> Conversation | None:
        if self._active_id is None:
            return None
        return self._conversations.get(self._active_id)

    @property
    def history(self) -> list[Message]:
        """The current working transcript (a copy)."""
        conversation = self.active
        return list(conversation.messages) if conversation else []

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def _generate_id(self) -> str:
        """Time-derived id, strictly increasing within this store."""
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def get(self, chat_id: str) -> Conversation | None:
        return self._conversations.get(chat_id)

    def start_new(self) -> str:
        """Make a fresh conversation active and return its id.

        If the active conversation has no messages yet it is reused.
        """
        current = self.active
        if current is not None and current.is_empty:
            return current.id

        chat_id = self._generate_id()
        self._conversations[chat_id] = Conversation(id=chat_id, model=self.model)
        self._active_id = chat_id
        logger.debug("Started conversation %s", chat_id)
        return chat_id

    def append(
        self,
        chat_id: str,
        role: Role | str,
        content: str,
        attachment: ImageAttachment | DocumentAttachment | None = None,
    ) -> Message:
        """Create a message and append it to a conversation.

        Args:
            chat_id: Target conversation
            role: "user" or "assistant"
            content: Message text
            attachment: Optional image or document

        Returns:
            The appended message

        Raises:
            KeyError: If the conversation does not exist
        """
        conversation = self._conversations.get(chat_id)
        if conversation is None:
            raise KeyError(f"Conversation {chat_id} not found")

        message = Message(role=Role(role), content=content, attachment=attachment)
        conversation.messages.append(message)

        if message.role == Role.USER and len(conversation.messages) == 1:
            conversation.title = derive_title(content, attachment)

        return message

    def load(self, chat_id: str) -> bool:
        """Make a conversation active. Returns False if the id is unknown."""
        if chat_id not in self._conversations:
            logger.warning("Conversation %s not found", chat_id)
            return False
        self._active_id = chat_id
        return True

    def delete(self, chat_id: str) -> bool:
        """Remove a conversation, starting a new one if it was active."""
        if chat_id not in self._conversations:
            return False

        del self._conversations[chat_id]
        if chat_id == self._active_id:
            self._active_id = None
            self.start_new()
        return True

    def merge(self, conversation: Conversation) -> None:
        """Insert or replace a conversation (used when syncing)."""
        self._conversations[conversation.id] = conversation
        if conversation.id.isdigit():
            self._last_id = max(self._last_id, int(conversation.id))

    def mark_persisted(self, chat_id: str, when: datetime | None = None) -> None:
        conversation = self._conversations.get(chat_id)
        if conversation is not None:
            conversation.last_persisted_at = when or utcnow()

    def list_non_empty(self) -> dict[str, Conversation]:
        """All conversations that have at least one message."""
        return {
            chat_id: conversation
            for chat_id, conversation in self._conversations.items()
            if not conversation.is_empty
        }

    def gc_empty(self) -> int:
        """Drop every zero-message conversation. Returns how many went."""
        empty = [cid for cid, conv in self._conversations.items() if conv.is_empty]
        for chat_id in empty:
            del self._conversations[chat_id]
        if self._active_id in empty:
            self._active_id = None
        return len(empty)

    def snapshot(self) -> tuple[dict[str, Conversation], str | None]:
        """Non-empty conversations and the active id, for the local cache."""
        return self.list_non_empty(), self._active_id

    def restore(self, conversations: dict[str, Conversation], active_id: str | None) -> None:
        """Replace the whole registry, e.g. from the local cache."""
        self._conversations = {}
        for conversation in conversations.values():
            self.merge(conversation)
        self._active_id = active_id if active_id in self._conversations else None
