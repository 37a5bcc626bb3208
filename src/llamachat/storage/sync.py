"""Reconciles the in-memory conversations with the durable chat store.

Per conversation id the sync state moves LOCAL_ONLY -> SYNCED, and
SYNCED -> STALE whenever memory holds more messages than the last copy
known to be stored (typically a save skipped by the debounce window or
lost to a failure). A later save or reconcile brings it back to SYNCED.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..constants import SAVE_DEBOUNCE_SECONDS
from ..conversation.models import utcnow
from ..conversation.store import ConversationStore
from ..errors import SyncError
from .base import ChatStore
from .models import ChatSummary, DurableChatRecord

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Durability of one conversation."""

    LOCAL_ONLY = "local_only"  # Never stored
    SYNCED = "synced"          # Stored copy has every message
    STALE = "stale"            # Memory is ahead of the stored copy


@dataclass
class ReconcileReport:
    """What a reconcile pass did."""

    loaded: list[str] = field(default_factory=list)      # Taken from the store
    kept_local: list[str] = field(default_factory=list)  # Memory was ahead
    resaved: list[str] = field(default_factory=list)     # Written back after keeping memory
    failed: list[str] = field(default_factory=list)      # Write-back failed


class SyncEngine:
    """Mirrors a ConversationStore into a ChatStore.

    Only complete conversations (at least one user and one assistant
    message) are ever written, so a question without its answer is never
    persisted on its own.
    """

    def __init__(
        self,
        conversations: ConversationStore,
        store: ChatStore,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        clock=utcnow,
    ):
        """
        Args:
            conversations: In-memory registry to mirror
            store: Durable chat store (already connected)
            debounce_seconds: Saves of one id closer together than this
                are skipped; 0 disables debouncing
            clock: Returns the current aware datetime (injectable for tests)
        """
        self._conversations = conversations
        self._store = store
        self._debounce_seconds = debounce_seconds
        self._clock = clock
        self._remote_counts: dict[str, int] = {}
        self._in_flight: set[str] = set()

    @property
    def store(self) -> ChatStore:
        return self._store

    @property
    def debounce_seconds(self) -> float:
        return self._debounce_seconds

    def state(self, chat_id: str) -> SyncState:
        remote_count = self._remote_counts.get(chat_id)
        if remote_count is None:
            return SyncState.LOCAL_ONLY
        conversation = self._conversations.get(chat_id)
        if conversation is not None and conversation.message_count > remote_count:
            return SyncState.STALE
        return SyncState.SYNCED

    def _recently_saved(self, last: datetime | None, now: datetime) -> bool:
        if last is None or self._debounce_seconds <= 0:
            return False
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now - last).total_seconds() < self._debounce_seconds

    async def save(self, chat_id: str, force: bool = False) -> bool:
        """Persist a conversation if it is complete and not just saved.

        Args:
            chat_id: Conversation to save
            force: Skip the debounce window

        Returns:
            True if a write happened, False if the call was a no-op

        Raises:
            SyncError: If the durable store rejected or failed the write
        """
        conversation = self._conversations.get(chat_id)
        if conversation is None:
            logger.debug("save: chat %s not found", chat_id)
            return False
        if not conversation.is_complete:
            logger.debug("save: chat %s incomplete (%d messages), not saving",
                         chat_id, conversation.message_count)
            return False
        if chat_id in self._in_flight:
            logger.debug("save: chat %s already being saved", chat_id)
            return False

        now = self._clock()
        if not force and self._recently_saved(conversation.last_persisted_at, now):
            logger.debug("save: chat %s saved recently, skipping", chat_id)
            return False

        payload = conversation.to_save_payload()
        self._in_flight.add(chat_id)
        try:
            result = await self._store.save(payload)
        except ValueError as e:
            raise SyncError(f"Chat {chat_id} rejected by store: {e}") from e
        finally:
            self._in_flight.discard(chat_id)

        self._conversations.mark_persisted(chat_id, now)
        self._remote_counts[chat_id] = len(payload["messages"])
        logger.info(
            "%s chat %s (%d messages)",
            "Updated" if result.updated else "Created", chat_id, len(payload["messages"]),
        )
        return True

    async def flush(self) -> list[str]:
        """Force-save every complete conversation that is not SYNCED.

        Returns:
            Ids that were written
        """
        written = []
        for chat_id, conversation in self._conversations.list_non_empty().items():
            if conversation.is_complete and self.state(chat_id) != SyncState.SYNCED:
                if await self.save(chat_id, force=True):
                    written.append(chat_id)
        return written

    async def list_chats(self) -> list[ChatSummary]:
        """One summary per chat id, newest first."""
        return await self._store.list_chats()

    async def load(self, chat_id: str) -> DurableChatRecord | None:
        return await self._store.load(chat_id)

    async def delete(self, chat_id: str) -> bool:
        """Delete every stored record for an id, then forget it locally.

        Returns:
            True if at least one stored record was removed
        """
        deleted = await self._store.delete(chat_id)
        if deleted == 0:
            return False

        logger.info("Deleted chat %s (%d record(s) removed)", chat_id, deleted)
        self._remote_counts.pop(chat_id, None)
        self._conversations.delete(chat_id)
        return True

    async def cleanup_duplicates(self) -> int:
        """Remove superseded duplicate records from the store."""
        cleaned = await self._store.cleanup()
        if cleaned:
            logger.info("Cleaned up %d duplicate chat record(s)", cleaned)
        return cleaned

    async def reconcile(self) -> ReconcileReport:
        """Merge every stored conversation into memory.

        A stored copy replaces the in-memory one unless memory holds more
        messages for that id, as the active conversation does when an
        answer arrived but its save has not landed. Those conversations
        keep their in-memory version and are written back.

        Raises:
            SyncError: If the store cannot be listed or read
        """
        report = ReconcileReport()

        for summary in await self._store.list_chats():
            record = await self._store.load(summary.id)
            if record is None:
                continue

            self._remote_counts[record.id] = len(record.messages)
            local = self._conversations.get(record.id)
            if local is not None and local.message_count > len(record.messages):
                report.kept_local.append(record.id)
                continue

            self._conversations.merge(record.to_conversation())
            report.loaded.append(record.id)

        for chat_id in report.kept_local:
            try:
                if await self.save(chat_id, force=True):
                    report.resaved.append(chat_id)
            except SyncError as e:
                logger.warning("Could not write back chat %s: %s", chat_id, e)
                report.failed.append(chat_id)

        logger.debug(
            "Reconciled: %d loaded, %d kept local, %d resaved",
            len(report.loaded), len(report.kept_local), len(report.resaved),
        )
        return report
