"""Chat session: the explicit context object tying the chat core together.

A ChatSession owns one of each collaborator (configuration, gateway,
conversation registry, local cache, sync engine, attachment resolver)
and runs the send pipeline:

    resolve attachment -> append user message -> provider call
    -> append assistant message -> local cache -> durable save

Only one send runs at a time per session.
"""

import logging
from pathlib import Path
from typing import Any

from .attachments import AttachmentResolver, LocalAttachmentResolver, detect_file_type
from .config import ConfigStore, Settings
from .constants import CACHE_DIRNAME, LOCAL_CACHE_FILENAME, SQLITE_FILENAME, UPLOADS_DIRNAME
from .conversation import (
    Conversation,
    ConversationStore,
    DocumentAttachment,
    ImageAttachment,
    LocalCache,
    Message,
    Role,
)
from .errors import (
    AttachmentProcessingError,
    BlockedError,
    ConfigError,
    ProviderError,
    SendInProgressError,
    SyncError,
    UnknownProviderError,
)
from .llm import ChunkCallback, LLMGateway, format_error_message
from .storage import ChatSummary, ReconcileReport, SyncEngine, create_chat_store

logger = logging.getLogger(__name__)

# Failures reported to the user as an assistant-style message
SEND_FAILURES = (ConfigError, ProviderError, BlockedError, UnknownProviderError)


class ChatSession:
    """One user's chat state and the pipeline operating on it.

    Hidden design decisions:
    - Ordering of state changes within a send
    - Which failures become a synthetic assistant message
    - When the local cache and the durable store are written
    """

    def __init__(
        self,
        config: ConfigStore,
        gateway: LLMGateway,
        conversations: ConversationStore,
        cache: LocalCache,
        sync: SyncEngine,
        attachments: AttachmentResolver,
    ):
        self.config = config
        self.gateway = gateway
        self.conversations = conversations
        self.cache = cache
        self.sync = sync
        self.attachments = attachments
        self._sending = False

    @property
    def is_sending(self) -> bool:
        return self._sending

    @property
    def active(self) -> Conversation | None:
        return self.conversations.active

    async def __aenter__(self) -> "ChatSession":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def startup(self) -> ReconcileReport | None:
        """Restore local state, then reconcile it with the durable store.

        Returns:
            The reconcile report, or None if the store was unreachable
        """
        self.cache.load(self.conversations)
        dropped = self.conversations.gc_empty()
        if dropped:
            logger.debug("Dropped %d empty conversation(s)", dropped)

        report = None
        try:
            await self.sync.store.connect()
            report = await self.sync.reconcile()
        except SyncError as e:
            logger.warning("Chat store unavailable, using local cache only: %s", e)

        if self.conversations.active is None:
            self.new_chat()
        self.cache.save(self.conversations)
        return report

    async def close(self) -> None:
        """Write pending conversations and release every resource."""
        try:
            await self.sync.flush()
        except SyncError as e:
            logger.warning("Could not save pending chats: %s", e)
        self.cache.save(self.conversations)
        await self.gateway.close()
        await self.sync.store.disconnect()

    def new_chat(self) -> str:
        """Start (or reuse) an empty conversation and make it active."""
        self.conversations.model = self.config.active_config().model_id
        return self.conversations.start_new()

    async def attach_file(self, path: str | Path) -> ImageAttachment | DocumentAttachment:
        """Upload a local file and build the attachment for a message.

        Raises:
            AttachmentProcessingError: If the file type is unsupported or
                the file cannot be read or stored
        """
        path = Path(path).expanduser()
        kind = detect_file_type(path.name)
        if kind == "unknown":
            raise AttachmentProcessingError("Unsupported file type", str(path))
        try:
            data = path.read_bytes()
        except OSError as e:
            raise AttachmentProcessingError(f"Cannot read file: {e}", str(path)) from e

        if kind == "image":
            upload = await self.attachments.upload_image(data, path.name)
            return ImageAttachment(
                url=upload.url,
                mimetype=upload.mimetype,
                original_name=upload.original_name,
                size=upload.size,
            )
        upload = await self.attachments.upload_document(data, path.name)
        return DocumentAttachment(url=upload.url, original_name=upload.original_name, size=upload.size)

    async def send(
        self,
        content: str,
        attachment: ImageAttachment | DocumentAttachment | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> Message:
        """Send a user message in the active conversation and get the answer.

        Args:
            content: User message text (may be empty with an attachment)
            attachment: Optional image or document
            on_chunk: Receives answer text incrementally from streaming
                providers; ignored by the others

        Returns:
            The assistant message. When the provider call fails this is a
            synthetic message describing the error, which is not stored.

        Raises:
            SendInProgressError: If another send has not finished
            AttachmentProcessingError: If the attachment cannot be
                processed; nothing has been appended in that case
        """
        if self._sending:
            raise SendInProgressError(self.conversations.active_id)

        self._sending = True
        try:
            return await self._send(content, attachment, on_chunk)
        finally:
            self._sending = False

    async def _send(
        self,
        content: str,
        attachment: ImageAttachment | DocumentAttachment | None,
        on_chunk: ChunkCallback | None,
    ) -> Message:
        config = self.config.active_config()
        attachment = await self.gateway.resolve_attachment(attachment)

        chat_id = self.conversations.active_id
        if chat_id is None or chat_id not in self.conversations:
            chat_id = self.new_chat()
        conversation = self.conversations.get(chat_id)
        conversation.model = config.model_id

        self.conversations.append(chat_id, Role.USER, content, attachment)

        try:
            answer = await self.gateway.complete(list(conversation.messages), on_chunk=on_chunk)
        except SEND_FAILURES as e:
            logger.error("Send failed for chat %s: %s", chat_id, e)
            self.cache.save(self.conversations)
            return Message(role=Role.ASSISTANT, content=format_error_message(e, config))

        message = self.conversations.append(chat_id, Role.ASSISTANT, answer)
        self.cache.save(self.conversations)

        try:
            await self.sync.save(chat_id)
        except SyncError as e:
            logger.warning("Chat %s not saved, will retry later: %s", chat_id, e)

        return message

    def is_stored(self, message: Message) -> bool:
        """Whether a message returned by send() is part of the active chat.

        Synthetic error messages are not.
        """
        active = self.conversations.active
        return active is not None and any(m is message for m in active.messages)

    async def open(self, chat_id: str) -> Conversation | None:
        """Make a conversation active, fetching it from the store if needed.

        Raises:
            SyncError: If the durable store cannot be read
        """
        if not self.conversations.load(chat_id):
            record = await self.sync.load(chat_id)
            if record is None:
                return None
            self.conversations.merge(record.to_conversation())
            self.conversations.load(chat_id)

        self.cache.save(self.conversations)
        return self.conversations.active

    async def delete(self, chat_id: str) -> bool:
        """Delete a conversation from the durable store and from memory.

        Raises:
            SyncError: If the durable store cannot be reached; nothing is
                deleted locally in that case
        """
        removed = await self.sync.delete(chat_id)
        removed = self.conversations.delete(chat_id) or removed
        self.cache.save(self.conversations)
        return removed

    async def list_history(self) -> list[ChatSummary]:
        """Stored conversations, newest first."""
        return await self.sync.list_chats()

    async def cleanup_duplicates(self) -> int:
        return await self.sync.cleanup_duplicates()

    async def list_models(self) -> list[str]:
        """Models installed on the configured local inference server."""
        return await self.gateway.list_local_models(self.config.settings.ollama_url)

    def update_settings(self, **changes: Any) -> Settings:
        """Persist settings changes; the next send uses them.

        Raises:
            ConfigError: If a setting is unknown or invalid
        """
        settings = self.config.persist(changes)
        self.conversations.model = settings.provider_config().model_id
        return settings


def create_chat_session(
    home: str | Path | None = None,
    backend: str = "file",
    debounce_seconds: float | None = None,
    **client_kwargs: Any
) -> ChatSession:
    """Build a ChatSession with every collaborator rooted in a data home.

    Args:
        home: Data home (defaults to $LLAMACHAT_HOME or ~/.llamachat)
        backend: Durable store backend ("file" or "sqlite")
        debounce_seconds: Override the save debounce window
        **client_kwargs: Passed to provider adapters

    Returns:
        ChatSession (call startup() or use it as an async context manager)
    """
    config = ConfigStore(home)
    root = config.home

    if backend == "sqlite":
        store = create_chat_store("sqlite", path=root / SQLITE_FILENAME)
    else:
        store = create_chat_store(backend, cache_dir=root / CACHE_DIRNAME)

    attachments = LocalAttachmentResolver(root / UPLOADS_DIRNAME)
    conversations = ConversationStore(model=config.active_config().model_id)
    sync_kwargs = {} if debounce_seconds is None else {"debounce_seconds": debounce_seconds}

    return ChatSession(
        config=config,
        gateway=LLMGateway(config.active_config, attachments=attachments, **client_kwargs),
        conversations=conversations,
        cache=LocalCache(root / LOCAL_CACHE_FILENAME),
        sync=SyncEngine(conversations, store, **sync_kwargs),
        attachments=attachments,
    )
