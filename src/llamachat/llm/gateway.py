"""Provider-neutral entry point for chat completions.

The gateway picks the adapter for the active provider configuration,
turns attachments into request context and hands back the final text.
It has no persistence side effects; callers store the answer.
"""

import logging
from collections.abc import Callable
from typing import Any

from ..attachments.base import AttachmentResolver
from ..conversation.models import DocumentAttachment, ImageAttachment, Message, Role
from ..errors import AttachmentProcessingError, LlamaChatError
from .base import ProviderAdapter
from .factory import create_adapter
from .models import ChunkCallback, CompletionRequest, ImagePayload, ProviderConfig, ProviderId, StreamingResponse
from .prompt import fold_document
from .providers import OllamaAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., ProviderAdapter]


def remediation_hints(config: ProviderConfig) -> str:
    """Provider-specific checklist shown alongside a failed request."""
    provider = config.provider_id.lower()
    if provider == ProviderId.OLLAMA.value:
        return (
            "Make sure:\n"
            "1. Ollama is running (ollama serve)\n"
            f"2. URL is correct: {config.endpoint_url}\n"
            f"3. Model is installed: ollama pull {config.model_id}"
        )
    if provider == ProviderId.GEMINI.value:
        return (
            "Make sure:\n"
            "1. Gemini API key is valid\n"
            "2. You haven't exceeded your quota\n"
            f"3. Model is available: {config.model_id}\n"
            "4. Try again in a few moments if the model is overloaded"
        )
    if provider == ProviderId.OPENROUTER.value:
        return (
            "Make sure:\n"
            "1. OpenRouter API key is valid\n"
            "2. You have credits available\n"
            f"3. Model is available: {config.model_id}"
        )
    return ""


def format_error_message(error: LlamaChatError, config: ProviderConfig) -> str:
    """Text of the synthetic assistant message reporting a failed send."""
    hints = remediation_hints(config)
    message = f"Error: {error}"
    return f"{message}\n\n{hints}" if hints else message


class LLMGateway:
    """Dispatches completions to the adapter of the active provider.

    Hidden design decisions:
    - Adapter selection and reuse across calls
    - Attachment resolution and document folding
    - Which adapters receive streaming callbacks
    """

    def __init__(
        self,
        config_source: Callable[[], ProviderConfig],
        attachments: AttachmentResolver | None = None,
        adapter_factory: AdapterFactory = create_adapter,
        **client_kwargs: Any
    ):
        """Initialize the gateway.

        Args:
            config_source: Returns the active provider configuration; read
                on every call so configuration changes apply immediately
            attachments: Resolver for image data and document text
            adapter_factory: Builds an adapter from a ProviderConfig
            **client_kwargs: Passed to the adapter factory
        """
        self._config_source = config_source
        self._attachments = attachments
        self._adapter_factory = adapter_factory
        self._client_kwargs = client_kwargs
        self._adapter: ProviderAdapter | None = None
        self._adapter_config: ProviderConfig | None = None

    @property
    def config(self) -> ProviderConfig:
        return self._config_source()

    async def _adapter_for(self, config: ProviderConfig) -> ProviderAdapter:
        """Return the cached adapter, rebuilding it when the config changed.

        Raises:
            UnknownProviderError: Provider id matches no adapter
            ConfigError: Required credentials are missing
        """
        if self._adapter is not None and self._adapter_config == config:
            return self._adapter

        adapter = self._adapter_factory(config, **self._client_kwargs)
        if self._adapter is not None:
            await self._adapter.close()
        self._adapter = adapter
        self._adapter_config = config
        logger.debug("Using %s adapter with model %s", config.provider_id, config.model_id)
        return adapter

    async def resolve_attachment(
        self,
        attachment: ImageAttachment | DocumentAttachment | None,
    ) -> ImageAttachment | DocumentAttachment | None:
        """Fetch image data / document text for an attachment.

        Raises:
            AttachmentProcessingError: If the attachment cannot be processed
        """
        if attachment is None or self._attachments is None:
            return attachment
        return await self._attachments.resolve(attachment)

    async def _build_request(
        self,
        history: list[Message],
        attachment: ImageAttachment | DocumentAttachment | None,
        config: ProviderConfig,
    ) -> CompletionRequest:
        messages = list(history)
        last_is_user = bool(messages) and messages[-1].role == Role.USER
        if attachment is None and last_is_user:
            attachment = messages[-1].attachment

        attachment = await self.resolve_attachment(attachment)

        image = None
        if isinstance(attachment, ImageAttachment):
            if attachment.data is None:
                raise AttachmentProcessingError("Image data unavailable", attachment.url)
            image = ImagePayload(data=attachment.data, mime_type=attachment.mimetype or "image/jpeg")
        elif isinstance(attachment, DocumentAttachment) and last_is_user:
            messages[-1] = messages[-1].model_copy(update={"attachment": attachment})

        return CompletionRequest(
            messages=fold_document(messages),
            image=image,
            model=config.model_id,
            temperature=config.temperature,
        )

    async def complete(
        self,
        history: list[Message],
        attachment: ImageAttachment | DocumentAttachment | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Run one chat completion against the active provider.

        Args:
            history: Transcript ending with the user message to answer
            attachment: Attachment of that message (defaults to the one
                carried by the last user message)
            on_chunk: Called once per streamed chunk; silently ignored by
                providers that cannot stream

        Returns:
            The complete answer text

        Raises:
            UnknownProviderError: Provider id matches no adapter
            ConfigError: Required credentials are missing
            AttachmentProcessingError: Attachment could not be processed
            ProviderError: Provider failed the request
            BlockedError: Provider refused the prompt
        """
        config = self._config_source()
        adapter = await self._adapter_for(config)
        request = await self._build_request(history, attachment, config)

        logger.debug(
            "Dispatching %d message(s) to %s (streaming=%s)",
            len(request.messages), config.provider_id,
            on_chunk is not None and adapter.supports_streaming,
        )
        return await adapter.send(request, on_chunk)

    async def stream(
        self,
        history: list[Message],
        attachment: ImageAttachment | DocumentAttachment | None = None,
    ) -> StreamingResponse:
        """Like complete(), but hands back the chunk channel itself.

        Atomic providers produce a single chunk. Close the returned stream
        to cancel an answer in flight.
        """
        config = self._config_source()
        adapter = await self._adapter_for(config)
        request = await self._build_request(history, attachment, config)
        return await adapter.stream(request)

    async def list_local_models(self, base_url: str | None = None) -> list[str]:
        """Models installed on the local inference server.

        Works whichever provider is active; reuses the live local adapter
        when it points at the same server.
        """
        adapter = self._adapter
        if isinstance(adapter, OllamaAdapter) and (
            base_url is None or adapter.base_url == base_url.rstrip("/")
        ):
            return await adapter.list_models()

        async with OllamaAdapter(base_url=base_url) as local:
            return await local.list_models()

    async def close(self) -> None:
        if self._adapter is not None:
            await self._adapter.close()
            self._adapter = None
            self._adapter_config = None
