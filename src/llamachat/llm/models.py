import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..conversation.models import Message

ChunkCallback = Callable[[str], Awaitable[None] | None]


class ProviderId(str, Enum):
    """Known provider identifiers."""

    OLLAMA = "ollama"          # Local inference server
    GEMINI = "gemini"          # Hosted generative-content API
    OPENROUTER = "openrouter"  # Hosted OpenAI-compatible router


class ProviderConfig(BaseModel):
    """The single active provider selection.

    provider_id stays a plain string so that a configuration naming an
    unknown provider is representable and fails at dispatch time.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    provider_id: str = Field(description="Provider identifier, see ProviderId")
    endpoint_url: str | None = Field(default=None, description="Base URL override")
    api_key: str | None = Field(default=None, repr=False)
    model_id: str = Field(description="Model name as the provider knows it")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)


class ImagePayload(BaseModel):
    """Base64 image ready to be inlined into a provider request."""

    model_config = ConfigDict(frozen=True)

    data: str = Field(repr=False, description="Base64-encoded image bytes")
    mime_type: str = "image/jpeg"

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class CompletionRequest(BaseModel):
    """Provider-neutral completion request built by the gateway."""

    model_config = ConfigDict(frozen=True)

    messages: list[Message] = Field(description="Transcript with context already folded in")
    image: ImagePayload | None = None
    model: str
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)


async def _single_chunk(text: str) -> AsyncIterator[str]:
    yield text


class StreamingResponse:
    """Async channel of text chunks produced by a provider.

    Acts as an async iterator for text chunks while accumulating the full
    text in arrival order and storing token usage that becomes available
    at the end of the stream. Closing the channel cancels the underlying
    request.

    Usage:
        stream = await adapter.stream(request)
        async for chunk in stream:
            print(chunk, end="")
        print(stream.text, stream.usage)
    """

    def __init__(self, async_iter: AsyncIterator[str] | None = None):
        """Initialize with an async iterator of text chunks.

        Args:
            async_iter: Async iterator yielding text chunks; may be bound
                later with bind() when the producer needs this object
        """
        self._iter = async_iter
        self._usage: dict[str, Any] | None = None
        self._parts: list[str] = []
        self._closed = False

    @classmethod
    def from_text(cls, text: str) -> "StreamingResponse":
        """Wrap an atomic response as a one-chunk stream."""
        return cls(_single_chunk(text))

    def bind(self, async_iter: AsyncIterator[str]) -> None:
        self._iter = async_iter

    @property
    def text(self) -> str:
        """Everything received so far."""
        return "".join(self._parts)

    @property
    def usage(self) -> dict[str, Any] | None:
        """Get token usage info (available after iteration completes)."""
        return self._usage

    @property
    def closed(self) -> bool:
        return self._closed

    def set_usage(self, usage: dict[str, Any]) -> None:
        """Set token usage info (called by provider at end of stream)."""
        self._usage = usage

    def __aiter__(self) -> "StreamingResponse":
        return self

    async def __anext__(self) -> str:
        if self._closed or self._iter is None:
            raise StopAsyncIteration
        chunk = await self._iter.__anext__()
        self._parts.append(chunk)
        return chunk

    async def collect(self, on_chunk: ChunkCallback | None = None) -> str:
        """Drain the stream, handing each chunk to on_chunk in order.

        Returns:
            The accumulated text
        """
        async for chunk in self:
            if on_chunk is not None:
                result = on_chunk(chunk)
                if inspect.isawaitable(result):
                    await result
        return self.text

    async def aclose(self) -> None:
        """Close the channel, cancelling the in-flight request if any."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._iter, "aclose", None)
        if aclose is not None:
            await aclose()
