from abc import ABC, abstractmethod
from typing import Any, ClassVar

from .models import ChunkCallback, CompletionRequest, ProviderId, StreamingResponse


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters.

    This module hides the design decision of which LLM provider answers a
    request. Implementations must handle provider-specific details like:
    - API client setup and authentication
    - Request/response wire format conversion
    - Mapping provider failures onto ProviderError / BlockedError

    Providers differ in whether they take a structured turn list or one
    flattened prompt, and in whether they stream. Every adapter returns the
    same thing: the final text, optionally preceded by chunk callbacks.

    Supports async context manager protocol for proper resource cleanup:
        async with adapter:
            text = await adapter.send(request)
        # Automatically cleaned up
    """

    provider_id: ClassVar[ProviderId]
    display_name: ClassVar[str]
    supports_streaming: ClassVar[bool] = False

    async def send(self, request: CompletionRequest, on_chunk: ChunkCallback | None = None) -> str:
        """Run a completion, streaming into on_chunk when supported.

        Adapters that cannot stream ignore on_chunk and answer atomically.

        Args:
            request: Normalized completion request
            on_chunk: Optional callback invoked once per chunk, in order

        Returns:
            The complete response text

        Raises:
            ProviderError: Provider returned a non-2xx status or was unreachable
            BlockedError: Provider refused the prompt
        """
        if on_chunk is None or not self.supports_streaming:
            return await self.complete(request)

        stream = await self.stream(request)
        try:
            return await stream.collect(on_chunk)
        finally:
            await stream.aclose()

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> str:
        """Generate a complete (non-streaming) answer.

        Args:
            request: Normalized completion request

        Returns:
            Response text, or a fallback string when the provider sent none
        """
        pass

    async def stream(self, request: CompletionRequest) -> StreamingResponse:
        """Generate a streaming answer.

        Atomic providers answer with a single-chunk stream.

        Returns:
            StreamingResponse that yields text chunks and captures usage info
        """
        return StreamingResponse.from_text(await self.complete(request))

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""
        pass

    async def __aenter__(self) -> "ProviderAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
