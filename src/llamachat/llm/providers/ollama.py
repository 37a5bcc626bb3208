"""Local Ollama inference server provider.

Talks to the server's native /api/generate endpoint over httpx. Streaming
responses arrive as newline-delimited JSON objects; a line that fails to
parse is skipped rather than failing the whole answer.
Reference: https://github.com/ollama/ollama/blob/main/docs/api.md
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ...constants import DEFAULT_OLLAMA_MODEL, DEFAULT_OLLAMA_URL, NO_RESPONSE_TEXT
from ...errors import ProviderError
from ..base import ProviderAdapter
from ..models import CompletionRequest, ProviderId, StreamingResponse
from ..prompt import assemble

logger = logging.getLogger(__name__)

# Generation can take minutes on local hardware; only connecting is bounded
DEFAULT_TIMEOUT = httpx.Timeout(None, connect=10.0)


class GenerateOptions(BaseModel):
    temperature: float


class GenerateRequest(BaseModel):
    """Body of POST /api/generate."""

    model: str
    prompt: str
    stream: bool
    images: list[str] | None = None
    options: GenerateOptions


class GenerateChunk(BaseModel):
    """One /api/generate response object (a whole answer when not streaming)."""

    model_config = ConfigDict(extra="ignore")

    response: str = ""
    done: bool = False
    prompt_eval_count: int | None = None
    eval_count: int | None = None

    def usage(self) -> dict[str, int]:
        prompt_tokens = self.prompt_eval_count or 0
        completion_tokens = self.eval_count or 0
        return {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }


def parse_generate_line(line: str) -> GenerateChunk | None:
    """Decode one NDJSON line, returning None for blank or malformed lines."""
    line = line.strip()
    if not line:
        return None
    try:
        return GenerateChunk.model_validate_json(line)
    except ValidationError:
        logger.debug("Skipping undecodable stream line: %.80s", line)
        return None


async def iter_generate_chunks(lines: AsyncIterator[str]) -> AsyncIterator[GenerateChunk]:
    """Decode a stream of NDJSON lines, preserving arrival order."""
    async for line in lines:
        chunk = parse_generate_line(line)
        if chunk is not None:
            yield chunk


class OllamaAdapter(ProviderAdapter):
    """Local Ollama provider.

    Hidden design decisions:
    - Flattened text prompt rather than structured turns
    - Single base64 image passed in the native `images` field
    - NDJSON streaming with opportunistic decoding
    """

    provider_id = ProviderId.OLLAMA
    display_name = "Ollama"
    supports_streaming = True

    def __init__(
        self,
        base_url: str | None = None,
        model: str = DEFAULT_OLLAMA_MODEL,
        http_client: httpx.AsyncClient | None = None,
        **client_kwargs: Any
    ):
        """Initialize Ollama provider.

        Args:
            base_url: Server root (default: http://localhost:11434)
            model: Default model to use
            http_client: Preconfigured httpx client (tests, proxies)
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        self._base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self._model = model
        client_kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
        self._client = http_client or httpx.AsyncClient(**client_kwargs)

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def _build_payload(self, request: CompletionRequest, stream: bool) -> dict[str, Any]:
        payload = GenerateRequest(
            model=request.model or self._model,
            prompt=assemble(request.messages),
            stream=stream,
            images=[request.image.data] if request.image else None,
            options=GenerateOptions(temperature=request.temperature),
        )
        return payload.model_dump(exclude_none=True)

    async def complete(self, request: CompletionRequest) -> str:
        """Generate a complete answer with a single non-streaming request."""
        try:
            response = await self._client.post(
                f"{self._base_url}/api/generate",
                json=self._build_payload(request, stream=False),
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.display_name, None, str(e)) from e

        if response.is_error:
            raise ProviderError(self.display_name, response.status_code, response.text)

        try:
            chunk = GenerateChunk.model_validate_json(response.content)
        except ValidationError as e:
            raise ProviderError(self.display_name, response.status_code, response.text) from e
        return chunk.response or NO_RESPONSE_TEXT

    async def stream(self, request: CompletionRequest) -> StreamingResponse:
        """Generate a streaming answer.

        Returns:
            StreamingResponse that yields text chunks and captures usage info
        """
        response = StreamingResponse()
        response.bind(self._stream_generator(self._build_payload(request, stream=True), response))
        return response

    async def _stream_generator(
        self,
        payload: dict[str, Any],
        sink: StreamingResponse,
    ) -> AsyncIterator[str]:
        """Internal generator that yields text and captures usage from the final line."""
        try:
            async with self._client.stream(
                "POST", f"{self._base_url}/api/generate", json=payload
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderError(self.display_name, response.status_code, body)

                async for chunk in iter_generate_chunks(response.aiter_lines()):
                    if chunk.done:
                        sink.set_usage(chunk.usage())
                    if chunk.response:
                        yield chunk.response
        except httpx.HTTPError as e:
            raise ProviderError(self.display_name, None, str(e)) from e

    async def list_models(self) -> list[str]:
        """List the models installed on the server (GET /api/tags)."""
        try:
            response = await self._client.get(f"{self._base_url}/api/tags")
        except httpx.HTTPError as e:
            raise ProviderError(self.display_name, None, str(e)) from e
        if response.is_error:
            raise ProviderError(self.display_name, response.status_code, response.text)

        models = response.json().get("models") or []
        return [model["name"] for model in models if "name" in model]

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()
