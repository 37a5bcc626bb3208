from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from ...constants import (
    APP_REFERER,
    APP_TITLE,
    DEFAULT_OPENROUTER_MODEL,
    DEFAULT_OPENROUTER_URL,
    MAX_OUTPUT_TOKENS,
    NO_RESPONSE_TEXT,
)
from ...conversation.models import Message, Role
from ...errors import ConfigError, ProviderError
from ..base import ProviderAdapter
from ..models import CompletionRequest, ImagePayload, ProviderId


def to_router_messages(
    messages: list[Message],
    image: ImagePayload | None = None,
) -> list[dict[str, Any]]:
    """Convert a transcript to chat-completions turns.

    Every turn is a plain {role, content} pair. With an image, only the
    last user turn is restructured into a text part plus an image_url part
    carrying a base64 data URI.

    Returns:
        List of message dicts with 'role' and 'content' keys
    """
    turns: list[dict[str, Any]] = [
        {"role": msg.role.value, "content": msg.content}
        for msg in messages
    ]

    if image is not None:
        for turn in reversed(turns):
            if turn["role"] == Role.USER.value:
                turn["content"] = [
                    {"type": "text", "text": turn["content"]},
                    {"type": "image_url", "image_url": {"url": image.data_uri}},
                ]
                break

    return turns


class OpenRouterAdapter(ProviderAdapter):
    """OpenRouter provider using its OpenAI-compatible API.

    Hidden design decisions:
    - OpenRouter client initialization (via OpenAI SDK)
    - Structured turn-by-turn history instead of a flattened prompt
    - Attribution headers expected by OpenRouter
    - Retries disabled so failures reach the caller once
    """

    provider_id = ProviderId.OPENROUTER
    display_name = "OpenRouter"

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_OPENROUTER_MODEL,
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize OpenRouter provider.

        Args:
            api_key: OpenRouter API key
            model: Default model to use (e.g. 'anthropic/claude-3-opus')
            base_url: API base URL (default: https://openrouter.ai/api/v1)
            **client_kwargs: Additional kwargs for AsyncOpenAI client

        Raises:
            ConfigError: If api_key is missing
        """
        if not api_key:
            raise ConfigError("OpenRouter API key not configured")

        self._model = model
        client_kwargs.setdefault("max_retries", 0)
        client_kwargs.setdefault("default_headers", {
            "HTTP-Referer": APP_REFERER,
            "X-Title": APP_TITLE,
        })
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or DEFAULT_OPENROUTER_URL,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    async def complete(self, request: CompletionRequest) -> str:
        """Generate an answer through OpenRouter.

        Args:
            request: Normalized completion request

        Returns:
            Answer text from choices[0].message.content
        """
        try:
            completion = await self._client.chat.completions.create(
                model=request.model or self._model,
                messages=to_router_messages(request.messages, request.image),
                temperature=request.temperature,
                max_tokens=MAX_OUTPUT_TOKENS,
            )
        except APIStatusError as e:
            raise ProviderError(self.display_name, e.status_code, e.response.text) from e
        except APIConnectionError as e:
            raise ProviderError(self.display_name, None, str(e)) from e

        if completion.choices:
            return completion.choices[0].message.content or NO_RESPONSE_TEXT
        return NO_RESPONSE_TEXT

    async def close(self) -> None:
        """Close the OpenRouter client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()
