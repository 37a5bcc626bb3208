"""Google Gemini provider implementation.

Uses the official Google GenAI SDK for async content generation.
Reference: https://github.com/googleapis/python-genai

Note: Gemini reports prompts rejected by its safety filters through
prompt_feedback.block_reason on an otherwise successful response; this
adapter turns that into BlockedError so callers can tell it apart from an
HTTP failure.
"""

import base64
import binascii
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ...constants import DEFAULT_GEMINI_MODEL, MAX_OUTPUT_TOKENS, NO_RESPONSE_TEXT
from ...errors import AttachmentProcessingError, BlockedError, ConfigError, ProviderError
from ..base import ProviderAdapter
from ..models import CompletionRequest, ProviderId
from ..prompt import assemble

logger = logging.getLogger(__name__)


class GeminiAdapter(ProviderAdapter):
    """Google Gemini provider.

    Hidden design decisions:
    - Google GenAI client initialization
    - Single-turn content built from the whole flattened transcript
    - Inline image part placed before the text part
    - Safety block detection
    """

    provider_id = ProviderId.GEMINI
    display_name = "Gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_GEMINI_MODEL,
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Google AI API key
            model: Default model (gemini-2.5-pro, gemini-2.5-flash, ...)
            base_url: Optional API endpoint override
            **client_kwargs: Additional kwargs for genai.Client

        Raises:
            ConfigError: If api_key is missing
        """
        if not api_key:
            raise ConfigError("Gemini API key not configured")

        self._model = model
        if base_url:
            client_kwargs.setdefault("http_options", types.HttpOptions(base_url=base_url))
        self._client = genai.Client(api_key=api_key, **client_kwargs)

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def _build_contents(self, request: CompletionRequest) -> list[types.Content]:
        parts: list[types.Part] = []
        if request.image is not None:
            try:
                image_bytes = base64.b64decode(request.image.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise AttachmentProcessingError(f"Invalid base64 image data: {e}") from e
            parts.append(types.Part(
                inline_data=types.Blob(mime_type=request.image.mime_type, data=image_bytes)
            ))
        parts.append(types.Part(text=assemble(request.messages)))
        return [types.Content(role="user", parts=parts)]

    def _extract_content(self, response: types.GenerateContentResponse) -> str:
        """Extract text from candidates[0].content.parts[0].text, with a fallback."""
        if response.candidates:
            content = response.candidates[0].content
            if content and content.parts and content.parts[0].text:
                return content.parts[0].text
        return NO_RESPONSE_TEXT

    async def complete(self, request: CompletionRequest) -> str:
        """Generate an answer using Google Gemini.

        Args:
            request: Normalized completion request

        Returns:
            Answer text

        Raises:
            BlockedError: Prompt rejected by safety filters
            ProviderError: API returned an error status
        """
        model_to_use = request.model or self._model
        config = types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=model_to_use,
                contents=self._build_contents(request),
                config=config
            )
        except genai_errors.APIError as e:
            raise ProviderError(self.display_name, e.code, e.message or str(e)) from e

        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason:
            reason = getattr(feedback.block_reason, "value", str(feedback.block_reason))
            logger.info("Gemini blocked prompt: %s", reason)
            raise BlockedError(self.display_name, reason)

        return self._extract_content(response)

    async def close(self) -> None:
        """Close the Gemini client.

        Note: The Google GenAI client doesn't require explicit closing,
        but we implement this for interface consistency.
        """
        pass
