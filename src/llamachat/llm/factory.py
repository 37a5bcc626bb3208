from typing import Any

from ..errors import UnknownProviderError
from .base import ProviderAdapter
from .models import ProviderConfig, ProviderId
from .providers import GeminiAdapter, OllamaAdapter, OpenRouterAdapter


def create_adapter(config: ProviderConfig, **client_kwargs: Any) -> ProviderAdapter:
    """Create the adapter for a provider configuration.

    This factory function hides the instantiation logic for different providers.

    Args:
        config: Active provider configuration
        **client_kwargs: Extra kwargs for the provider's HTTP/SDK client
            For ollama: httpx.AsyncClient kwargs, or http_client=...
            For gemini: genai.Client kwargs
            For openrouter: AsyncOpenAI kwargs, e.g. http_client=...

    Returns:
        Initialized provider adapter

    Raises:
        UnknownProviderError: If provider_id names no known provider
        ConfigError: If a hosted provider has no API key

    Examples:
        >>> adapter = create_adapter(ProviderConfig(
        ...     provider_id="ollama",
        ...     endpoint_url="http://localhost:11434",
        ...     model_id="llama3.2:3b",
        ... ))
    """
    try:
        provider = ProviderId(config.provider_id.lower())
    except ValueError:
        raise UnknownProviderError(config.provider_id) from None

    if provider == ProviderId.OLLAMA:
        return OllamaAdapter(
            base_url=config.endpoint_url,
            model=config.model_id,
            **client_kwargs
        )

    if provider == ProviderId.GEMINI:
        return GeminiAdapter(
            api_key=config.api_key,
            model=config.model_id,
            base_url=config.endpoint_url,
            **client_kwargs
        )

    return OpenRouterAdapter(
        api_key=config.api_key,
        model=config.model_id,
        base_url=config.endpoint_url,
        **client_kwargs
    )
