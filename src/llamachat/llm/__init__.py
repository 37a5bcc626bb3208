from .base import ProviderAdapter
from .factory import create_adapter
from .gateway import LLMGateway, format_error_message, remediation_hints
from .models import (
    ChunkCallback,
    CompletionRequest,
    ImagePayload,
    ProviderConfig,
    ProviderId,
    StreamingResponse,
)
from .prompt import assemble, fold_document
from .providers import GeminiAdapter, OllamaAdapter, OpenRouterAdapter

__all__ = [
    "ChunkCallback",
    "CompletionRequest",
    "GeminiAdapter",
    "ImagePayload",
    "LLMGateway",
    "OllamaAdapter",
    "OpenRouterAdapter",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderId",
    "StreamingResponse",
    "assemble",
    "create_adapter",
    "fold_document",
    "format_error_message",
    "remediation_hints",
]
