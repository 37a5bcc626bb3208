from .gemini import GeminiAdapter
from .ollama import OllamaAdapter
from .openrouter import OpenRouterAdapter

__all__ = ["GeminiAdapter", "OllamaAdapter", "OpenRouterAdapter"]
