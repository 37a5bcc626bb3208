"""Configuration constants.

Centralizes magic numbers and default values shared across modules.
"""

# Conversation titles
DEFAULT_CHAT_TITLE = "New Chat"
UNTITLED_CHAT_TITLE = "Untitled Chat"
TITLE_MAX_LENGTH = 50  # Characters before the title is truncated
TITLE_ELLIPSIS = "..."

# Prompt assembly
DEFAULT_DOCUMENT_QUESTION = "Please analyze this document."
NO_RESPONSE_TEXT = "No response"

# Provider defaults
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2:3b"
DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"
DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "anthropic/claude-3-opus"
DEFAULT_TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 8192  # Hosted providers only
APP_TITLE = "Llama Chat Interface"  # Sent to OpenRouter as X-Title
APP_REFERER = "http://localhost:5000"  # Sent to OpenRouter as HTTP-Referer

# Persistence
SAVE_DEBOUNCE_SECONDS = 3.0  # Collapses rapid successive saves of one chat
CHAT_FILE_PREFIX = "chat_"
CHAT_FILE_SUFFIX = ".json"

# Data home layout
HOME_ENV_VAR = "LLAMACHAT_HOME"
DEFAULT_HOME_DIRNAME = ".llamachat"
SETTINGS_FILENAME = "settings.json"
ENV_FILENAME = ".env"
LOCAL_CACHE_FILENAME = "chats.json"
CACHE_DIRNAME = "cache"
UPLOADS_DIRNAME = "uploads"
SQLITE_FILENAME = "chats.db"
