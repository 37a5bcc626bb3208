"""Session and logging setup for the CLI.

Centralizes creation of the chat session from options and environment
variables. Hides configuration details from command implementations.
"""

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from ..session import ChatSession, create_chat_session

# Default console for output
_console = Console()

LOG_LEVEL_ENV_VAR = "LLAMACHAT_LOG_LEVEL"
BACKEND_ENV_VAR = "LLAMACHAT_BACKEND"


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route library logging through Rich.

    Args:
        verbose: Log at DEBUG regardless of the environment
        console: Optional Rich console to log to

    Environment variables:
        LLAMACHAT_LOG_LEVEL: Level name when not verbose (default: WARNING)
    """
    level = "DEBUG" if verbose else os.getenv(LOG_LEVEL_ENV_VAR, "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or _console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # SDK transport chatter is only useful when debugging
    for noisy in ("httpx", "httpcore", "openai", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_session(home: Path | None = None, backend: str | None = None) -> ChatSession:
    """Create a chat session from options and environment variables.

    Args:
        home: Data home override
        backend: Durable store backend override

    Returns:
        ChatSession (not started)

    Environment variables:
        LLAMACHAT_HOME: Data home (default: ~/.llamachat)
        LLAMACHAT_BACKEND: Durable store backend, file or sqlite (default: file)
    """
    return create_chat_session(
        home=home,
        backend=backend or os.getenv(BACKEND_ENV_VAR, "file"),
    )
