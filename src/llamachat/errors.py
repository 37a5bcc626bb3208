"""Error taxonomy for llamachat.

Every failure the chat core can surface derives from LlamaChatError so
callers can catch the whole family at one seam and still distinguish
configuration problems, provider rejections and persistence failures.
"""


class LlamaChatError(Exception):
    """Base class for llamachat errors."""

    def is_retryable(self) -> bool:
        """Override in subclasses to control retry behavior."""
        return False


class ConfigError(LlamaChatError):
    """Required credential or provider setting is missing (never retried)."""

    def __init__(self, message: str):
        super().__init__(message)


class ProviderError(LlamaChatError):
    """Provider answered with a non-2xx status or could not be reached.

    Attributes:
        status: HTTP status code, or None when the transport failed
        body: Raw response body (or transport error text)
    """

    def __init__(self, provider: str, status: int | None, body: str):
        self.provider = provider
        self.status = status
        self.body = body
        if status is None:
            super().__init__(f"{provider} request failed: {body}")
        else:
            super().__init__(f"{provider} Error {status}: {body}")


class BlockedError(LlamaChatError):
    """Provider refused the prompt on content-policy grounds."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} blocked: {reason}")


class UnknownProviderError(LlamaChatError):
    """Configuration selects a provider with no matching adapter."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Unknown provider: {provider_id}")


class AttachmentProcessingError(LlamaChatError):
    """Image or document could not be read, converted or parsed."""

    def __init__(self, message: str, url: str | None = None):
        msg = message
        if url:
            msg += f" ({url})"
        super().__init__(msg)
        self.url = url


class SyncError(LlamaChatError):
    """Durable chat store I/O failed."""

    def is_retryable(self) -> bool:
        return True


class SendInProgressError(LlamaChatError):
    """A message send was attempted while another one is outstanding."""

    def __init__(self, chat_id: str | None = None):
        self.chat_id = chat_id
        super().__init__("A message is already being sent")
