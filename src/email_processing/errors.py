"""
Error types shared across the inbox processing pipeline.

Providers raise these so that tier cascades can tell a transport failure
from a model that answered with something unusable. None of them reach
API callers except SyncError, which carries the one user-visible message.
"""


class InboxAssistantError(Exception):
    """Base class for all inbox assistant errors."""
    pass


class ProviderError(InboxAssistantError):
    """An LLM provider could not be reached or returned an error status."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class MalformedResponseError(ProviderError):
    """A provider answered, but the payload was not the JSON we asked for."""
    pass


class EmbeddingError(InboxAssistantError):
    """An embedding backend failed or returned vectors of the wrong shape."""
    pass


class SyncError(InboxAssistantError):
    """Upstream mailbox sync failed before the response deadline."""

    USER_MESSAGE = "Failed to sync emails."

    def __init__(self, cause: str = ""):
        self.cause = cause
        super().__init__(self.USER_MESSAGE)
