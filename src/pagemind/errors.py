"""Exception hierarchy for pagemind.

All errors raised by the sync, retrieval and memory layers inherit from
PagemindError so callers can isolate failures per item or per sub-query.
"""

from __future__ import annotations


class PagemindError(Exception):
    """Base exception for all pagemind errors.

    Args:
        message: Human-readable error message.
        context: Optional dict with structured details (item id, attempt, ...).
    """

    def __init__(self, message: str, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ------------------------------------------------------------------
# Content provider / fetch errors
# ------------------------------------------------------------------


class FetchError(PagemindError):
    """Base class for failures talking to the content provider."""


class TransientFetchError(FetchError):
    """Network timeout, connection reset or 5xx. Retried with backoff."""


class ProviderRateLimited(FetchError):
    """Provider signalled throttling (HTTP 429 or equivalent).

    Attributes:
        retry_after: Seconds the provider asked us to wait, if it said so.
    """

    def __init__(
        self,
        message: str = "rate limited by provider",
        retry_after: float | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message, context)
        self.retry_after = retry_after


class RateLimitExceeded(FetchError):
    """Throttling persisted past the fetcher's retry budget."""


class ProviderAuthError(FetchError):
    """Authentication or permission failure. Never retried."""


class NotFoundError(FetchError):
    """The requested item does not exist at the provider. Never retried."""


# ------------------------------------------------------------------
# Embedding / index / extraction errors
# ------------------------------------------------------------------


class EmbeddingError(PagemindError):
    """The embedding model failed, timed out, or returned a bad vector."""


class IndexWriteError(PagemindError):
    """A write to the shared index failed part-way through an apply step."""


class ExtractionError(PagemindError):
    """Fact extraction failed. Facts are best-effort, so this is logged only."""
