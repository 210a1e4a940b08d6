"""Content provider boundary.

The provider is an external collaborator; pagemind only relies on this
protocol. Implementations raise the pagemind.errors fetch taxonomy:
ProviderRateLimited for throttling, TransientFetchError for network trouble,
ProviderAuthError / NotFoundError for permanent failures.
"""

from __future__ import annotations

from typing import Protocol

from pagemind.source.models import ChangePage, ContentItem


class ContentProvider(Protocol):
    def list_changed(self, since: str | None, cursor: str | None = None) -> ChangePage:
        """Return one page of items modified after *since* (None = everything)."""
        ...

    def fetch(self, item_id: str) -> ContentItem:
        """Return the full item including its body tree."""
        ...

    def list_all_ids(self) -> list[str]:
        """Return the ids of every live (non-archived) item."""
        ...
