"""Content provider access: item models, the provider protocol and the rate-limited fetcher."""

from pagemind.source.fetcher import RateLimitedFetcher, TokenBucket
from pagemind.source.http import HttpContentProvider
from pagemind.source.models import Block, ChangePage, ContentItem, ItemSummary
from pagemind.source.provider import ContentProvider

__all__ = [
    "Block",
    "ChangePage",
    "ContentItem",
    "ContentProvider",
    "HttpContentProvider",
    "ItemSummary",
    "RateLimitedFetcher",
    "TokenBucket",
]
