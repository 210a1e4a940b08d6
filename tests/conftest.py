"""Shared pytest fixtures and test doubles."""

from __future__ import annotations

import hashlib
import math
import re
import threading

import pytest

from pagemind.db.connection import Database
from pagemind.db.repository import Repository
from pagemind.db.schema import initialize
from pagemind.errors import NotFoundError
from pagemind.ingest.chunker import PageChunker
from pagemind.source.fetcher import RateLimitedFetcher, TokenBucket
from pagemind.source.models import Block, ChangePage, ContentItem, ItemSummary
from pagemind.sync.engine import SyncEngine
from pagemind.sync.state import SyncState, SyncStateStore


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".pagemind.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


# ---------------------------------------------------------------------------
# Embedder double
# ---------------------------------------------------------------------------

# Words folded onto one concept so paraphrases land near each other.
_CONCEPTS = {
    "study": "learn",
    "studying": "learn",
    "learn": "learn",
    "learning": "learn",
    "books": "book",
    "novel": "book",
    "novels": "book",
}

_IGNORED = frozenset(
    "a an and are as at be do for i in is it me my of on should the this to what was".split()
)


class HashEmbedder:
    """Deterministic bag-of-words embedder: each word hashes to one dimension.

    Texts sharing words (or concepts) get a high cosine similarity; unrelated
    texts are near-orthogonal. Dimension 0 carries a small constant so no
    vector is all zeros.
    """

    def __init__(self, model: str = "fake/hash-embed", dimensions: int = 2048) -> None:
        self.model = model
        self.dimensions = dimensions
        self.calls = 0
        self._lock = threading.Lock()

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls += 1
        vector = [0.0] * self.dimensions
        vector[0] = 0.05
        for word in re.findall(r"\w+", text.lower()):
            if word in _IGNORED:
                continue
            word = _CONCEPTS.get(word, word)
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vector[1 + int.from_bytes(digest[:4], "big") % (self.dimensions - 1)] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]


@pytest.fixture
def embedder():
    return HashEmbedder()


# ---------------------------------------------------------------------------
# Content provider double
# ---------------------------------------------------------------------------


def make_item(
    item_id: str,
    revision: str,
    title: str = "",
    paragraphs: list[str] | None = None,
    links: list[str] | None = None,
    tags: list[str] | None = None,
    archived: bool = False,
) -> ContentItem:
    return ContentItem(
        item_id=item_id,
        revision_marker=revision,
        title=title,
        body_blocks=[Block(type="paragraph", text=p) for p in paragraphs or []],
        outbound_links=list(links or []),
        tags=list(tags or []),
        url=f"https://workspace.example.com/{item_id}",
        created_time=revision,
        archived=archived,
    )


class FakeProvider:
    """In-memory ContentProvider.

    ``items`` holds the live workspace. ``deleted`` is the deletion feed
    (None = the provider has no deletion feed). ``fetch_errors`` maps an
    item id to an exception raised by fetch().
    """

    def __init__(self, page_size: int = 50, deletion_feed: bool = True) -> None:
        self.items: dict[str, ContentItem] = {}
        self.deleted: list[str] | None = [] if deletion_feed else None
        self.fetch_errors: dict[str, Exception] = {}
        self.page_size = page_size
        self.fetched: list[str] = []
        self.list_all_calls = 0

    def put(self, item: ContentItem) -> None:
        self.items[item.item_id] = item

    def remove(self, item_id: str) -> None:
        self.items.pop(item_id, None)
        if self.deleted is not None:
            self.deleted.append(item_id)

    def list_changed(self, since: str | None, cursor: str | None = None) -> ChangePage:
        changed = sorted(
            (i for i in self.items.values() if since is None or i.revision_marker > since),
            key=lambda i: (i.revision_marker, i.item_id),
        )
        start = int(cursor) if cursor else 0
        page = changed[start : start + self.page_size]
        end = start + len(page)
        return ChangePage(
            items=[ItemSummary(i.item_id, i.revision_marker, i.archived) for i in page],
            deleted_ids=list(self.deleted) if self.deleted is not None and start == 0 else None,
            next_cursor=str(end) if end < len(changed) else None,
        )

    def fetch(self, item_id: str) -> ContentItem:
        self.fetched.append(item_id)
        if item_id in self.fetch_errors:
            raise self.fetch_errors[item_id]
        if item_id not in self.items:
            raise NotFoundError(f"no item {item_id}")
        return self.items[item_id]

    def list_all_ids(self) -> list[str]:
        self.list_all_calls += 1
        return [i.item_id for i in self.items.values() if not i.archived]


@pytest.fixture
def provider():
    return FakeProvider()


def build_engine(
    conn,
    provider,
    embedder,
    max_tokens: int = 400,
    clock=None,
    full_reconcile_seconds: float = 86_400.0,
) -> SyncEngine:
    """SyncEngine over *provider* with an unthrottled fetcher."""
    repo = Repository(conn)
    fetcher = RateLimitedFetcher(
        provider,
        max_attempts=2,
        base_delay=0.0,
        max_delay=0.0,
        bucket=TokenBucket(rate=1_000_000.0, capacity=1_000),
        sleep=lambda _s: None,
    )
    kwargs = {"clock": clock} if clock is not None else {}
    return SyncEngine(
        fetcher,
        SyncStateStore(conn, lock=repo.lock),
        repo,
        embedder,
        PageChunker(max_tokens),
        SyncState(),
        full_reconcile_seconds=full_reconcile_seconds,
        **kwargs,
    )
