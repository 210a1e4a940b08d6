"""Domain models for the pagemind index."""

from __future__ import annotations

from dataclasses import dataclass, field


def make_chunk_id(item_id: str, chunk_index: int) -> str:
    """Deterministic chunk id: re-chunking an item yields the same ids."""
    return f"{item_id}_chunk_{chunk_index}"


@dataclass
class Chunk:
    """One retrievable unit of a content item.

    ``text`` is what gets embedded and keyword-indexed: the context header
    followed by ``body``. ``body`` is the slice of the item's flattened text.
    """

    item_id: str
    chunk_index: int
    text: str
    body: str = ""
    source_url: str = ""
    tags: list[str] = field(default_factory=list)
    created_time: str = ""
    indexed_at: str | None = None
    rowid: int | None = None  # set once stored; None for unsaved chunks

    @property
    def chunk_id(self) -> str:
        return make_chunk_id(self.item_id, self.chunk_index)


@dataclass
class Fact:
    """A durable statement learned from conversation (facts partition)."""

    fact_id: str
    content: str
    fact_type: str
    created_time: str
    source_turn_ref: str | None = None
    embedding: list[float] | None = None
    rowid: int | None = None


@dataclass
class SyncRecord:
    """Bookkeeping for one indexed content item."""

    item_id: str
    last_indexed_revision: str
    chunk_ids: list[str] = field(default_factory=list)
    title: str = ""
    indexed_at: str | None = None
