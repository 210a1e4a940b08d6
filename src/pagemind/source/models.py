"""Content provider data model: items, blocks, and change listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Block:
    """One node of an item's body tree.

    Attributes:
        type: Block kind as reported by the provider ("paragraph", "heading",
            "bulleted_list_item", "code", "image", ...).
        text: Plain text of the block (empty for media blocks).
        caption: Caption of an image block.
        filename: File name of an image block.
        children: Nested blocks, in order.
    """

    type: str = "paragraph"
    text: str = ""
    caption: str = ""
    filename: str = ""
    children: list[Block] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        return cls(
            type=str(data.get("type", "paragraph")),
            text=str(data.get("text") or ""),
            caption=str(data.get("caption") or ""),
            filename=str(data.get("filename") or ""),
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )


@dataclass
class ContentItem:
    """A full page-like document fetched from the provider. Read-only to pagemind."""

    item_id: str
    revision_marker: str
    title: str = ""
    body_blocks: list[Block] = field(default_factory=list)
    outbound_links: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    url: str = ""
    created_time: str = ""
    archived: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentItem:
        return cls(
            item_id=str(data["id"]),
            revision_marker=str(data["revision"]),
            title=str(data.get("title") or ""),
            body_blocks=[Block.from_dict(b) for b in data.get("blocks") or []],
            outbound_links=[str(x) for x in data.get("links") or []],
            tags=[str(t) for t in data.get("tags") or []],
            url=str(data.get("url") or ""),
            created_time=str(data.get("created_time") or data["revision"]),
            archived=bool(data.get("archived", False)),
        )


@dataclass
class ItemSummary:
    """Listing entry: enough to decide whether an item needs re-indexing."""

    item_id: str
    revision_marker: str
    archived: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemSummary:
        return cls(
            item_id=str(data["id"]),
            revision_marker=str(data["revision"]),
            archived=bool(data.get("archived", False)),
        )


@dataclass
class ChangePage:
    """One page of a "changed since" listing.

    Attributes:
        items: Summaries of items modified after the requested marker.
        deleted_ids: Items deleted since the marker, when the provider has a
            deletion feed. None means the provider has no deletion feed.
        next_cursor: Opaque cursor for the next page, or None on the last page.
    """

    items: list[ItemSummary] = field(default_factory=list)
    deleted_ids: list[str] | None = None
    next_cursor: str | None = None
