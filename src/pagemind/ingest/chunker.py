"""Page chunker: flatten a content item's block tree and pack it into bounded chunks.

Every chunk's ``text`` is a fixed-format context header followed by the chunk
body::

    [Page: Book Recommendations] [Linked to: Reading List, Sci-fi]
    I loved Dune.

The header is only added to ``text`` (what gets embedded and keyword-indexed);
``body`` holds the slice of the flattened item text, so joining the bodies of
all chunks reproduces the flattened text.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from pagemind.db.models import Chunk
from pagemind.source.models import Block, ContentItem

# Whitespace after terminal punctuation, optionally closed by a quote or bracket.
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+|(?<=[.!?][\"')\]])\s+")

_HEADER_RE = re.compile(r"^\[Page: (.*?)\](?: \[Linked to: [^\n]*\])?$")

_IMAGE_TYPES = frozenset({"image", "file", "video"})


def count_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token."""
    return max(1, len(text) // 4)


def flatten_blocks(blocks: list[Block]) -> list[str]:
    """Flatten *blocks* depth-first into paragraph strings.

    Structural nesting is dropped. Media blocks contribute their caption and
    file name only.
    """
    paragraphs: list[str] = []
    for block in blocks:
        if block.type in _IMAGE_TYPES:
            text = _media_text(block)
        else:
            text = block.text.strip()
        if text:
            paragraphs.append(text)
        paragraphs.extend(flatten_blocks(block.children))
    return paragraphs


def flatten_text(item: ContentItem) -> str:
    """Return the item's flattened body text, paragraphs separated by blank lines."""
    return "\n\n".join(flatten_blocks(item.body_blocks))


def _media_text(block: Block) -> str:
    caption = block.caption.strip()
    filename = block.filename.strip()
    if not caption and not filename:
        return ""
    text = f"[Image: {caption}]" if caption else "[Image]"
    if filename:
        text += f" ({filename})"
    return text


def build_header(title: str, linked: list[str]) -> str:
    header = f"[Page: {title}]"
    if linked:
        header += f" [Linked to: {', '.join(linked)}]"
    return header


def header_title(text: str) -> str:
    """Extract the page title from a chunk's header line ('' if there is none)."""
    first_line = text.split("\n", 1)[0]
    match = _HEADER_RE.match(first_line)
    return match.group(1) if match else ""


class PageChunker:
    """Pack an item's flattened text into chunks of at most ``max_tokens`` tokens.

    Strategy:
    - Paragraphs are split into sentences.
    - Sentences are packed greedily; a chunk ends at the paragraph or sentence
      break nearest the budget.
    - A sentence longer than the budget on its own is split at word
      boundaries; a single word longer than the budget is cut hard.
    - The budget applies to the body only, not to the header.
    - An item with a title but no body text yields one header-only chunk so
      the page stays findable by title.

    Pure: no I/O.
    """

    def __init__(self, max_tokens: int = 400) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        self.max_tokens = max_tokens

    def chunk(
        self,
        item: ContentItem,
        link_titles: Mapping[str, str] | None = None,
    ) -> list[Chunk]:
        """Split *item* into ordered Chunks with sequential ``chunk_index``.

        Args:
            item: The full content item.
            link_titles: Known titles for other item ids; links without a
                known title are rendered by id.
        """
        titles = link_titles or {}
        linked = [titles.get(link) or link for link in dict.fromkeys(item.outbound_links)]
        header = build_header(item.title, linked)

        bodies = self._pack(flatten_blocks(item.body_blocks))
        if not bodies:
            if not item.title.strip():
                return []
            bodies = [""]

        return [
            Chunk(
                item_id=item.item_id,
                chunk_index=i,
                text=f"{header}\n{body}",
                body=body,
                source_url=item.url,
                tags=list(item.tags),
                created_time=item.created_time,
            )
            for i, body in enumerate(bodies)
        ]

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(self, paragraphs: list[str]) -> list[str]:
        # (piece, starts_new_paragraph)
        pieces: list[tuple[str, bool]] = []
        for paragraph in paragraphs:
            first = True
            for sentence in _split_sentences(paragraph):
                for piece in self._fit(sentence):
                    pieces.append((piece, first))
                    first = False

        bodies: list[str] = []
        current = ""
        for piece, new_paragraph in pieces:
            if not current:
                current = piece
                continue
            candidate = current + ("\n\n" if new_paragraph else " ") + piece
            if count_tokens(candidate) <= self.max_tokens:
                current = candidate
            else:
                bodies.append(current)
                current = piece
        if current:
            bodies.append(current)
        return bodies

    def _fit(self, sentence: str) -> list[str]:
        """Return *sentence* as-is, or split on words when it exceeds the budget."""
        if count_tokens(sentence) <= self.max_tokens:
            return [sentence]

        max_chars = self.max_tokens * 4
        pieces: list[str] = []
        current = ""
        for word in sentence.split():
            while len(word) > max_chars:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(word[:max_chars])
                word = word[max_chars:]
            if not word:
                continue
            candidate = f"{current} {word}" if current else word
            if count_tokens(candidate) <= self.max_tokens:
                current = candidate
            else:
                pieces.append(current)
                current = word
        if current:
            pieces.append(current)
        return pieces


def _split_sentences(paragraph: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END_RE.split(paragraph) if s.strip()]
