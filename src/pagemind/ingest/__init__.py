"""Turning content items into embedded, indexable chunks."""

from pagemind.ingest.chunker import PageChunker, count_tokens, flatten_blocks, flatten_text
from pagemind.ingest.embedder import Embedder, LiteLLMEmbedder

__all__ = [
    "Embedder",
    "LiteLLMEmbedder",
    "PageChunker",
    "count_tokens",
    "flatten_blocks",
    "flatten_text",
]
