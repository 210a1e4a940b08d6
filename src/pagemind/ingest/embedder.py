"""Embedding boundary: text → vector."""

from __future__ import annotations

from typing import Protocol

from pagemind.errors import EmbeddingError
from pagemind.rag import llm_client


class Embedder(Protocol):
    """Anything that turns text into a fixed-size vector."""

    model: str
    dimensions: int

    def embed(self, text: str) -> list[float]: ...


class LiteLLMEmbedder:
    """Embed text via ``litellm.embedding()``.

    Any provider failure, timeout or wrong-sized vector is raised as
    EmbeddingError so the caller can treat it as a per-item failure.

    Args:
        model: LiteLLM embedding model string.
        dimensions: Expected vector length (must match the vec table).
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        timeout: float = 30.0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout

    def embed(self, text: str) -> list[float]:
        try:
            vector = llm_client.embed(self.model, text, timeout=self.timeout)
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding call to '{self.model}' failed: {exc}",
                context={"model": self.model},
            ) from exc
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding model '{self.model}' returned {len(vector)} dimensions, "
                f"expected {self.dimensions}.",
                context={"model": self.model, "dimensions": len(vector)},
            )
        return list(vector)
