"""Long-term memory: the fact store (facts partition of the shared index).

Facts are append-only. Nothing here deduplicates, merges or deletes facts;
a newer statement is simply another fact, and recall ranks equally similar
facts most-recent first.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from pagemind.db.models import Fact
from pagemind.db.repository import Repository
from pagemind.db.vectors import ensure_vec_table, model_to_slug
from pagemind.ingest.embedder import Embedder
from pagemind.log import get_logger

logger = get_logger(__name__)

# Similarities equal to this many decimals count as a tie.
_TIE_DECIMALS = 6


@dataclass
class ScoredFact:
    fact: Fact
    similarity: float


class FactStore:
    """Embed, store and recall facts.

    Args:
        repo: Foreground repository (shared with retrieval).
        embedder: Same embedder as the documents partition.
        min_similarity: Facts below this cosine similarity are not recalled.
    """

    def __init__(
        self, repo: Repository, embedder: Embedder, min_similarity: float = 0.3
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self.min_similarity = min_similarity
        with repo.lock:
            self.vec_table = ensure_vec_table(
                repo.conn, "facts", model_to_slug(embedder.model), embedder.dimensions
            )

    def add(
        self,
        content: str,
        fact_type: str = "statement",
        source_turn_ref: str | None = None,
    ) -> Fact:
        """Embed *content* and append it as a new fact.

        Raises:
            EmbeddingError: If the embedding call fails.
            IndexWriteError: If the write fails.
        """
        embedding = self._embedder.embed(content)
        fact = Fact(
            fact_id=uuid.uuid4().hex,
            content=content,
            fact_type=fact_type,
            created_time=datetime.now(timezone.utc).isoformat(),
            source_turn_ref=source_turn_ref,
        )
        self._repo.upsert_fact(fact, embedding, self.vec_table)
        logger.bind(fact_id=fact.fact_id, fact_type=fact_type).info(
            f"Stored {fact_type} fact {fact.fact_id}"
        )
        return fact

    def recall(self, query: str, top_k: int = 5) -> list[ScoredFact]:
        """Return up to *top_k* facts relevant to *query*, best-first."""
        if not query.strip() or top_k < 1:
            return []
        embedding = self._embedder.embed(query)
        hits = self._repo.search_facts_vec(self.vec_table, embedding, limit=top_k)
        scored = [
            ScoredFact(fact=fact, similarity=1.0 - distance)
            for fact, distance in hits
            if 1.0 - distance >= self.min_similarity
        ]
        scored.sort(key=lambda s: s.fact.created_time, reverse=True)
        scored.sort(key=lambda s: round(s.similarity, _TIE_DECIMALS), reverse=True)
        return scored

    def list_facts(self, limit: int | None = None) -> list[Fact]:
        """Stored facts, newest first."""
        return self._repo.list_facts(limit)

    def count(self) -> int:
        return self._repo.count_facts()
