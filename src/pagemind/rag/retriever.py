"""Hybrid retriever: keyword (FTS5 BM25) + semantic (sqlite-vec), fused via RRF.

Both channels run in parallel threads and are ranked independently:
  - semantic: cosine KNN over the documents partition; hits whose cosine
    similarity is below ``min_similarity`` are dropped
  - keyword: BM25 over the chunk text, stopwords removed from the query

Reciprocal Rank Fusion:
  score(d) = Σ 1 / (k + rank_c(d))   over the channels c that returned d, k = 60

A chunk returned by only one channel keeps its single-channel score, so
fusion never drops it. Ties are broken by more recent ``created_time``.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from pagemind.db.models import Chunk
from pagemind.db.repository import Repository, SearchFilters
from pagemind.db.vectors import model_to_slug, vec_table_name
from pagemind.errors import EmbeddingError
from pagemind.ingest.chunker import header_title
from pagemind.ingest.embedder import Embedder
from pagemind.log import get_logger

logger = get_logger(__name__)

_RRF_K = 60

_STOPWORDS = frozenset(
    """
    a an and are as at be but by can could did do does for from had has have how
    i if in into is it its me my of on or our should so that the their them then
    there these they this to was we were what when where which who why will with
    would you your
    """.split()
)


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        mode: Retrieval mode: 'hybrid' (BM25 + dense), 'dense', or 'bm25'.
        top_k: Maximum number of passages returned after fusion.
        rrf_k: RRF damping constant.
        min_similarity: Minimum cosine similarity for a semantic hit.
    """

    mode: str = "hybrid"  # hybrid | dense | bm25
    top_k: int = 10
    rrf_k: int = _RRF_K
    min_similarity: float = 0.25


@dataclass
class Citation:
    """Where a passage came from."""

    item_id: str
    title: str
    source_url: str

    @property
    def label(self) -> str:
        name = self.title or self.item_id
        return f"{name} <{self.source_url}>" if self.source_url else name


@dataclass
class RetrievedPassage:
    """A retrieved chunk with its fused score and per-channel ranks.

    Attributes:
        chunk: The stored chunk.
        score: RRF fusion score (higher = more relevant).
        citation: Provenance of the chunk.
        dense_rank: 1-based rank in the semantic channel (None if not retrieved).
        bm25_rank: 1-based rank in the keyword channel (None if not retrieved).
        similarity: Cosine similarity to the query (None if not retrieved semantically).
    """

    chunk: Chunk
    score: float
    citation: Citation
    dense_rank: int | None = None
    bm25_rank: int | None = None
    similarity: float | None = None


def citation_for(chunk: Chunk) -> Citation:
    return Citation(
        item_id=chunk.item_id,
        title=header_title(chunk.text),
        source_url=chunk.source_url,
    )


def keyword_terms(query: str) -> list[str]:
    """Query words worth matching lexically (stopwords removed, order kept)."""
    words = re.findall(r"\w+", query.lower())
    return [w for w in dict.fromkeys(words) if w not in _STOPWORDS]


class Retriever:
    """Run fused keyword + semantic retrieval over the documents partition.

    Args:
        repo: Repository for the foreground thread group.
        embedder: Embeds the query (same model as used at sync time).
        config: Retriever configuration.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self.config = config or RetrieverConfig()
        if self.config.mode not in ("hybrid", "dense", "bm25"):
            raise ValueError(f"Unknown retrieval mode '{self.config.mode}'")
        self.vec_table = vec_table_name("chunks", model_to_slug(embedder.model))

    def retrieve(
        self, query: str, filters: SearchFilters | None = None
    ) -> list[RetrievedPassage]:
        """Return passages best-first; an empty list when nothing is relevant.

        In hybrid mode a failed query embedding leaves the keyword hits.

        Raises:
            EmbeddingError: If the query cannot be embedded in dense mode.
        """
        if not query.strip():
            return []
        mode = self.config.mode

        if mode == "bm25":
            return self._fuse([], self._keyword(query, filters))
        if mode == "dense":
            return self._fuse(self._semantic(query, filters), [])

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="pagemind-retrieve") as pool:
            dense_future = pool.submit(self._semantic, query, filters)
            bm25_future = pool.submit(self._keyword, query, filters)
            bm25 = bm25_future.result()
            try:
                dense = dense_future.result()
            except EmbeddingError as exc:
                logger.warning(f"Semantic channel unavailable, using keyword hits only: {exc}")
                dense = []
        return self._fuse(dense, bm25)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _semantic(
        self, query: str, filters: SearchFilters | None
    ) -> list[tuple[Chunk, float]]:
        """Semantic hits as (chunk, cosine similarity), best-first."""
        if not self._vec_table_exists():
            logger.debug(f"No vector table {self.vec_table} yet; semantic channel empty")
            return []
        embedding = self._embedder.embed(query)
        hits = self._repo.search_vec(
            self.vec_table, embedding, limit=self.config.top_k, filters=filters
        )
        return [
            (chunk, 1.0 - distance)
            for chunk, distance in hits
            if 1.0 - distance >= self.config.min_similarity
        ]

    def _keyword(
        self, query: str, filters: SearchFilters | None
    ) -> list[tuple[Chunk, float]]:
        terms = keyword_terms(query)
        if not terms:
            return []
        return self._repo.search_fts(" ".join(terms), limit=self.config.top_k, filters=filters)

    def _vec_table_exists(self) -> bool:
        with self._repo.lock:
            row = self._repo.conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (self.vec_table,),
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # RRF fusion
    # ------------------------------------------------------------------

    def _fuse(
        self,
        dense_results: list[tuple[Chunk, float]],
        bm25_results: list[tuple[Chunk, float]],
    ) -> list[RetrievedPassage]:
        k = self.config.rrf_k
        passages: dict[str, RetrievedPassage] = {}

        for rank, (chunk, similarity) in enumerate(dense_results, start=1):
            passages[chunk.chunk_id] = RetrievedPassage(
                chunk=chunk,
                score=1.0 / (k + rank),
                citation=citation_for(chunk),
                dense_rank=rank,
                similarity=similarity,
            )

        for rank, (chunk, _) in enumerate(bm25_results, start=1):
            passage = passages.get(chunk.chunk_id)
            if passage is None:
                passages[chunk.chunk_id] = RetrievedPassage(
                    chunk=chunk,
                    score=1.0 / (k + rank),
                    citation=citation_for(chunk),
                    bm25_rank=rank,
                )
            else:
                passage.score += 1.0 / (k + rank)
                passage.bm25_rank = rank

        ranked = sorted(passages.values(), key=lambda p: p.chunk.created_time, reverse=True)
        ranked.sort(key=lambda p: p.score, reverse=True)
        return ranked[: self.config.top_k]
