"""Query coordinator: one user turn from question to cited answer.

Steps per turn:
  1. append the user Turn to short-term memory
  2. run document retrieval and fact recall concurrently
  3. assemble the context: facts first, then passages, within the token budget
  4. synthesize the answer from the context, the citations and recent turns
  5. append the assistant Turn
  6. queue fact extraction for the user Turn without waiting for it

A failing retrieval or recall degrades the answer instead of failing it:
the coordinator continues with whichever source succeeded and reports the
failed ones in ``Answer.degraded``.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TypeVar

from pagemind.db.repository import SearchFilters
from pagemind.log import get_logger
from pagemind.memory.facts import ScoredFact
from pagemind.memory.module import MemoryModule
from pagemind.rag.answer import Synthesizer
from pagemind.rag.assembler import assemble
from pagemind.rag.retriever import Citation, RetrievedPassage, Retriever

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class Answer:
    """Result of one turn.

    Attributes:
        text: The synthesized answer (with footnotes when passages were used).
        citations: Distinct sources of the passages used, in citation order.
        facts: Facts placed in the context.
        passages: Passages placed in the context.
        degraded: Names of the sources that failed ("documents", "facts").
    """

    text: str
    citations: list[Citation] = field(default_factory=list)
    facts: list[ScoredFact] = field(default_factory=list)
    passages: list[RetrievedPassage] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)


class QueryCoordinator:
    """Top-level entry point for answering questions.

    Args:
        retriever: Document retrieval.
        memory: Short-term turns, fact recall and background extraction.
        synthesizer: Turns question + context + turns into answer text.
        token_budget: Maximum context tokens (facts + passages).
        model: Model whose tokenizer counts the budget.
    """

    def __init__(
        self,
        retriever: Retriever,
        memory: MemoryModule,
        synthesizer: Synthesizer,
        token_budget: int = 6_000,
        model: str = "openai/gpt-4o",
    ) -> None:
        self._retriever = retriever
        self._memory = memory
        self._synthesizer = synthesizer
        self.token_budget = token_budget
        self.model = model
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="pagemind-query")

    def ask(self, session_id: str, text: str, filters: SearchFilters | None = None) -> Answer:
        history = self._memory.turns(session_id)
        user_turn = self._memory.remember_turn(session_id, "user", text)

        passages_future = self._pool.submit(self._retriever.retrieve, text, filters)
        facts_future = self._pool.submit(self._memory.recall, text)

        degraded: list[str] = []
        passages = _result_or_empty(passages_future, "documents", degraded)
        facts = _result_or_empty(facts_future, "facts", degraded)

        context = assemble(facts, passages, self.token_budget, self.model)
        answer_text = self._synthesizer.synthesize(text, context, history)

        self._memory.remember_turn(session_id, "assistant", answer_text)
        self._memory.extract_async(session_id, user_turn)

        return Answer(
            text=answer_text,
            citations=_distinct(context.citations),
            facts=context.facts,
            passages=context.passages,
            degraded=degraded,
        )

    def end_session(self, session_id: str) -> None:
        self._memory.end_session(session_id)

    def close(self) -> None:
        """Stop the query pool and let queued fact extractions finish."""
        self._pool.shutdown(wait=True)
        self._memory.close()


def _result_or_empty(future: Future[list[T]], source: str, degraded: list[str]) -> list[T]:
    try:
        return future.result()
    except Exception as exc:
        logger.warning(f"{source} lookup failed, answering without it: {exc}")
        degraded.append(source)
        return []


def _distinct(citations: list[Citation]) -> list[Citation]:
    seen: set[str] = set()
    out: list[Citation] = []
    for citation in citations:
        if citation.item_id not in seen:
            seen.add(citation.item_id)
            out.append(citation)
    return out
