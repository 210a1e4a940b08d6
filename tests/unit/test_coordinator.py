"""Tests for the query coordinator."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from pagemind.db.models import Chunk
from pagemind.db.repository import SearchFilters
from pagemind.db.vectors import ensure_vec_table, model_to_slug
from pagemind.errors import EmbeddingError
from pagemind.coordinator import QueryCoordinator
from pagemind.memory.extractor import CandidateFact
from pagemind.memory.facts import FactStore
from pagemind.memory.module import MemoryModule
from pagemind.memory.short_term import SessionRegistry
from pagemind.memory.worker import ExtractionQueue
from pagemind.rag.prompts import build_messages
from pagemind.rag.retriever import RetrievedPassage, Retriever, citation_for


class RecordingSynthesizer:
    def __init__(self) -> None:
        self.calls = []

    def synthesize(self, question, context, turns):
        self.calls.append((question, context, list(turns)))
        return f"answer to {question}"


def _passage(item_id: str, index: int = 0) -> RetrievedPassage:
    chunk = Chunk(item_id=item_id, chunk_index=index, text=f"[Page: {item_id}]\nbody {index}")
    return RetrievedPassage(chunk=chunk, score=0.03, citation=citation_for(chunk))


@pytest.fixture(autouse=True)
def word_tokens():
    with patch(
        "pagemind.rag.assembler.count_tokens",
        side_effect=lambda _model, text: len(text.split()),
    ):
        yield


@pytest.fixture
def extraction():
    queue = MagicMock()
    queue.submit.return_value = True
    return queue


@pytest.fixture
def memory(repo, embedder, extraction):
    return MemoryModule(SessionRegistry(), FactStore(repo, embedder), extraction)


@pytest.fixture
def retriever():
    mock = MagicMock()
    mock.retrieve.return_value = [_passage("books")]
    return mock


@pytest.fixture
def synthesizer():
    return RecordingSynthesizer()


@pytest.fixture
def coordinator(retriever, memory, synthesizer):
    coord = QueryCoordinator(retriever, memory, synthesizer, token_budget=1_000)
    yield coord
    coord.close()


def test_ask_combines_facts_and_passages(coordinator, memory, synthesizer):
    memory.facts.add("User is learning Rust this month.", "goal")

    answer = coordinator.ask("s1", "What should I study?")

    assert answer.text == "answer to What should I study?"
    assert [s.fact.content for s in answer.facts] == ["User is learning Rust this month."]
    assert [p.chunk.item_id for p in answer.passages] == ["books"]
    assert answer.degraded == []
    _, context, _ = synthesizer.calls[0]
    assert context.facts and context.passages


def test_filters_passed_to_retriever(coordinator, retriever):
    filters = SearchFilters(tags=["reading"])
    coordinator.ask("s1", "books", filters)
    retriever.retrieve.assert_called_once_with("books", filters)


def test_history_excludes_current_turn(coordinator, memory, synthesizer):
    coordinator.ask("s1", "first question")
    coordinator.ask("s1", "second question")

    _, _, turns = synthesizer.calls[1]
    assert [(t.role, t.text) for t in turns] == [
        ("user", "first question"),
        ("assistant", "answer to first question"),
    ]
    assert [t.text for t in memory.turns("s1")][-2:] == [
        "second question",
        "answer to second question",
    ]


def test_sessions_do_not_share_history(coordinator, synthesizer):
    coordinator.ask("s1", "hello there")
    coordinator.ask("s2", "hi again")
    assert synthesizer.calls[1][2] == []


def test_retrieval_failure_degrades(coordinator, retriever, memory):
    retriever.retrieve.side_effect = EmbeddingError("embedding API down")
    memory.facts.add("User is learning Rust this month.", "goal")

    answer = coordinator.ask("s1", "What should I study?")

    assert answer.degraded == ["documents"]
    assert answer.passages == []
    assert len(answer.facts) == 1


def test_recall_failure_degrades(coordinator, memory):
    with patch.object(memory, "recall", side_effect=EmbeddingError("down")):
        answer = coordinator.ask("s1", "books")

    assert answer.degraded == ["facts"]
    assert [p.chunk.item_id for p in answer.passages] == ["books"]


def test_both_sources_failing_still_answers(coordinator, retriever, memory, synthesizer):
    retriever.retrieve.side_effect = RuntimeError("db locked")
    with patch.object(memory, "recall", side_effect=RuntimeError("db locked")):
        answer = coordinator.ask("s1", "anything?")

    assert answer.degraded == ["documents", "facts"]
    assert answer.text == "answer to anything?"
    assert synthesizer.calls[0][1].empty


def test_citations_deduplicated_by_item(coordinator, retriever):
    retriever.retrieve.return_value = [_passage("books", 0), _passage("garden"), _passage("books", 1)]

    answer = coordinator.ask("s1", "books")

    assert len(answer.passages) == 3
    assert [c.item_id for c in answer.citations] == ["books", "garden"]


def test_user_turn_queued_for_extraction(coordinator, extraction):
    coordinator.ask("s1", "I'm learning Rust this month")

    extraction.submit.assert_called_once()
    session_id, text, turn_ref = extraction.submit.call_args.args
    assert (session_id, text) == ("s1", "I'm learning Rust this month")
    assert turn_ref.startswith("s1@")


def test_end_session_forgets_turns(coordinator, memory, extraction):
    coordinator.ask("s1", "hello there")
    coordinator.end_session("s1")

    assert memory.turns("s1") == []
    extraction.cancel.assert_called_once_with("s1")


class RustExtractor:
    def extract(self, text):
        if "Rust" in text:
            return CandidateFact("User is learning Rust this month.", "goal")
        return None


def test_fact_from_earlier_turn_leads_the_next_answer(repo, embedder, synthesizer):
    table = ensure_vec_table(
        repo.conn, "chunks", model_to_slug(embedder.model), embedder.dimensions
    )
    chunk = Chunk(
        item_id="plan",
        chunk_index=0,
        text="[Page: Study Plan]\nStudy algorithms on weekends.",
        source_url="https://workspace.example.com/plan",
    )
    repo.upsert_chunk(chunk, embedder.embed(chunk.text), table)
    facts = FactStore(repo, embedder)
    extraction = ExtractionQueue(RustExtractor(), facts, workers=1)
    memory = MemoryModule(SessionRegistry(), facts, extraction)
    coord = QueryCoordinator(Retriever(repo, embedder), memory, synthesizer, token_budget=1_000)
    try:
        first = coord.ask("s1", "I'm learning Rust this month")
        extraction.join()
        answer = coord.ask("s1", "What should I study?")
    finally:
        coord.close()

    assert first.facts == []
    assert [s.fact.content for s in answer.facts] == ["User is learning Rust this month."]
    assert answer.facts[0].fact.fact_type == "goal"
    assert [p.chunk.item_id for p in answer.passages] == ["plan"]
    assert [c.source_url for c in answer.citations] == ["https://workspace.example.com/plan"]

    _, context, _ = synthesizer.calls[1]
    system = build_messages("What should I study?", context)[0]["content"]
    assert system.index("learning Rust") < system.index("Study algorithms")
