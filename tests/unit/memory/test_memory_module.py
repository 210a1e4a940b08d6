"""Tests for the MemoryModule facade."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pagemind.memory.facts import FactStore
from pagemind.memory.module import MemoryModule
from pagemind.memory.short_term import SessionRegistry, Turn


@pytest.fixture
def extraction():
    queue = MagicMock()
    queue.submit.return_value = True
    return queue


@pytest.fixture
def memory(repo, embedder, extraction):
    return MemoryModule(SessionRegistry(max_turns=4), FactStore(repo, embedder), extraction, fact_top_k=3)


def test_remember_and_read_turns(memory):
    memory.remember_turn("s1", "user", "hi")
    memory.remember_turn("s1", "assistant", "hello")
    memory.remember_turn("s2", "user", "other")

    assert [(t.role, t.text) for t in memory.turns("s1")] == [("user", "hi"), ("assistant", "hello")]


def test_recall_uses_default_top_k(memory):
    memory.facts.add("User is learning Rust this month.", "goal")
    assert [s.fact.content for s in memory.recall("what should I study")] == [
        "User is learning Rust this month."
    ]
    assert memory.recall("what should I study", top_k=0) == []


def test_extract_async_only_for_user_turns(memory, extraction):
    user_turn = memory.remember_turn("s1", "user", "I'm learning Rust")
    reply = memory.remember_turn("s1", "assistant", "Nice!")

    assert memory.extract_async("s1", user_turn) is True
    assert memory.extract_async("s1", reply) is False
    extraction.submit.assert_called_once_with(
        "s1", "I'm learning Rust", f"s1@{user_turn.timestamp}"
    )


def test_extraction_disabled(repo, embedder):
    memory = MemoryModule(SessionRegistry(), FactStore(repo, embedder))
    assert memory.extract_async("s1", Turn("user", "I'm learning Rust")) is False
    memory.end_session("s1")
    memory.close()


def test_end_session_clears_turns_and_cancels_extraction(memory, extraction):
    memory.remember_turn("s1", "user", "hi")
    memory.end_session("s1")

    assert memory.turns("s1") == []
    extraction.cancel.assert_called_once_with("s1")


def test_close_closes_queue(memory, extraction):
    memory.close()
    extraction.close.assert_called_once()
