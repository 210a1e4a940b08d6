"""Tests for short-term memory: turn buffers and the session registry."""

from __future__ import annotations

import threading

import pytest

from pagemind.memory.short_term import SessionRegistry, Turn, TurnBuffer


def test_buffer_evicts_oldest():
    buffer = TurnBuffer(max_turns=3)
    for i in range(5):
        buffer.append(Turn("user", f"t{i}"))

    assert [t.text for t in buffer.turns()] == ["t2", "t3", "t4"]
    assert len(buffer) == 3


def test_buffer_returns_a_copy():
    buffer = TurnBuffer()
    buffer.append(Turn("user", "hi"))
    buffer.turns().clear()
    assert len(buffer) == 1


def test_clear():
    buffer = TurnBuffer()
    buffer.append(Turn("user", "hi"))
    buffer.clear()
    assert buffer.turns() == []


def test_invalid_size():
    with pytest.raises(ValueError):
        TurnBuffer(max_turns=0)


def test_turn_is_immutable_and_timestamped():
    turn = Turn("assistant", "hello")
    assert turn.timestamp
    with pytest.raises(AttributeError):
        turn.text = "changed"


def test_sessions_are_isolated():
    registry = SessionRegistry(max_turns=2)
    registry.get("a").append(Turn("user", "from a"))
    registry.get("b").append(Turn("user", "from b"))

    assert [t.text for t in registry.get("a").turns()] == ["from a"]
    assert registry.get("b").max_turns == 2
    assert sorted(registry.session_ids()) == ["a", "b"]


def test_end_session_discards_buffer():
    registry = SessionRegistry()
    registry.get("a").append(Turn("user", "hi"))

    assert registry.end("a") is True
    assert registry.end("a") is False
    assert registry.get("a").turns() == []


def test_concurrent_appends():
    buffer = TurnBuffer(max_turns=1000)

    def writer(n):
        for i in range(100):
            buffer.append(Turn("user", f"{n}-{i}"))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(buffer) == 400
