"""MemoryModule: the short-term buffers and the fact store behind one interface."""

from __future__ import annotations

from pagemind.memory.facts import FactStore, ScoredFact
from pagemind.memory.short_term import SessionRegistry, Turn
from pagemind.memory.worker import ExtractionQueue


class MemoryModule:
    """Conversation memory for the query coordinator.

    Args:
        sessions: Per-session turn buffers.
        facts: Durable fact store.
        extraction: Background extraction queue (None disables extraction).
        fact_top_k: Default number of facts recalled per query.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        facts: FactStore,
        extraction: ExtractionQueue | None = None,
        fact_top_k: int = 5,
    ) -> None:
        self.sessions = sessions
        self.facts = facts
        self.extraction = extraction
        self.fact_top_k = fact_top_k

    def remember_turn(self, session_id: str, role: str, text: str) -> Turn:
        turn = Turn(role=role, text=text)
        self.sessions.get(session_id).append(turn)
        return turn

    def turns(self, session_id: str) -> list[Turn]:
        return self.sessions.get(session_id).turns()

    def recall(self, query: str, top_k: int | None = None) -> list[ScoredFact]:
        return self.facts.recall(query, top_k if top_k is not None else self.fact_top_k)

    def extract_async(self, session_id: str, turn: Turn) -> bool:
        """Queue fact extraction for a user turn. Never blocks; False if dropped."""
        if self.extraction is None or turn.role != "user":
            return False
        return self.extraction.submit(session_id, turn.text, f"{session_id}@{turn.timestamp}")

    def end_session(self, session_id: str) -> None:
        """Discard the session's turns and drop its pending extractions."""
        self.sessions.end(session_id)
        if self.extraction is not None:
            self.extraction.cancel(session_id)

    def close(self) -> None:
        if self.extraction is not None:
            self.extraction.close()
