"""Conversation memory: short-term turn buffers and the long-term fact store."""

from pagemind.memory.extractor import CandidateFact, FactExtractor, LLMFactExtractor
from pagemind.memory.facts import FactStore, ScoredFact
from pagemind.memory.module import MemoryModule
from pagemind.memory.short_term import SessionRegistry, Turn, TurnBuffer
from pagemind.memory.worker import ExtractionQueue

__all__ = [
    "CandidateFact",
    "ExtractionQueue",
    "FactExtractor",
    "FactStore",
    "LLMFactExtractor",
    "MemoryModule",
    "ScoredFact",
    "SessionRegistry",
    "Turn",
    "TurnBuffer",
]
