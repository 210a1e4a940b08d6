"""Context assembler: one ranked context list, facts first, capped at a token budget.

Facts are explicit user statements and go ahead of document passages. Each
list keeps its own ranking; entries are taken in order until the next one
would overflow the budget.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pagemind.memory.facts import ScoredFact
from pagemind.rag.llm_client import count_tokens
from pagemind.rag.retriever import Citation, RetrievedPassage


@dataclass
class AssembledContext:
    facts: list[ScoredFact] = field(default_factory=list)
    passages: list[RetrievedPassage] = field(default_factory=list)
    total_tokens: int = 0

    @property
    def citations(self) -> list[Citation]:
        """One citation per passage, numbered like the passages in the prompt."""
        return [p.citation for p in self.passages]

    @property
    def empty(self) -> bool:
        return not self.facts and not self.passages


def assemble(
    facts: list[ScoredFact],
    passages: list[RetrievedPassage],
    token_budget: int,
    model: str = "openai/gpt-4o",
) -> AssembledContext:
    """Select facts, then passages, within *token_budget* tokens."""
    context = AssembledContext()
    total = 0

    for scored in facts:
        tokens = count_tokens(model, scored.fact.content)
        if total + tokens > token_budget:
            break
        context.facts.append(scored)
        total += tokens

    for passage in passages:
        tokens = count_tokens(model, passage.chunk.text)
        if total + tokens > token_budget:
            break
        context.passages.append(passage)
        total += tokens

    context.total_tokens = total
    return context
