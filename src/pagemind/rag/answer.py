"""Answer synthesis boundary and the LiteLLM-backed implementation."""

from __future__ import annotations

from typing import Protocol

from pagemind.memory.short_term import Turn
from pagemind.rag.assembler import AssembledContext
from pagemind.rag.llm_client import complete
from pagemind.rag.prompts import build_messages
from pagemind.rag.retriever import Citation


class Synthesizer(Protocol):
    def synthesize(
        self, question: str, context: AssembledContext, turns: list[Turn]
    ) -> str: ...


class LLMSynthesizer:
    """Generate the answer with ``litellm.completion()`` and append footnotes.

    Args:
        model: LiteLLM generation model string.
        max_tokens: Maximum answer tokens.
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self, model: str = "openai/gpt-4o", max_tokens: int = 1024, timeout: float = 60.0
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    def synthesize(self, question: str, context: AssembledContext, turns: list[Turn]) -> str:
        content = complete(
            model=self.model,
            messages=build_messages(question, context, turns),
            max_tokens=self.max_tokens,
            temperature=0.0,
            timeout=self.timeout,
        )
        return add_attribution(content, context.citations)


def add_attribution(content: str, citations: list[Citation]) -> str:
    """Append a footnote block for *citations* to *content*.

    Format:
      [^1]: Book Recommendations <https://workspace.example.com/p1>
      [^2]: Reading List
    """
    if not citations:
        return content

    footnotes = [f"[^{i}]: {c.label}" for i, c in enumerate(citations, start=1)]
    return content.rstrip() + "\n\n---\n\n" + "\n".join(footnotes)
