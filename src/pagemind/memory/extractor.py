"""Fact extraction boundary: one turn's text → zero or one candidate fact."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

from pagemind.errors import ExtractionError
from pagemind.rag.llm_client import complete

FACT_TYPES = ("preference", "goal", "plan", "biographical", "statement")

# Turns shorter than this cannot state anything durable.
_MIN_TEXT_CHARS = 8

_EXTRACTION_SYSTEM = (
    "You extract durable facts about the user from a single chat message. "
    "A durable fact is something worth remembering in later conversations: a "
    "preference, a goal, a plan, or a biographical detail the user states about "
    "themselves. Questions, greetings and requests are not facts.\n"
    'Respond with a JSON object: {"fact": <one short third-person sentence, or null>, '
    '"type": <one of ' + ", ".join(f'"{t}"' for t in FACT_TYPES) + ">}.\n"
    "Output ONLY the JSON object."
)


@dataclass
class CandidateFact:
    content: str
    fact_type: str = "statement"


class FactExtractor(Protocol):
    def extract(self, text: str) -> CandidateFact | None: ...


class LLMFactExtractor:
    """Ask a small LLM whether *text* states a durable fact.

    Args:
        model: LiteLLM model string (a cheap model is enough).
        timeout: Per-call timeout in seconds.
    """

    def __init__(self, model: str = "openai/gpt-4o-mini", timeout: float = 30.0) -> None:
        self.model = model
        self.timeout = timeout

    def extract(self, text: str) -> CandidateFact | None:
        """Return the candidate fact stated in *text*, or None.

        Raises:
            ExtractionError: If the LLM call fails.
        """
        if len(text.strip()) < _MIN_TEXT_CHARS:
            return None
        try:
            raw = complete(
                model=self.model,
                messages=[
                    {"role": "system", "content": _EXTRACTION_SYSTEM},
                    {"role": "user", "content": text[:4000]},
                ],
                max_tokens=120,
                temperature=0.0,
                timeout=self.timeout,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            raise ExtractionError(
                f"Fact extraction call to '{self.model}' failed: {exc}",
                context={"model": self.model},
            ) from exc
        return parse_candidate(raw)


def parse_candidate(raw: str) -> CandidateFact | None:
    """Parse the extractor's JSON reply. Malformed or empty replies yield None."""
    try:
        start = raw.index("{")
        end = raw.rindex("}") + 1
        data = json.loads(raw[start:end])
    except (ValueError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    content = data.get("fact")
    if not isinstance(content, str) or not content.strip():
        return None
    fact_type = str(data.get("type") or "statement").lower()
    if fact_type not in FACT_TYPES:
        fact_type = "statement"
    return CandidateFact(content=content.strip(), fact_type=fact_type)
