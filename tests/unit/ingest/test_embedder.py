"""Tests for LiteLLMEmbedder (litellm mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from pagemind.errors import EmbeddingError
from pagemind.ingest.embedder import LiteLLMEmbedder


def _embedding_response(vector):
    response = MagicMock()
    response.data = [{"embedding": vector}]
    return response


def test_embed_returns_vector():
    with patch(
        "pagemind.rag.llm_client.litellm.embedding",
        return_value=_embedding_response([0.1, 0.2, 0.3]),
    ) as mock_embed:
        vector = LiteLLMEmbedder("openai/text-embedding-3-small", dimensions=3, timeout=5.0).embed("hi")

    assert vector == [0.1, 0.2, 0.3]
    kwargs = mock_embed.call_args.kwargs
    assert kwargs["model"] == "openai/text-embedding-3-small"
    assert kwargs["input"] == ["hi"]
    assert kwargs["timeout"] == 5.0


def test_embed_wraps_provider_failure():
    with patch(
        "pagemind.rag.llm_client.litellm.embedding", side_effect=RuntimeError("timeout")
    ):
        with pytest.raises(EmbeddingError, match="timeout") as excinfo:
            LiteLLMEmbedder(dimensions=3).embed("hi")
    assert excinfo.value.context["model"] == "openai/text-embedding-3-small"


def test_embed_rejects_wrong_dimensions():
    with patch(
        "pagemind.rag.llm_client.litellm.embedding", return_value=_embedding_response([0.1, 0.2])
    ):
        with pytest.raises(EmbeddingError, match="2 dimensions"):
            LiteLLMEmbedder(dimensions=3).embed("hi")
