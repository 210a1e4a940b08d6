"""Tests for per-partition, per-model sqlite-vec virtual tables."""

from __future__ import annotations

import json

import pytest

from pagemind.db.vectors import ensure_vec_table, model_to_slug, vec_table_name


# --- model_to_slug ---

@pytest.mark.parametrize("model,expected", [
    ("openai/text-embedding-3-small", "openai_text_embedding_3_small"),
    ("cohere/embed-english-v3.0", "cohere_embed_english_v3_0"),
    ("ollama/nomic-embed-text", "ollama_nomic_embed_text"),
])
def test_model_to_slug(model, expected):
    assert model_to_slug(model) == expected


def test_vec_table_name_per_partition():
    slug = model_to_slug("openai/text-embedding-3-small")
    assert vec_table_name("chunks", slug) == "vec_chunks_openai_text_embedding_3_small"
    assert vec_table_name("facts", slug) == "vec_facts_openai_text_embedding_3_small"


def test_vec_table_name_rejects_unknown_partition():
    with pytest.raises(ValueError, match="partition"):
        vec_table_name("turns", "slug")


# --- ensure_vec_table ---

def test_ensure_vec_table_creates_table(tmp_db):
    table = ensure_vec_table(tmp_db, "chunks", "test_model", dimensions=8)
    assert table == "vec_chunks_test_model"
    row = tmp_db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    assert row is not None


def test_ensure_vec_table_idempotent(tmp_db):
    first = ensure_vec_table(tmp_db, "facts", "test_model", dimensions=8)
    second = ensure_vec_table(tmp_db, "facts", "test_model", dimensions=8)
    assert first == second


def test_ensure_vec_table_uses_cosine_distance(tmp_db):
    table = ensure_vec_table(tmp_db, "chunks", "test_model", dimensions=2)
    tmp_db.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (1, ?)", (json.dumps([1.0, 0.0]),))
    tmp_db.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (2, ?)", (json.dumps([0.0, 5.0]),))

    rows = tmp_db.execute(
        f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? ORDER BY distance LIMIT 2",
        (json.dumps([3.0, 0.0]),),
    ).fetchall()
    assert rows[0]["rowid"] == 1
    assert rows[0]["distance"] == pytest.approx(0.0, abs=1e-6)
    assert rows[1]["distance"] == pytest.approx(1.0, abs=1e-6)


def test_ensure_vec_table_invalid_slug(tmp_db):
    with pytest.raises(ValueError, match="model_slug"):
        ensure_vec_table(tmp_db, "chunks", "invalid/slug!", dimensions=128)


def test_ensure_vec_table_invalid_dimensions(tmp_db):
    with pytest.raises(ValueError, match="dimensions"):
        ensure_vec_table(tmp_db, "chunks", "valid_slug", dimensions=0)
