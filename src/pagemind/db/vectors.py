"""Per-partition, per-model sqlite-vec virtual table management."""

from __future__ import annotations

import re
import sqlite3

PARTITIONS = ("chunks", "facts")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(partition: str, model_slug: str) -> str:
    """Return the vec table name for *partition* ('chunks' or 'facts') and a model slug."""
    if partition not in PARTITIONS:
        raise ValueError(f"Unknown partition '{partition}' — expected one of {PARTITIONS}")
    return f"vec_{partition}_{model_slug}"


def ensure_vec_table(
    conn: sqlite3.Connection, partition: str, model_slug: str, dimensions: int
) -> str:
    """Create the vec table for *partition* / *model_slug* if it doesn't already exist.

    Vectors are compared with cosine distance, so ``1 - distance`` is the
    cosine similarity used for relevance thresholds.

    Returns:
        The table name (vec_{partition}_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(partition, model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric=cosine)"
        )
        conn.commit()

    return table
