"""Repository for the shared index: documents partition + facts partition.

Single interface for chunk upsert/delete, FTS5 search, vec search, and facts.
Vec tables are created by ensure_vec_table(); the repository reads and writes
them by name. Each chunk or fact write is one transaction covering the row,
its FTS entry and its vector, so readers never see half of a chunk.
"""

from __future__ import annotations

import json
import re
import sqlite3
import threading
from dataclasses import dataclass, field

from pagemind.db.models import Chunk, Fact
from pagemind.errors import IndexWriteError

_CHUNK_COLUMNS = (
    "id, chunk_id, item_id, chunk_index, text, body, source_url, tags, "
    "created_time, indexed_at"
)
_CHUNK_COLUMNS_C = ", ".join(f"c.{col}" for col in _CHUNK_COLUMNS.split(", "))
_FACT_COLUMNS = "id, fact_id, content, fact_type, created_time, source_turn_ref"


@dataclass
class SearchFilters:
    """Metadata filters applied to document search.

    Attributes:
        tags: Keep chunks carrying at least one of these tags (empty = no filter).
        since: Keep chunks with ``created_time >= since`` (ISO-8601 string).
        until: Keep chunks with ``created_time <= until`` (ISO-8601 string).
    """

    tags: list[str] = field(default_factory=list)
    since: str | None = None
    until: str | None = None

    @property
    def empty(self) -> bool:
        return not self.tags and self.since is None and self.until is None


class Repository:
    """Data access layer for the shared index.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Every public method holds ``lock`` so one
    connection can be shared by the threads of one thread group.
    """

    def __init__(
        self, conn: sqlite3.Connection, lock: threading.RLock | None = None
    ) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see pagemind.db.schema.initialize).
            lock: Lock shared with other objects using the same connection.
        """
        self._conn = conn
        self.lock = lock or threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Chunks (documents partition)
    # ------------------------------------------------------------------

    def upsert_chunk(self, chunk: Chunk, embedding: list[float], vec_table: str) -> int:
        """Insert or overwrite *chunk* (keyed by chunk_id) with its embedding.

        Returns:
            The chunk's rowid (stable across overwrites).

        Raises:
            IndexWriteError: If any part of the write fails; nothing is committed.
        """
        with self.lock:
            try:
                with self._conn:
                    row = self._conn.execute(
                        "SELECT id, item_id, chunk_index, text, body, source_url, tags, "
                        "created_time FROM chunks WHERE chunk_id = ?",
                        (chunk.chunk_id,),
                    ).fetchone()
                    values = (
                        chunk.item_id,
                        chunk.chunk_index,
                        chunk.text,
                        chunk.body,
                        chunk.source_url,
                        json.dumps(chunk.tags),
                        chunk.created_time,
                    )
                    if row is None:
                        cur = self._conn.execute(
                            """
                            INSERT INTO chunks
                                (item_id, chunk_index, text, body, source_url, tags,
                                 created_time, chunk_id)
                            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                            """,
                            (*values, chunk.chunk_id),
                        )
                        rowid = cur.lastrowid
                    else:
                        rowid = row["id"]
                        # indexed_at only moves when the stored chunk changes.
                        if tuple(row)[1:] != values:
                            self._conn.execute(
                                """
                                UPDATE chunks SET
                                    item_id = ?, chunk_index = ?, text = ?, body = ?,
                                    source_url = ?, tags = ?, created_time = ?,
                                    indexed_at = datetime('now')
                                WHERE id = ?
                                """,
                                (*values, rowid),
                            )
                        self._conn.execute("DELETE FROM chunks_fts WHERE rowid = ?", (rowid,))
                        self._conn.execute(f"DELETE FROM {vec_table} WHERE rowid = ?", (rowid,))
                    self._conn.execute(
                        "INSERT INTO chunks_fts(rowid, text) VALUES (?, ?)", (rowid, chunk.text)
                    )
                    self._conn.execute(
                        f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                        (rowid, json.dumps(embedding)),
                    )
            except sqlite3.Error as exc:
                raise IndexWriteError(
                    f"Failed to upsert chunk {chunk.chunk_id}: {exc}",
                    context={"chunk_id": chunk.chunk_id, "item_id": chunk.item_id},
                ) from exc
            chunk.rowid = rowid
            return rowid

    def delete_chunk(self, chunk_id: str, vec_table: str) -> bool:
        """Delete a chunk, its FTS row and its vector. Returns False if absent."""
        with self.lock:
            try:
                with self._conn:
                    row = self._conn.execute(
                        "SELECT id FROM chunks WHERE chunk_id = ?", (chunk_id,)
                    ).fetchone()
                    if row is None:
                        return False
                    rowid = row["id"]
                    self._conn.execute("DELETE FROM chunks_fts WHERE rowid = ?", (rowid,))
                    self._conn.execute(f"DELETE FROM {vec_table} WHERE rowid = ?", (rowid,))
                    self._conn.execute("DELETE FROM chunks WHERE id = ?", (rowid,))
            except sqlite3.Error as exc:
                raise IndexWriteError(
                    f"Failed to delete chunk {chunk_id}: {exc}",
                    context={"chunk_id": chunk_id},
                ) from exc
            return True

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Return a chunk by its chunk_id, or None if not found."""
        with self.lock:
            row = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE chunk_id = ?", (chunk_id,)
            ).fetchone()
        return _row_to_chunk(row) if row else None

    def chunk_ids_for_item(self, item_id: str) -> list[str]:
        """Return the chunk ids currently indexed for *item_id*, in chunk order."""
        with self.lock:
            rows = self._conn.execute(
                "SELECT chunk_id FROM chunks WHERE item_id = ? ORDER BY chunk_index",
                (item_id,),
            ).fetchall()
        return [r["chunk_id"] for r in rows]

    def chunks_for_item(self, item_id: str) -> list[Chunk]:
        """Return the stored chunks of *item_id*, in chunk order."""
        with self.lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE item_id = ? ORDER BY chunk_index",
                (item_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self) -> int:
        with self.lock:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def indexed_item_ids(self) -> set[str]:
        """Ids of the items that have at least one chunk in the index."""
        with self.lock:
            rows = self._conn.execute("SELECT DISTINCT item_id FROM chunks").fetchall()
        return {r["item_id"] for r in rows}

    def count_items(self) -> int:
        """Number of distinct items with at least one chunk in the index."""
        with self.lock:
            return self._conn.execute(
                "SELECT COUNT(DISTINCT item_id) FROM chunks"
            ).fetchone()[0]

    # ------------------------------------------------------------------
    # Document search
    # ------------------------------------------------------------------

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        filters: SearchFilters | None = None,
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, cosine distance) sorted by distance.

        Unfiltered searches use the vec0 KNN index. With filters, distances are
        computed over the matching chunks only, so a chunk that passes the
        filters is never crowded out by closer chunks that do not.
        """
        if filters is not None and not filters.empty:
            return self._search_vec_filtered(table, embedding, limit, filters)
        with self.lock:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? "
                "ORDER BY distance LIMIT ?",
                (json.dumps(embedding), limit),
            ).fetchall()
            if not vec_rows:
                return []
            distances = {r["rowid"]: r["distance"] for r in vec_rows}
            placeholders = ",".join("?" * len(distances))
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
                tuple(distances),
            ).fetchall()

        results = [(_row_to_chunk(r), distances[r["id"]]) for r in rows]
        results.sort(key=lambda pair: pair[1])
        return results

    def _search_vec_filtered(
        self, table: str, embedding: list[float], limit: int, filters: SearchFilters
    ) -> list[tuple[Chunk, float]]:
        where, params = _filter_sql(filters)
        with self.lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS_C}, "
                "vec_distance_cosine(v.embedding, ?) AS distance "
                f"FROM chunks c JOIN {table} v ON v.rowid = c.id "
                f"WHERE {where.removeprefix(' AND ')} "
                "ORDER BY distance LIMIT ?",
                (json.dumps(embedding), *params, limit),
            ).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]

    def search_fts(
        self, query: str, limit: int = 10, filters: SearchFilters | None = None
    ) -> list[tuple[Chunk, float]]:
        """BM25 full-text search. Returns (chunk, score) sorted best-first.

        Query terms are OR-ed. bm25() returns negative values; lower (more
        negative) = better match. The raw score is returned.
        """
        fts_query = _to_fts_query(query)
        if not fts_query:
            return []
        where, params = _filter_sql(filters)
        with self.lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS_C}, "
                "bm25(chunks_fts) AS score "
                "FROM chunks_fts JOIN chunks c ON c.id = chunks_fts.rowid "
                f"WHERE chunks_fts MATCH ?{where} "
                "ORDER BY score LIMIT ?",
                (fts_query, *params, limit),
            ).fetchall()
        return [(_row_to_chunk(r), r["score"]) for r in rows]

    # ------------------------------------------------------------------
    # Facts partition
    # ------------------------------------------------------------------

    def upsert_fact(self, fact: Fact, embedding: list[float], vec_table: str) -> int:
        """Insert *fact* (or overwrite the one with the same fact_id) with its embedding."""
        with self.lock:
            try:
                with self._conn:
                    row = self._conn.execute(
                        "SELECT id FROM facts WHERE fact_id = ?", (fact.fact_id,)
                    ).fetchone()
                    values = (fact.content, fact.fact_type, fact.created_time, fact.source_turn_ref)
                    if row is None:
                        cur = self._conn.execute(
                            """
                            INSERT INTO facts
                                (content, fact_type, created_time, source_turn_ref, fact_id)
                            VALUES (?, ?, ?, ?, ?)
                            """,
                            (*values, fact.fact_id),
                        )
                        rowid = cur.lastrowid
                    else:
                        rowid = row["id"]
                        self._conn.execute(
                            """
                            UPDATE facts SET content = ?, fact_type = ?, created_time = ?,
                                source_turn_ref = ?
                            WHERE id = ?
                            """,
                            (*values, rowid),
                        )
                        self._conn.execute(f"DELETE FROM {vec_table} WHERE rowid = ?", (rowid,))
                    self._conn.execute(
                        f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                        (rowid, json.dumps(embedding)),
                    )
            except sqlite3.Error as exc:
                raise IndexWriteError(
                    f"Failed to upsert fact {fact.fact_id}: {exc}",
                    context={"fact_id": fact.fact_id},
                ) from exc
            fact.rowid = rowid
            return rowid

    def search_facts_vec(
        self, table: str, embedding: list[float], limit: int = 5
    ) -> list[tuple[Fact, float]]:
        """Nearest-neighbour search over the facts partition."""
        with self.lock:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? "
                "ORDER BY distance LIMIT ?",
                (json.dumps(embedding), limit),
            ).fetchall()
            if not vec_rows:
                return []
            distances = {r["rowid"]: r["distance"] for r in vec_rows}
            placeholders = ",".join("?" * len(distances))
            rows = self._conn.execute(
                f"SELECT {_FACT_COLUMNS} FROM facts WHERE id IN ({placeholders})",
                tuple(distances),
            ).fetchall()
        results = [(_row_to_fact(r), distances[r["id"]]) for r in rows]
        results.sort(key=lambda pair: pair[1])
        return results

    def list_facts(self, limit: int | None = None) -> list[Fact]:
        """Return stored facts, newest first."""
        sql = f"SELECT {_FACT_COLUMNS} FROM facts ORDER BY created_time DESC, id DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self.lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_fact(r) for r in rows]

    def count_facts(self) -> int:
        with self.lock:
            return self._conn.execute("SELECT COUNT(*) FROM facts").fetchone()[0]


# ------------------------------------------------------------------
# Query helpers
# ------------------------------------------------------------------


def _to_fts_query(query: str) -> str:
    """Turn free text into an FTS5 OR-query of quoted terms.

    FTS5 MATCH rejects punctuation and treats AND/OR/NOT/NEAR as operators,
    so each word is quoted.
    """
    terms = re.findall(r"\w+", query)
    return " OR ".join(f'"{t}"' for t in terms)


def _filter_sql(filters: SearchFilters | None) -> tuple[str, list]:
    """Return an ``AND ...`` SQL fragment over alias ``c`` plus its parameters."""
    if filters is None or filters.empty:
        return "", []
    clauses: list[str] = []
    params: list = []
    if filters.tags:
        placeholders = ",".join("?" * len(filters.tags))
        clauses.append(
            f"EXISTS (SELECT 1 FROM json_each(c.tags) WHERE json_each.value IN ({placeholders}))"
        )
        params.extend(filters.tags)
    if filters.since is not None:
        clauses.append("c.created_time >= ?")
        params.append(filters.since)
    if filters.until is not None:
        clauses.append("c.created_time <= ?")
        params.append(filters.until)
    return " AND " + " AND ".join(clauses), params


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["id"],
        item_id=row["item_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        body=row["body"],
        source_url=row["source_url"],
        tags=json.loads(row["tags"]),
        created_time=row["created_time"],
        indexed_at=row["indexed_at"],
    )


def _row_to_fact(row: sqlite3.Row) -> Fact:
    return Fact(
        rowid=row["id"],
        fact_id=row["fact_id"],
        content=row["content"],
        fact_type=row["fact_type"],
        created_time=row["created_time"],
        source_turn_ref=row["source_turn_ref"],
    )
