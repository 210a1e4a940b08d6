"""Sync bookkeeping: durable per-item records plus the engine's in-process state.

SyncStateStore persists to the index database (sync_records, sync_meta,
sync_failures) and survives restarts. SyncState is process-lifetime only and
is owned by whoever constructs the SyncEngine; there is no module-level state.
"""

from __future__ import annotations

import enum
import json
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pagemind.db.models import SyncRecord

_HWM_KEY = "high_water_mark"
_RECONCILE_KEY = "last_full_reconcile"


@dataclass
class SyncFailure:
    item_id: str
    error_type: str
    message: str
    attempts: int
    failed_at: str


class SyncStateStore:
    """Durable ``item_id -> SyncRecord`` mapping plus sync metadata.

    Args:
        conn: Open connection with the schema initialised.
        lock: Lock shared with other users of the same connection (pass
            ``repo.lock`` when sharing a connection with a Repository).
    """

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock | None = None) -> None:
        self._conn = conn
        self._lock = lock or threading.RLock()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> SyncRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT item_id, last_indexed_revision, chunk_ids, title, indexed_at "
                "FROM sync_records WHERE item_id = ?",
                (item_id,),
            ).fetchone()
        return _row_to_record(row) if row else None

    def put(self, record: SyncRecord) -> None:
        """Insert or replace the record for ``record.item_id``."""
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO sync_records (item_id, last_indexed_revision, chunk_ids, title)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    last_indexed_revision = excluded.last_indexed_revision,
                    chunk_ids = excluded.chunk_ids,
                    title = excluded.title,
                    indexed_at = datetime('now')
                """,
                (
                    record.item_id,
                    record.last_indexed_revision,
                    json.dumps(record.chunk_ids),
                    record.title,
                ),
            )

    def delete(self, item_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM sync_records WHERE item_id = ?", (item_id,))

    def list_records(self) -> list[SyncRecord]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT item_id, last_indexed_revision, chunk_ids, title, indexed_at "
                "FROM sync_records ORDER BY item_id"
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def item_ids(self) -> set[str]:
        with self._lock:
            rows = self._conn.execute("SELECT item_id FROM sync_records").fetchall()
        return {r[0] for r in rows}

    def titles(self, item_ids: list[str]) -> dict[str, str]:
        """Return known titles for *item_ids* (items never indexed are omitted)."""
        if not item_ids:
            return {}
        placeholders = ",".join("?" * len(item_ids))
        with self._lock:
            rows = self._conn.execute(
                f"SELECT item_id, title FROM sync_records WHERE item_id IN ({placeholders})",
                tuple(item_ids),
            ).fetchall()
        return {r[0]: r[1] for r in rows if r[1]}

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM sync_records").fetchone()[0]

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def high_water_mark(self) -> str | None:
        return self._get_meta(_HWM_KEY)

    def set_high_water_mark(self, marker: str) -> None:
        self._set_meta(_HWM_KEY, marker)

    def last_full_reconcile(self) -> float | None:
        """Epoch seconds of the last completed full reconciliation, if any."""
        value = self._get_meta(_RECONCILE_KEY)
        return float(value) if value is not None else None

    def set_last_full_reconcile(self, ts: float) -> None:
        self._set_meta(_RECONCILE_KEY, repr(ts))

    def _get_meta(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_meta WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def _set_meta(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO sync_meta (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    # ------------------------------------------------------------------
    # Retry set
    # ------------------------------------------------------------------

    def record_failure(self, item_id: str, error_type: str, message: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO sync_failures (item_id, error_type, message)
                VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    error_type = excluded.error_type,
                    message = excluded.message,
                    attempts = attempts + 1,
                    failed_at = datetime('now')
                """,
                (item_id, error_type, message[:500]),
            )

    def clear_failure(self, item_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM sync_failures WHERE item_id = ?", (item_id,))

    def failed_item_ids(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT item_id FROM sync_failures ORDER BY failed_at, item_id"
            ).fetchall()
        return [r[0] for r in rows]

    def list_failures(self) -> list[SyncFailure]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT item_id, error_type, message, attempts, failed_at "
                "FROM sync_failures ORDER BY failed_at DESC, item_id"
            ).fetchall()
        return [SyncFailure(*tuple(r)) for r in rows]


def _row_to_record(row: sqlite3.Row) -> SyncRecord:
    return SyncRecord(
        item_id=row[0],
        last_indexed_revision=row[1],
        chunk_ids=json.loads(row[2]),
        title=row[3],
        indexed_at=row[4],
    )


# ---------------------------------------------------------------------------
# In-process state
# ---------------------------------------------------------------------------


class SyncPhase(str, enum.Enum):
    IDLE = "idle"
    LISTING = "listing"
    DIFFING = "diffing"
    APPLYING = "applying"


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class CycleReport:
    """Outcome of one sync cycle.

    ``failures`` maps item_id → error type name for items that failed in this
    cycle; ``error`` is set when the cycle could not list changes at all.
    """

    full: bool = False
    started_at: str = field(default_factory=utcnow)
    finished_at: str | None = None
    listed: int = 0
    new: int = 0
    modified: int = 0
    unchanged: int = 0
    deleted: int = 0
    retried: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    high_water_mark: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failures


class SyncState:
    """Process-lifetime state of one SyncEngine: phase, in-progress flag, last report."""

    def __init__(self) -> None:
        self.phase = SyncPhase.IDLE
        self.last_report: CycleReport | None = None
        self._cycle_lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def try_begin(self) -> bool:
        """Claim the cycle lock without blocking. False if a cycle is running."""
        return self._cycle_lock.acquire(blocking=False)

    def finish(self, report: CycleReport) -> None:
        self.phase = SyncPhase.IDLE
        self.last_report = report
        self._cycle_lock.release()
