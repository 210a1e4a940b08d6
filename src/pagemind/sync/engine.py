"""Sync engine: incremental delta detection, upsert and delete against the index.

One cycle walks ``IDLE → LISTING → DIFFING → APPLYING → IDLE``:

1. LISTING: items changed since the persisted high-water mark (following
   cursors), the provider's deletion feed when it has one, and the retry set of
   items that failed in earlier cycles. A full reconciliation additionally
   lists every current item id and diffs it against the SyncRecords.
2. DIFFING: each listed item is New, Modified, Unchanged or Deleted.
   Archived items, and items the provider no longer finds on fetch, count as
   Deleted.
3. APPLYING, per item: fetch → chunk → embed → upsert → delete stale chunk ids
   → write SyncRecord. The SyncRecord write is last, so a crash before it only
   means the item is reprocessed next cycle; chunk ids are deterministic, so
   the re-upsert overwrites in place.
4. The high-water mark advances to the largest marker seen once the cycle
   completes. Failed items stay in the retry set until they succeed.

Failures are per item: an item's fetch, embed or index error is logged and
recorded, its SyncRecord is left untouched, and the cycle moves on. Nothing
raised while processing an item escapes run_cycle().
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from pagemind.db.models import SyncRecord
from pagemind.db.repository import Repository
from pagemind.db.vectors import ensure_vec_table, model_to_slug
from pagemind.errors import NotFoundError
from pagemind.ingest.chunker import PageChunker
from pagemind.ingest.embedder import Embedder
from pagemind.log import get_logger
from pagemind.source.fetcher import RateLimitedFetcher
from pagemind.source.models import ItemSummary
from pagemind.sync.state import CycleReport, SyncPhase, SyncState, SyncStateStore, utcnow

logger = get_logger(__name__)

_NEW = "new"
_MODIFIED = "modified"
_DELETED = "deleted"


@dataclass
class _Listing:
    changed: dict[str, ItemSummary]
    deleted_ids: set[str]
    max_marker: str | None


@dataclass
class _Action:
    item_id: str
    kind: str  # _NEW | _MODIFIED | _DELETED
    retry: bool = False


class SyncEngine:
    """Keep the index consistent with the content provider.

    Args:
        fetcher: Rate-limited access to the provider.
        store: Durable sync bookkeeping.
        repo: Index repository owned by the sync thread group.
        embedder: Embeds chunk text.
        chunker: Turns items into chunks.
        state: Process-lifetime state object (phase, cycle lock, last report).
        full_reconcile_seconds: Minimum interval between automatic full
            reconciliations.
        clock: Wall-clock source in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        store: SyncStateStore,
        repo: Repository,
        embedder: Embedder,
        chunker: PageChunker,
        state: SyncState,
        *,
        full_reconcile_seconds: float = 86_400.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._repo = repo
        self._embedder = embedder
        self._chunker = chunker
        self.state = state
        self.full_reconcile_seconds = full_reconcile_seconds
        self._clock = clock
        with repo.lock:
            self.vec_table = ensure_vec_table(
                repo.conn, "chunks", model_to_slug(embedder.model), embedder.dimensions
            )

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self, full: bool = False) -> CycleReport | None:
        """Run one sync cycle.

        Returns:
            The cycle report, or None when another cycle was already running
            (cycles never overlap).
        """
        if not self.state.try_begin():
            logger.info("Sync cycle already in progress; skipping")
            return None

        report = CycleReport(full=full)
        try:
            self._run(report, full)
        except Exception as exc:
            report.error = f"{type(exc).__name__}: {exc}"
            logger.error(f"Sync cycle aborted: {report.error}")
        finally:
            report.finished_at = utcnow()
            self.state.finish(report)

        logger.bind(full=report.full, high_water_mark=report.high_water_mark).info(
            f"Sync cycle done: {report.new} new, {report.modified} modified, "
            f"{report.deleted} deleted, {report.unchanged} unchanged, "
            f"{len(report.failures)} failed"
        )
        return report

    def _run(self, report: CycleReport, full: bool) -> None:
        self.state.phase = SyncPhase.LISTING
        listing = self._list_changes()
        retry_ids = self._store.failed_item_ids()

        if not full:
            full = self._reconcile_due()
        report.full = full
        missing: set[str] = set()
        if full:
            current = set(self._fetcher.list_all_ids())
            known = self._store.item_ids()
            listing.deleted_ids |= (known | self._repo.indexed_item_ids()) - current
            missing = current - known - set(listing.changed)
        report.listed = len(listing.changed) + len(missing)

        self.state.phase = SyncPhase.DIFFING
        actions = self._diff(listing, retry_ids, missing, report)

        self.state.phase = SyncPhase.APPLYING
        for action in actions:
            self._apply_isolated(action, report)

        if listing.max_marker is not None:
            self._store.set_high_water_mark(listing.max_marker)
        report.high_water_mark = self._store.high_water_mark()
        if full:
            self._store.set_last_full_reconcile(self._clock())

    # ------------------------------------------------------------------
    # Listing + diffing
    # ------------------------------------------------------------------

    def _list_changes(self) -> _Listing:
        since = self._store.high_water_mark()
        changed: dict[str, ItemSummary] = {}
        deleted: set[str] = set()
        max_marker = since
        for page in self._fetcher.iter_changed(since):
            for summary in page.items:
                seen = changed.get(summary.item_id)
                if seen is None or summary.revision_marker > seen.revision_marker:
                    changed[summary.item_id] = summary
                if max_marker is None or summary.revision_marker > max_marker:
                    max_marker = summary.revision_marker
            if page.deleted_ids:
                deleted.update(page.deleted_ids)
        return _Listing(changed, deleted, max_marker)

    def _reconcile_due(self) -> bool:
        last = self._store.last_full_reconcile()
        return last is None or self._clock() - last >= self.full_reconcile_seconds

    def _diff(
        self,
        listing: _Listing,
        retry_ids: list[str],
        missing: set[str],
        report: CycleReport,
    ) -> list[_Action]:
        actions: list[_Action] = []
        planned: set[str] = set()
        retrying = set(retry_ids)

        # A failed or interrupted apply may have left chunks without a record,
        # so those items are deleted too.
        for item_id in sorted(listing.deleted_ids):
            if item_id in retrying or self._is_indexed(item_id):
                actions.append(_Action(item_id, _DELETED, retry=item_id in retrying))
            planned.add(item_id)

        for item_id, summary in listing.changed.items():
            if item_id in planned:
                continue
            planned.add(item_id)
            record = self._store.get(item_id)
            retry = item_id in retrying
            if summary.archived:
                if retry or self._is_indexed(item_id):
                    actions.append(_Action(item_id, _DELETED, retry=retry))
                continue
            if record is None:
                actions.append(_Action(item_id, _NEW, retry=retry))
            elif retry or summary.revision_marker > record.last_indexed_revision:
                actions.append(_Action(item_id, _MODIFIED, retry=retry))
            else:
                if summary.revision_marker < record.last_indexed_revision:
                    logger.bind(item_id=item_id).warning(
                        f"Listed revision for {item_id} is older than the indexed one; skipping"
                    )
                report.unchanged += 1

        for item_id in sorted(missing - planned):
            planned.add(item_id)
            actions.append(_Action(item_id, _NEW))

        for item_id in retry_ids:
            if item_id in planned:
                continue
            planned.add(item_id)
            kind = _MODIFIED if self._store.get(item_id) is not None else _NEW
            actions.append(_Action(item_id, kind, retry=True))

        return actions

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def _apply_isolated(self, action: _Action, report: CycleReport) -> None:
        try:
            kind = self._apply(action)
        except Exception as exc:
            error_type = type(exc).__name__
            report.failures[action.item_id] = error_type
            logger.warning(
                f"Sync failed for item {action.item_id} ({error_type}): {exc}"
            )
            self._store.record_failure(action.item_id, error_type, str(exc))
            return

        self._store.clear_failure(action.item_id)
        if action.retry:
            report.retried += 1
        if kind == _NEW:
            report.new += 1
        elif kind == _MODIFIED:
            report.modified += 1
        else:
            report.deleted += 1

    def _apply(self, action: _Action) -> str:
        if action.kind == _DELETED:
            self.delete_item(action.item_id)
            return _DELETED

        try:
            item = self._fetcher.fetch(action.item_id)
        except NotFoundError:
            # Gone at the provider since it was listed.
            self.delete_item(action.item_id)
            return _DELETED
        if item.archived:
            self.delete_item(item.item_id)
            return _DELETED

        record = self._store.get(item.item_id)
        link_titles = self._store.titles(item.outbound_links)
        chunks = self._chunker.chunk(item, link_titles)
        embeddings = [self._embedder.embed(c.text) for c in chunks]

        for chunk, embedding in zip(chunks, embeddings):
            self._repo.upsert_chunk(chunk, embedding, self.vec_table)

        new_ids = [c.chunk_id for c in chunks]
        stale = self._stale_chunk_ids(item.item_id, record, set(new_ids))
        for chunk_id in stale:
            self._repo.delete_chunk(chunk_id, self.vec_table)

        self._store.put(
            SyncRecord(
                item_id=item.item_id,
                last_indexed_revision=item.revision_marker,
                chunk_ids=new_ids,
                title=item.title,
            )
        )
        logger.bind(item_id=item.item_id, revision=item.revision_marker).debug(
            f"Indexed {item.item_id}: {len(new_ids)} chunks, {len(stale)} stale removed"
        )
        return _MODIFIED if record is not None else _NEW

    def delete_item(self, item_id: str) -> int:
        """Remove every chunk of *item_id* from the index, then its SyncRecord.

        Returns:
            Number of chunks deleted.
        """
        record = self._store.get(item_id)
        chunk_ids = self._stale_chunk_ids(item_id, record, set())
        deleted = sum(1 for cid in chunk_ids if self._repo.delete_chunk(cid, self.vec_table))
        self._store.delete(item_id)
        logger.bind(item_id=item_id).debug(f"Deleted {item_id}: {deleted} chunks")
        return deleted

    def _is_indexed(self, item_id: str) -> bool:
        if self._store.get(item_id) is not None:
            return True
        return bool(self._repo.chunk_ids_for_item(item_id))

    def _stale_chunk_ids(
        self, item_id: str, record: SyncRecord | None, keep: set[str]
    ) -> list[str]:
        """Chunk ids of *item_id* not in *keep*: the old record's ids plus any left
        behind in the index by an apply that crashed before its record write."""
        old = list(record.chunk_ids) if record else []
        old += [cid for cid in self._repo.chunk_ids_for_item(item_id) if cid not in old]
        return [cid for cid in old if cid not in keep]
