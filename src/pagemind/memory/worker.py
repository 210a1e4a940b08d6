"""Background fact extraction: a bounded job queue drained by a worker thread pool.

``submit()`` never blocks: when the queue is full the job is dropped. Jobs of
a cancelled session are dropped silently, whether still queued or already in
flight (an in-flight result is discarded instead of stored).
"""

from __future__ import annotations

import queue
import threading
from collections import Counter
from dataclasses import dataclass

from pagemind.log import get_logger
from pagemind.memory.extractor import FactExtractor
from pagemind.memory.facts import FactStore

logger = get_logger(__name__)

_STOP = None


@dataclass
class _Job:
    session_id: str
    text: str
    turn_ref: str | None


class ExtractionQueue:
    """Run fact extraction off the response path.

    Args:
        extractor: Text → candidate fact.
        store: Where extracted facts are appended.
        workers: Number of worker threads.
        maxsize: Queue capacity; submissions beyond it are dropped.
    """

    def __init__(
        self,
        extractor: FactExtractor,
        store: FactStore,
        workers: int = 2,
        maxsize: int = 32,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._extractor = extractor
        self._store = store
        self._queue: queue.Queue[_Job | None] = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self._pending: Counter[str] = Counter()
        self._cancelled: set[str] = set()
        self.dropped = 0
        self._threads = [
            threading.Thread(target=self._work, name=f"pagemind-extract-{i}", daemon=True)
            for i in range(workers)
        ]
        for thread in self._threads:
            thread.start()

    def submit(self, session_id: str, text: str, turn_ref: str | None = None) -> bool:
        """Queue *text* for extraction. Returns False if the job was dropped."""
        with self._lock:
            if session_id in self._cancelled:
                return False
            try:
                self._queue.put_nowait(_Job(session_id, text, turn_ref))
            except queue.Full:
                self.dropped += 1
                logger.bind(session_id=session_id).debug(
                    f"Extraction queue full; dropped job for session {session_id}"
                )
                return False
            self._pending[session_id] += 1
            return True

    def cancel(self, session_id: str) -> None:
        """Drop this session's queued and in-flight extractions."""
        with self._lock:
            if self._pending[session_id] > 0:
                self._cancelled.add(session_id)
            else:
                self._pending.pop(session_id, None)

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the workers after the jobs already queued."""
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _work(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._process(job)
            except Exception as exc:
                logger.warning(f"Fact extraction failed: {exc}")
            finally:
                if job is not _STOP:
                    self._done(job.session_id)
                self._queue.task_done()

    def _process(self, job: _Job) -> None:
        if self._is_cancelled(job.session_id):
            return
        candidate = self._extractor.extract(job.text)
        if candidate is None or self._is_cancelled(job.session_id):
            return
        self._store.add(candidate.content, candidate.fact_type, job.turn_ref)

    def _is_cancelled(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._cancelled

    def _done(self, session_id: str) -> None:
        with self._lock:
            self._pending[session_id] -= 1
            if self._pending[session_id] <= 0:
                del self._pending[session_id]
                self._cancelled.discard(session_id)
