"""Background sync cadence: one daemon thread running SyncEngine cycles."""

from __future__ import annotations

import threading

from pagemind.log import get_logger
from pagemind.sync.engine import SyncEngine

logger = get_logger(__name__)


class SyncScheduler:
    """Run ``engine.run_cycle()`` every ``interval_seconds`` on a daemon thread.

    The first cycle starts immediately. ``trigger()`` requests one extra cycle
    as soon as the current one (if any) finishes; repeated triggers before
    that cycle starts collapse into one. Cycles run sequentially on the
    scheduler thread, and the engine's cycle lock also rejects overlap with
    cycles started elsewhere (e.g. a manual ``pagemind sync``).
    """

    def __init__(self, engine: SyncEngine, interval_seconds: float = 600.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._engine = engine
        self.interval_seconds = interval_seconds
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._loop, name="pagemind-sync", daemon=True)
        self._thread.start()
        logger.info(f"Sync scheduler started (every {self.interval_seconds:g}s)")

    def trigger(self) -> None:
        """Request an on-demand cycle without waiting for the next tick."""
        self._wake.set()

    def stop(self, timeout: float | None = None) -> None:
        """Stop after the current cycle (if any) and join the thread."""
        self._stopping.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sync scheduler stopped")

    def _loop(self) -> None:
        while not self._stopping.is_set():
            self._wake.clear()
            self._engine.run_cycle()
            self._wake.wait(self.interval_seconds)
