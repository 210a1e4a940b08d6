"""Tests for SyncScheduler: cadence, on-demand triggers and shutdown."""

from __future__ import annotations

import threading
import time

import pytest

from pagemind.sync.scheduler import SyncScheduler


class CountingEngine:
    """Stands in for SyncEngine; records each run_cycle() call."""

    def __init__(self) -> None:
        self.cycles = 0
        self.ran = threading.Event()
        self._lock = threading.Lock()

    def run_cycle(self, full: bool = False):
        with self._lock:
            self.cycles += 1
        self.ran.set()
        return None


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_first_cycle_runs_immediately():
    engine = CountingEngine()
    scheduler = SyncScheduler(engine, interval_seconds=60)
    scheduler.start()
    try:
        assert engine.ran.wait(2.0)
        assert scheduler.running
    finally:
        scheduler.stop(timeout=2.0)
    assert not scheduler.running


def test_trigger_runs_extra_cycle_before_interval():
    engine = CountingEngine()
    scheduler = SyncScheduler(engine, interval_seconds=60)
    scheduler.start()
    try:
        assert _wait_for(lambda: engine.cycles == 1)
        scheduler.trigger()
        assert _wait_for(lambda: engine.cycles == 2)
    finally:
        scheduler.stop(timeout=2.0)


def test_cycles_repeat_on_interval():
    engine = CountingEngine()
    scheduler = SyncScheduler(engine, interval_seconds=0.05)
    scheduler.start()
    try:
        assert _wait_for(lambda: engine.cycles >= 3)
    finally:
        scheduler.stop(timeout=2.0)


def test_start_twice_keeps_one_thread():
    engine = CountingEngine()
    scheduler = SyncScheduler(engine, interval_seconds=60)
    scheduler.start()
    thread = scheduler._thread
    scheduler.start()
    try:
        assert scheduler._thread is thread
    finally:
        scheduler.stop(timeout=2.0)


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        SyncScheduler(CountingEngine(), interval_seconds=0)
