"""
Tests for snapshot persistence (restore-on-boot and the periodic worker).
"""

import os
import time
from unittest.mock import MagicMock

import pytest

from core.context import OperationContext
from core.exceptions import FatalIOError
from storage.models import Metric
from storage.repositories import MemoryRepository, SnapshotNotFoundError
from storage.snapshot import SnapshotFile, SnapshotWorker, restore_into, save_from


@pytest.fixture
def snapshot(tmp_path):
    return SnapshotFile(str(tmp_path / "metrics-recovery.json"))


@pytest.fixture
def ctx():
    return OperationContext.background()


class TestSnapshotFile:
    """save/load."""

    def test_load_missing(self, snapshot):
        with pytest.raises(SnapshotNotFoundError):
            snapshot.load()

    def test_save_then_load(self, snapshot):
        metrics = [Metric.gauge("Alloc", 1.5), Metric.counter("PollCount", 3)]

        snapshot.save(metrics)

        assert snapshot.load() == metrics


class TestRestore:
    """restore_into."""

    def test_restore_replays_snapshot(self, snapshot, ctx):
        snapshot.save([Metric.gauge("Alloc", 1.5), Metric.counter("PollCount", 3)])
        repo = MemoryRepository()

        assert restore_into(repo, snapshot) == 2
        assert repo.get_gauge(ctx, "Alloc") == (1.5, True)
        assert repo.get_counter(ctx, "PollCount") == (3, True)

    def test_restore_missing_file_is_noop(self, snapshot, ctx):
        repo = MemoryRepository()

        assert restore_into(repo, snapshot) == 0
        assert repo.get_all(ctx) == []

    def test_restore_accumulates_counters(self, snapshot, ctx):
        snapshot.save([Metric.counter("PollCount", 3)])
        repo = MemoryRepository()
        repo.update_counter(ctx, "PollCount", 1)

        restore_into(repo, snapshot)

        assert repo.get_counter(ctx, "PollCount") == (4, True)

    def test_save_from(self, snapshot, ctx):
        repo = MemoryRepository()
        repo.update_gauge(ctx, "Alloc", 2.0)

        assert save_from(repo, snapshot) == 1
        assert snapshot.load() == [Metric.gauge("Alloc", 2.0)]


class TestSnapshotWorker:
    """Periodic saves."""

    def test_rejects_non_positive_interval(self, snapshot):
        with pytest.raises(ValueError):
            SnapshotWorker(MemoryRepository(), snapshot, 0)

    def test_save_once(self, snapshot, ctx):
        repo = MemoryRepository()
        repo.update_counter(ctx, "PollCount", 5)
        worker = SnapshotWorker(repo, snapshot, interval=60)

        assert worker.save_once() is True
        assert snapshot.load() == [Metric.counter("PollCount", 5)]

    def test_save_once_logs_failure(self, snapshot):
        repo = MagicMock()
        repo.get_all.side_effect = FatalIOError("database gone")
        worker = SnapshotWorker(repo, snapshot, interval=60)

        assert worker.save_once() is False
        assert not os.path.exists(snapshot.path)

    def test_periodic_save_and_final_save(self, snapshot, ctx):
        repo = MemoryRepository()
        repo.update_counter(ctx, "PollCount", 1)
        worker = SnapshotWorker(repo, snapshot, interval=0.05)

        worker.start()
        deadline = time.monotonic() + 5
        while not os.path.exists(snapshot.path) and time.monotonic() < deadline:
            time.sleep(0.01)
        repo.update_counter(ctx, "PollCount", 1)
        worker.stop(final_save=True)

        assert not worker.is_running
        assert snapshot.load() == [Metric.counter("PollCount", 2)]

    def test_stop_without_final_save(self, snapshot):
        worker = SnapshotWorker(MemoryRepository(), snapshot, interval=60)
        worker.start()

        worker.stop(final_save=False)

        assert not worker.is_running
        assert not os.path.exists(snapshot.path)
