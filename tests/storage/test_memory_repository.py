"""
Tests for MemoryRepository.

============================================================
PURPOSE
============================================================
1. Gauge/counter semantics and lookups of missing names
2. Point-in-time get_all
3. All-or-nothing batches
4. Concurrent updates never lose an increment

============================================================
"""

import threading

import pytest

from core.context import OperationContext
from core.exceptions import OperationCancelled, ValidationError
from storage.models import Metric, MetricKind
from storage.repositories import MemoryRepository
from storage.repositories.memory import ReadWriteLock


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def ctx():
    return OperationContext.background()


# ============================================================
# SINGLE UPDATES
# ============================================================

class TestUpdates:
    """Single gauge/counter updates."""

    def test_gauge_roundtrip(self, repo, ctx):
        repo.update_gauge(ctx, "Alloc", 123.45)

        assert repo.get_gauge(ctx, "Alloc") == (123.45, True)

    def test_gauge_last_write_wins(self, repo, ctx):
        repo.update_gauge(ctx, "Alloc", 1.0)
        repo.update_gauge(ctx, "Alloc", -4.5)

        assert repo.get_gauge(ctx, "Alloc") == (-4.5, True)

    def test_counter_accumulates(self, repo, ctx):
        repo.update_counter(ctx, "PollCount", 2)
        repo.update_counter(ctx, "PollCount", 3)

        assert repo.get_counter(ctx, "PollCount") == (5, True)

    def test_missing_names(self, repo, ctx):
        assert repo.get_gauge(ctx, "Missing") == (0.0, False)
        assert repo.get_counter(ctx, "Missing") == (0, False)

    def test_gauge_and_counter_share_name(self, repo, ctx):
        repo.update_gauge(ctx, "X", 1.5)
        repo.update_counter(ctx, "X", 2)

        assert repo.get_gauge(ctx, "X") == (1.5, True)
        assert repo.get_counter(ctx, "X") == (2, True)

    def test_cancelled_context_has_no_effect(self, repo):
        ctx = OperationContext.background().with_cancel()
        ctx.cancel()

        with pytest.raises(OperationCancelled):
            repo.update_counter(ctx, "PollCount", 1)

        assert repo.get_counter(OperationContext.background(), "PollCount") == (0, False)

    def test_empty_name_rejected(self, repo, ctx):
        with pytest.raises(ValidationError):
            repo.update_gauge(ctx, "", 1.0)
        with pytest.raises(ValidationError):
            repo.update_counter(ctx, "", 1)

        assert repo.get_all(ctx) == []

    def test_mistyped_delta_rejected(self, repo, ctx):
        with pytest.raises(ValidationError):
            repo.update_counter(ctx, "PollCount", 1.5)

        assert repo.get_counter(ctx, "PollCount") == (0, False)


# ============================================================
# LISTING
# ============================================================

class TestGetAll:
    """get_all snapshots."""

    def test_empty(self, repo, ctx):
        assert repo.get_all(ctx) == []

    def test_lists_every_entry(self, repo, ctx):
        repo.update_gauge(ctx, "Alloc", 1.0)
        repo.update_counter(ctx, "PollCount", 7)

        assert sorted(repo.get_all(ctx), key=lambda m: m.id) == [
            Metric.gauge("Alloc", 1.0),
            Metric.counter("PollCount", 7),
        ]

    def test_result_is_point_in_time(self, repo, ctx):
        repo.update_counter(ctx, "PollCount", 1)
        listed = repo.get_all(ctx)

        repo.update_counter(ctx, "PollCount", 1)

        assert listed == [Metric.counter("PollCount", 1)]


# ============================================================
# BATCHES
# ============================================================

class TestBatch:
    """update_batch."""

    def test_batch_applies_all(self, repo, ctx):
        repo.update_counter(ctx, "PollCount", 1)

        repo.update_batch(ctx, [
            Metric.gauge("Alloc", 2.0),
            Metric.counter("PollCount", 2),
            Metric.counter("PollCount", 3),
        ])

        assert repo.get_gauge(ctx, "Alloc") == (2.0, True)
        assert repo.get_counter(ctx, "PollCount") == (6, True)

    def test_invalid_entry_rejects_whole_batch(self, repo, ctx):
        with pytest.raises(ValidationError):
            repo.update_batch(ctx, [
                Metric.gauge("Alloc", 2.0),
                Metric(id="Broken", type=MetricKind.GAUGE),
            ])

        assert repo.get_all(ctx) == []

    def test_empty_batch(self, repo, ctx):
        repo.update_batch(ctx, [])

        assert repo.get_all(ctx) == []


# ============================================================
# CONCURRENCY
# ============================================================

class TestConcurrency:
    """Parallel writers and readers."""

    def test_concurrent_counters_sum(self, repo, ctx):
        workers, increments = 8, 250

        def work():
            for _ in range(increments):
                repo.update_counter(ctx, "PollCount", 1)

        threads = [threading.Thread(target=work) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert repo.get_counter(ctx, "PollCount") == (workers * increments, True)

    def test_readers_share_lock(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def reader():
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)
        assert not inside.broken

    def test_ping_and_close(self, repo, ctx):
        repo.ping(ctx)
        repo.close()
        repo.close()
