"""
Tests for batch merge logic.
"""

import pytest

from core.exceptions import ValidationError
from storage.models import Metric, MetricKind
from storage.repositories.batch import coalesce_batch, merge_snapshot, validate_batch


class TestMergeSnapshot:
    """Find-or-append fold."""

    def test_existing_entries_keep_position(self):
        snapshot = [Metric.gauge("A", 1.0), Metric.counter("B", 2), Metric.gauge("C", 3.0)]

        merged = merge_snapshot(snapshot, [Metric.counter("B", 5)])

        assert [m.id for m in merged] == ["A", "B", "C"]
        assert merged[1].delta == 7

    def test_new_keys_appended_in_order(self):
        merged = merge_snapshot(
            [Metric.gauge("A", 1.0)],
            [Metric.counter("Z", 1), Metric.gauge("Y", 2.0)],
        )

        assert [m.id for m in merged] == ["A", "Z", "Y"]

    def test_repeated_keys_compose(self):
        merged = merge_snapshot(
            [],
            [
                Metric.counter("PollCount", 2),
                Metric.gauge("Alloc", 1.0),
                Metric.counter("PollCount", 3),
                Metric.gauge("Alloc", 9.5),
            ],
        )

        assert merged == [Metric.counter("PollCount", 5), Metric.gauge("Alloc", 9.5)]

    def test_same_name_different_kind_are_distinct(self):
        merged = merge_snapshot([Metric.gauge("X", 1.0)], [Metric.counter("X", 1)])

        assert {m.key for m in merged} == {("X", MetricKind.GAUGE), ("X", MetricKind.COUNTER)}

    def test_inputs_not_mutated(self):
        snapshot = [Metric.counter("B", 2)]
        updates = [Metric.counter("B", 1)]

        merge_snapshot(snapshot, updates)

        assert snapshot == [Metric.counter("B", 2)]
        assert updates == [Metric.counter("B", 1)]


class TestCoalesceAndValidate:
    """Batch preparation."""

    def test_coalesce_one_entry_per_key(self):
        coalesced = coalesce_batch([Metric.counter("c", 1)] * 4)

        assert coalesced == [Metric.counter("c", 4)]

    def test_coalesce_empty(self):
        assert coalesce_batch([]) == []

    def test_validate_rejects_whole_batch(self):
        with pytest.raises(ValidationError):
            validate_batch([Metric.gauge("ok", 1.0), Metric(id="bad", type=MetricKind.COUNTER)])
