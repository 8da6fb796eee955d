"""
Tests for the Metric model and merge rules.

============================================================
PURPOSE
============================================================
1. Wire/file format (to_dict / from_dict)
2. Validation of kinds and payloads
3. Merge rules: gauge last-write-wins, counter accumulates
4. Path-style parsing

============================================================
"""

import pytest

from core.exceptions import InvalidKindError, ValidationError
from storage.models import Metric, MetricKind, apply_update, parse_metric


# ============================================================
# KINDS
# ============================================================

class TestMetricKind:
    """Tests for MetricKind.parse."""

    def test_parse_known(self):
        assert MetricKind.parse("gauge") is MetricKind.GAUGE
        assert MetricKind.parse("counter") is MetricKind.COUNTER
        assert MetricKind.parse(MetricKind.GAUGE) is MetricKind.GAUGE

    @pytest.mark.parametrize("raw", ["histogram", "Gauge", "", None, 1])
    def test_parse_unknown(self, raw):
        with pytest.raises(InvalidKindError):
            MetricKind.parse(raw)

    def test_invalid_kind_is_validation_error(self):
        with pytest.raises(ValidationError):
            MetricKind.parse("summary")


# ============================================================
# SERIALISATION
# ============================================================

class TestMetricFormat:
    """JSON object form."""

    def test_gauge_to_dict_omits_delta(self):
        assert Metric.gauge("Alloc", 123.45).to_dict() == {
            "id": "Alloc", "type": "gauge", "value": 123.45,
        }

    def test_counter_to_dict_omits_value(self):
        assert Metric.counter("PollCount", 5).to_dict() == {
            "id": "PollCount", "type": "counter", "delta": 5,
        }

    def test_from_dict_gauge(self):
        metric = Metric.from_dict({"id": "Alloc", "type": "gauge", "value": 7})

        assert metric == Metric.gauge("Alloc", 7.0)
        assert isinstance(metric.value, float)

    def test_from_dict_ignores_null_other_field(self):
        metric = Metric.from_dict({"id": "PollCount", "type": "counter", "delta": 3, "value": None})

        assert metric == Metric.counter("PollCount", 3)

    def test_from_dict_integral_float_delta(self):
        assert Metric.from_dict({"id": "c", "type": "counter", "delta": 5.0}).delta == 5

    def test_from_dict_fractional_delta_rejected(self):
        with pytest.raises(ValidationError):
            Metric.from_dict({"id": "c", "type": "counter", "delta": 1.5})

    def test_from_dict_missing_payload(self):
        with pytest.raises(ValidationError):
            Metric.from_dict({"id": "Alloc", "type": "gauge"})

    def test_from_dict_missing_id(self):
        with pytest.raises(ValidationError):
            Metric.from_dict({"type": "counter", "delta": 1})

    def test_from_dict_bool_rejected(self):
        with pytest.raises(ValidationError):
            Metric.from_dict({"id": "flag", "type": "counter", "delta": True})

    def test_from_dict_not_object(self):
        with pytest.raises(ValidationError):
            Metric.from_dict(["Alloc", "gauge", 1.0])

    def test_from_dict_unknown_type(self):
        with pytest.raises(InvalidKindError):
            Metric.from_dict({"id": "x", "type": "histogram", "value": 1.0})

    def test_key(self):
        assert Metric.gauge("a", 1).key == ("a", MetricKind.GAUGE)
        assert Metric.gauge("a", 1).key != Metric.counter("a", 1).key


# ============================================================
# MERGE RULES
# ============================================================

class TestApplyUpdate:
    """Gauge replaces, counter adds."""

    def test_gauge_last_write_wins(self):
        merged = apply_update(Metric.gauge("Alloc", 1.0), Metric.gauge("Alloc", 2.5))

        assert merged.value == 2.5

    def test_counter_accumulates(self):
        merged = apply_update(Metric.counter("PollCount", 2), Metric.counter("PollCount", 3))

        assert merged.delta == 5

    def test_counter_unseen_starts_at_zero(self):
        assert apply_update(None, Metric.counter("c", 4)).delta == 4

    def test_negative_delta_not_clamped(self):
        merged = apply_update(Metric.counter("c", 2), Metric.counter("c", -5))

        assert merged.delta == -3

    def test_inputs_not_mutated(self):
        stored = Metric.counter("c", 1)
        update = Metric.counter("c", 1)

        apply_update(stored, update)

        assert stored.delta == 1
        assert update.delta == 1

    def test_key_mismatch(self):
        with pytest.raises(ValueError):
            apply_update(Metric.gauge("c", 1), Metric.counter("c", 1))


# ============================================================
# PATH PARSING
# ============================================================

class TestParseMetric:
    """Path-style text values."""

    def test_gauge(self):
        assert parse_metric("gauge", "Alloc", "123.45") == Metric.gauge("Alloc", 123.45)

    def test_counter(self):
        assert parse_metric("counter", "PollCount", "-2") == Metric.counter("PollCount", -2)

    def test_counter_rejects_float(self):
        with pytest.raises(ValidationError):
            parse_metric("counter", "PollCount", "1.5")

    def test_gauge_rejects_text(self):
        with pytest.raises(ValidationError):
            parse_metric("gauge", "Alloc", "lots")

    def test_unknown_kind(self):
        with pytest.raises(InvalidKindError):
            parse_metric("histogram", "x", "1")
