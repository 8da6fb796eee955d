"""
Metric Model.

============================================================
PURPOSE
============================================================
The two metric kinds and their merge rules.

- Gauge: float snapshot, last write wins
- Counter: integer delta, accumulates (stored + delta)

(id, type) is unique within a store: a gauge and a counter may
share a name and are distinct entries.

============================================================
WIRE / FILE FORMAT
============================================================
    {"id": "Alloc", "type": "gauge", "value": 123.45}
    {"id": "PollCount", "type": "counter", "delta": 5}

The field that does not belong to the kind is omitted on output
and ignored when null on input.

============================================================
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from core.exceptions import InvalidKindError, ValidationError


class MetricKind(str, Enum):
    """Metric kinds."""

    GAUGE = "gauge"
    COUNTER = "counter"

    @classmethod
    def parse(cls, raw: Any) -> "MetricKind":
        """
        Parse a kind name.

        Raises:
            InvalidKindError: For anything but "gauge" / "counter"
        """
        if isinstance(raw, MetricKind):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise InvalidKindError(raw) from None


MetricKey = Tuple[str, MetricKind]


@dataclass(frozen=True)
class Metric:
    """
    A single metric entry.

    Exactly one of value (gauge) or delta (counter) is populated.
    """

    id: str
    type: MetricKind
    value: Optional[float] = None
    delta: Optional[int] = None

    @classmethod
    def gauge(cls, name: str, value: float) -> "Metric":
        return cls(id=name, type=MetricKind.GAUGE, value=float(value))

    @classmethod
    def counter(cls, name: str, delta: int) -> "Metric":
        return cls(id=name, type=MetricKind.COUNTER, delta=delta)

    @property
    def key(self) -> MetricKey:
        return (self.id, self.type)

    def validate(self) -> "Metric":
        """
        Check the entry carries the payload its kind needs.

        Returns:
            self, for chaining

        Raises:
            ValidationError: Empty name, missing or mistyped payload
        """
        if not isinstance(self.id, str) or not self.id:
            raise ValidationError("Metric id is required", field="id", actual=self.id)

        if self.type == MetricKind.GAUGE:
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
                raise ValidationError(
                    f"value is required for gauge {self.id}", field="value", actual=self.value
                )
        elif self.type == MetricKind.COUNTER:
            if isinstance(self.delta, bool) or not isinstance(self.delta, int):
                raise ValidationError(
                    f"delta is required for counter {self.id}", field="delta", actual=self.delta
                )
        else:
            raise InvalidKindError(self.type)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type.value}
        if self.type == MetricKind.GAUGE:
            data["value"] = self.value
        else:
            data["delta"] = self.delta
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Metric":
        """
        Build a validated metric from its JSON object form.

        Raises:
            InvalidKindError: Unknown type
            ValidationError: Not an object, missing id or payload
        """
        if not isinstance(data, dict):
            raise ValidationError("Metric must be a JSON object", actual=data)

        kind = MetricKind.parse(data.get("type"))
        if kind == MetricKind.GAUGE:
            value = data.get("value")
            if isinstance(value, int) and not isinstance(value, bool):
                value = float(value)
            metric = cls(id=data.get("id"), type=kind, value=value)
        else:
            delta = data.get("delta")
            # JSON encoders may emit integral counters as 5.0
            if isinstance(delta, float) and delta.is_integer():
                delta = int(delta)
            metric = cls(id=data.get("id"), type=kind, delta=delta)
        return metric.validate()


# ============================================================
# MERGE RULES
# ============================================================

def apply_update(stored: Optional[Metric], update: Metric) -> Metric:
    """
    Merge one update onto the stored entry for the same key.

    Gauge: the update replaces the stored value.
    Counter: stored delta + update delta (0 when unseen). Negative
    deltas are plain addition, never clamped.
    """
    if stored is not None and stored.key != update.key:
        raise ValueError(f"Cannot merge {update.key} onto {stored.key}")

    if update.type == MetricKind.GAUGE or stored is None:
        return update

    return replace(stored, delta=(stored.delta or 0) + update.delta)


def parse_metric(kind: Any, name: str, raw_value: str) -> Metric:
    """
    Build a metric from path-style text ("gauge", "Alloc", "1.5").

    Raises:
        InvalidKindError: Unknown kind
        ValidationError: Value not parseable as the kind's number type
    """
    metric_kind = MetricKind.parse(kind)
    if metric_kind == MetricKind.GAUGE:
        try:
            value = float(raw_value)
        except ValueError:
            raise ValidationError(
                f"invalid gauge value {raw_value!r}", field="value", actual=raw_value
            ) from None
        return Metric.gauge(name, value).validate()

    try:
        delta = int(raw_value)
    except ValueError:
        raise ValidationError(
            f"invalid counter value {raw_value!r}", field="delta", actual=raw_value
        ) from None
    return Metric.counter(name, delta).validate()
