"""
Storage Models Package.

Domain objects shared by every repository backend.

- Metric: one (id, type) entry with its value or delta
- MetricKind: gauge / counter
- apply_update: the per-kind merge rule
"""

from storage.models.metric import (
    Metric,
    MetricKey,
    MetricKind,
    apply_update,
    parse_metric,
)


__all__ = [
    "Metric",
    "MetricKey",
    "MetricKind",
    "apply_update",
    "parse_metric",
]
