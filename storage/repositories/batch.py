"""
Batch Merge Logic.

Shared rules for applying a list of updates as one unit. Every
entry is validated before anything is applied; repeated keys in one
batch compose with the normal merge rule (gauge: last wins,
counter: sum).
"""

from typing import Dict, Iterable, List, Sequence

from storage.models import Metric, MetricKey, apply_update


def validate_batch(metrics: Iterable[Metric]) -> List[Metric]:
    """
    Validate every entry of a batch.

    Raises:
        ValidationError: On the first malformed entry; nothing applied yet
    """
    return [metric.validate() for metric in metrics]


def merge_snapshot(snapshot: Sequence[Metric], updates: Iterable[Metric]) -> List[Metric]:
    """
    Fold updates into a snapshot with the find-or-append rule.

    Existing entries keep their position; new keys are appended in
    first-seen order. Neither input is mutated.
    """
    merged: List[Metric] = list(snapshot)
    index: Dict[MetricKey, int] = {}
    for position, metric in enumerate(merged):
        index.setdefault(metric.key, position)

    for update in updates:
        position = index.get(update.key)
        if position is None:
            index[update.key] = len(merged)
            merged.append(apply_update(None, update))
        else:
            merged[position] = apply_update(merged[position], update)

    return merged


def coalesce_batch(updates: Iterable[Metric]) -> List[Metric]:
    """Collapse a batch to one net update per key."""
    return merge_snapshot([], updates)
