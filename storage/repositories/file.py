"""
File Repository.

============================================================
PURPOSE
============================================================
Crash-safe metrics store backed by one JSON snapshot file.

- No in-memory cache: every call loads the file, mutates the
  loaded list and rewrites the whole file
- One lock per instance serialises calls end to end
- The file is only ever replaced atomically (see write_snapshot)

============================================================
WRITE PROTOCOL
============================================================
1. Serialise the full metric list
2. Write it to <path>.tmp beside the target
3. Flush + fsync + close
4. os.replace(<path>.tmp, <path>)

A failure in 1-3 removes the temp file and leaves the previous
snapshot authoritative. A crash before 4 leaves the previous file
byte-identical.

============================================================
"""

import json
import logging
import os
import threading
from typing import Any, List, Optional, Sequence, Tuple

from core.context import OperationContext
from core.exceptions import ValidationError
from storage.models import Metric, MetricKind
from storage.repositories.base import MetricsRepository
from storage.repositories.batch import merge_snapshot, validate_batch
from storage.repositories.exceptions import (
    SnapshotCorruptedError,
    SnapshotNotFoundError,
    SnapshotWriteError,
)


logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


# =============================================================
# SNAPSHOT I/O
# =============================================================


def read_snapshot(path: str, repository_name: str = "file") -> List[Metric]:
    """
    Decode a snapshot file.

    A zero-length file decodes as an empty snapshot.

    Raises:
        FileNotFoundError: The file does not exist
        SnapshotCorruptedError: Not a JSON array of valid metrics
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw = fh.read()

    if not raw.strip():
        return []

    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SnapshotCorruptedError(repository_name, path, str(e)) from e

    if payload is None:
        return []
    if not isinstance(payload, list):
        raise SnapshotCorruptedError(repository_name, path, "top level is not an array")

    try:
        return [Metric.from_dict(item) for item in payload]
    except ValidationError as e:
        raise SnapshotCorruptedError(repository_name, path, e.message) from e


def write_snapshot(path: str, metrics: Sequence[Metric], repository_name: str = "file") -> None:
    """
    Atomically replace `path` with the serialised metrics.

    Raises:
        SnapshotWriteError: Serialisation or I/O failure; the previous
            file is untouched
    """
    tmp_path = path + TEMP_SUFFIX

    try:
        payload = json.dumps([m.to_dict() for m in metrics], indent=2)
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(payload)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
    except (OSError, TypeError, ValueError) as e:
        _discard(tmp_path)
        raise SnapshotWriteError(repository_name, path, str(e)) from e

    try:
        os.replace(tmp_path, path)
    except OSError as e:
        _discard(tmp_path)
        raise SnapshotWriteError(repository_name, path, str(e)) from e


def _discard(tmp_path: str) -> None:
    try:
        os.remove(tmp_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Cannot remove temporary snapshot {tmp_path}: {e}")


# =============================================================
# REPOSITORY
# =============================================================


class FileRepository(MetricsRepository):
    """
    Load-modify-store repository over a snapshot file.

    Correctness over throughput: one call in flight per instance.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._logger = logging.getLogger("repository.file")

    @property
    def path(self) -> str:
        return self._path

    # ---------------------------------------------------------
    # SNAPSHOT HELPERS
    # ---------------------------------------------------------

    def _restore(self) -> List[Metric]:
        """Current snapshot; a missing file is an empty snapshot."""
        try:
            return read_snapshot(self._path)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise SnapshotCorruptedError("file", self._path, str(e)) from e

    def _save(self, metrics: Sequence[Metric]) -> None:
        write_snapshot(self._path, metrics)

    def _find(self, metrics: Sequence[Metric], name: str, kind: MetricKind) -> Optional[Metric]:
        for metric in metrics:
            if metric.id == name and metric.type == kind:
                return metric
        return None

    def load(self, ctx: OperationContext) -> List[Metric]:
        """
        Explicit load.

        Raises:
            SnapshotNotFoundError: The file does not exist
            SnapshotCorruptedError: The file is malformed
        """
        ctx.check()
        with self._lock:
            try:
                return read_snapshot(self._path)
            except FileNotFoundError as e:
                raise SnapshotNotFoundError("file", self._path) from e

    # ---------------------------------------------------------
    # CONTRACT
    # ---------------------------------------------------------

    def update_gauge(self, ctx: OperationContext, name: str, value: float) -> None:
        self._apply(ctx, [Metric.gauge(name, value)])

    def update_counter(self, ctx: OperationContext, name: str, delta: int) -> None:
        self._apply(ctx, [Metric.counter(name, delta)])

    def update_batch(self, ctx: OperationContext, metrics: Sequence[Metric]) -> None:
        """Fold the batch into the snapshot and write once."""
        self._apply(ctx, metrics)
        self._logger.debug(f"Applied batch of {len(metrics)} metrics to {self._path}")

    def _apply(self, ctx: OperationContext, updates: Sequence[Metric]) -> None:
        ctx.check()
        batch = validate_batch(updates)
        with self._lock:
            snapshot = self._restore()
            self._save(merge_snapshot(snapshot, batch))

    def get_gauge(self, ctx: OperationContext, name: str) -> Tuple[float, bool]:
        ctx.check()
        with self._lock:
            metric = self._find(self._restore(), name, MetricKind.GAUGE)
        if metric is None:
            return 0.0, False
        return metric.value, True

    def get_counter(self, ctx: OperationContext, name: str) -> Tuple[int, bool]:
        ctx.check()
        with self._lock:
            metric = self._find(self._restore(), name, MetricKind.COUNTER)
        if metric is None:
            return 0, False
        return metric.delta, True

    def get_all(self, ctx: OperationContext) -> List[Metric]:
        ctx.check()
        with self._lock:
            return self._restore()

    def ping(self, ctx: OperationContext) -> None:
        """Check the snapshot directory is writable."""
        ctx.check()
        directory = os.path.dirname(os.path.abspath(self._path))
        if not os.access(directory, os.W_OK):
            raise SnapshotWriteError("file", self._path, f"directory {directory} is not writable")

    def close(self) -> None:
        pass
