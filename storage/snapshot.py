"""
Storage - Snapshot Persistence.

============================================================
RESPONSIBILITY
============================================================
Durable copies of the full metric set, independent of which
backend serves requests.

- SnapshotFile: save/load one JSON snapshot (atomic replace)
- restore_into: restore-on-boot, replays a snapshot as one batch
- SnapshotWorker: background thread saving get_all() on a fixed
  interval, plus a final save on stop

============================================================
"""

import logging
import threading
from typing import List, Optional

from core.context import OperationContext
from core.exceptions import MetricsException
from storage.models import Metric
from storage.repositories.base import MetricsRepository
from storage.repositories.exceptions import SnapshotNotFoundError
from storage.repositories.file import read_snapshot, write_snapshot


logger = logging.getLogger(__name__)


class SnapshotFile:
    """One snapshot file on disk."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def save(self, metrics: List[Metric]) -> None:
        """
        Atomically replace the snapshot.

        Raises:
            SnapshotWriteError: The previous snapshot is left in place
        """
        with self._lock:
            write_snapshot(self._path, metrics, repository_name="snapshot")
        logger.debug(f"Saved {len(metrics)} metrics to {self._path}")

    def load(self) -> List[Metric]:
        """
        Read the snapshot.

        Raises:
            SnapshotNotFoundError: No snapshot has been written yet
            SnapshotCorruptedError: The file is malformed
        """
        with self._lock:
            try:
                return read_snapshot(self._path, repository_name="snapshot")
            except FileNotFoundError as e:
                raise SnapshotNotFoundError("snapshot", self._path) from e


def restore_into(
    repository: MetricsRepository,
    snapshot: SnapshotFile,
    ctx: Optional[OperationContext] = None,
) -> int:
    """
    Replay a snapshot into a repository at boot.

    Counters accumulate onto whatever the repository already holds,
    gauges overwrite. A missing snapshot restores nothing.

    Returns:
        Number of entries restored
    """
    ctx = ctx or OperationContext.background()
    try:
        metrics = snapshot.load()
    except SnapshotNotFoundError:
        logger.info(f"No snapshot at {snapshot.path}, nothing to restore")
        return 0

    repository.update_batch(ctx, metrics)
    logger.info(f"metrics restored {len(metrics)}")
    return len(metrics)


def save_from(
    repository: MetricsRepository,
    snapshot: SnapshotFile,
    ctx: Optional[OperationContext] = None,
) -> int:
    """Write the repository's current contents to the snapshot."""
    metrics = repository.get_all(ctx or OperationContext.background())
    snapshot.save(metrics)
    return len(metrics)


class SnapshotWorker:
    """
    Periodic snapshot task.

    Runs on its own daemon thread; failures are logged and the next
    tick tries again.
    """

    def __init__(
        self,
        repository: MetricsRepository,
        snapshot: SnapshotFile,
        interval: float,
    ) -> None:
        if interval <= 0:
            raise ValueError("SnapshotWorker needs a positive interval")
        self._repository = repository
        self._snapshot = snapshot
        self._interval = interval
        self._ctx = OperationContext.background().with_cancel()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="snapshot-worker", daemon=True)
        self._thread.start()
        logger.info(f"Snapshot worker started, interval={self._interval}s")

    def _run(self) -> None:
        while self._ctx.wait(self._interval):
            self.save_once()

    def save_once(self) -> bool:
        """Take one snapshot; returns False if it failed."""
        try:
            count = save_from(self._repository, self._snapshot)
        except MetricsException as e:
            logger.error(f"cannot save metrics into file {self._snapshot.path}: {e}")
            return False
        logger.debug(f"Periodic snapshot wrote {count} metrics")
        return True

    def stop(self, final_save: bool = True) -> None:
        """Stop the thread and optionally write a last snapshot."""
        self._ctx.cancel()
        if self._thread is not None:
            self._thread.join(timeout=self._interval + 5)
            self._thread = None
        if final_save:
            self.save_once()
        logger.info("Snapshot worker stopped")
