"""
Memory Repository.

============================================================
PURPOSE
============================================================
In-process metrics store.

- One dict for gauges, one for counters
- One reader/writer lock covers every access: updates are
  exclusive, lookups share
- get_all copies entries under the read lock, so the result is a
  point-in-time view that never aliases the internal dicts

============================================================
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, List, Sequence, Tuple

from core.context import OperationContext
from storage.models import Metric, MetricKind
from storage.repositories.base import MetricsRepository
from storage.repositories.batch import validate_batch


class ReadWriteLock:
    """
    Many readers or one writer.

    Writers are preferred: once a writer waits, new readers queue
    behind it.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class MemoryRepository(MetricsRepository):
    """Metrics held in process memory; nothing survives a restart."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._gauges: Dict[str, float] = {}
        self._counters: Dict[str, int] = {}
        self._logger = logging.getLogger("repository.memory")

    def update_gauge(self, ctx: OperationContext, name: str, value: float) -> None:
        ctx.check()
        Metric.gauge(name, value).validate()
        with self._lock.write():
            self._gauges[name] = float(value)

    def update_counter(self, ctx: OperationContext, name: str, delta: int) -> None:
        ctx.check()
        Metric.counter(name, delta).validate()
        with self._lock.write():
            self._counters[name] = self._counters.get(name, 0) + delta

    def get_gauge(self, ctx: OperationContext, name: str) -> Tuple[float, bool]:
        ctx.check()
        with self._lock.read():
            if name in self._gauges:
                return self._gauges[name], True
        return 0.0, False

    def get_counter(self, ctx: OperationContext, name: str) -> Tuple[int, bool]:
        ctx.check()
        with self._lock.read():
            if name in self._counters:
                return self._counters[name], True
        return 0, False

    def get_all(self, ctx: OperationContext) -> List[Metric]:
        ctx.check()
        with self._lock.read():
            result = [Metric.gauge(name, value) for name, value in self._gauges.items()]
            result.extend(Metric.counter(name, delta) for name, delta in self._counters.items())
        return result

    def update_batch(self, ctx: OperationContext, metrics: Sequence[Metric]) -> None:
        """Validate the whole batch, then apply it under one write lock."""
        ctx.check()
        batch = validate_batch(metrics)
        with self._lock.write():
            for metric in batch:
                if metric.type == MetricKind.GAUGE:
                    self._gauges[metric.id] = float(metric.value)
                else:
                    self._counters[metric.id] = self._counters.get(metric.id, 0) + metric.delta
        self._logger.debug(f"Applied batch of {len(batch)} metrics")

    def ping(self, ctx: OperationContext) -> None:
        ctx.check()

    def close(self) -> None:
        pass
