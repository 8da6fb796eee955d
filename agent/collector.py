"""
Agent - Runtime Collector.

============================================================
PURPOSE
============================================================
Samples process and host statistics as gauges and counts polls.

Gauges are overwritten on every poll. PollCount holds the number
of polls not yet acknowledged by the collector server: after a
successful report the reported amount is subtracted, so the server
receives each poll exactly once as a counter delta.

============================================================
"""

import gc
import logging
import random
from typing import Callable, Dict, List, Optional

import psutil

from storage.models import Metric


logger = logging.getLogger(__name__)

POLL_COUNT = "PollCount"


class RuntimeCollector:
    """Process statistics sampler."""

    def __init__(
        self,
        process: Optional[psutil.Process] = None,
        random_source: Callable[[], float] = random.random,
    ) -> None:
        self._process = process or psutil.Process()
        self._random = random_source
        self._gauges: Dict[str, float] = {}
        self._counters: Dict[str, int] = {}

    @property
    def gauges(self) -> Dict[str, float]:
        return dict(self._gauges)

    @property
    def counters(self) -> Dict[str, int]:
        return dict(self._counters)

    def collect(self) -> None:
        """Take one sample."""
        with self._process.oneshot():
            memory = self._process.memory_info()
            self._gauges["ResidentMemory"] = float(memory.rss)
            self._gauges["VirtualMemory"] = float(memory.vms)
            self._gauges["CPUPercent"] = float(self._process.cpu_percent(interval=None))
            self._gauges["NumThreads"] = float(self._process.num_threads())
            if hasattr(self._process, "num_fds"):
                self._gauges["OpenFiles"] = float(self._process.num_fds())

        system = psutil.virtual_memory()
        self._gauges["TotalMemory"] = float(system.total)
        self._gauges["FreeMemory"] = float(system.available)
        self._gauges["CPUutilization1"] = float(psutil.cpu_percent(interval=None))

        for generation, count in enumerate(gc.get_count()):
            self._gauges[f"GCGen{generation}Count"] = float(count)
        stats = gc.get_stats()
        self._gauges["NumGC"] = float(sum(s.get("collections", 0) for s in stats))
        self._gauges["GCCollected"] = float(sum(s.get("collected", 0) for s in stats))

        self._gauges["RandomValue"] = self._random()
        self._counters[POLL_COUNT] = self._counters.get(POLL_COUNT, 0) + 1

    def snapshot(self) -> List[Metric]:
        """Everything to report right now."""
        metrics = [Metric.gauge(name, value) for name, value in self._gauges.items()]
        metrics.extend(
            Metric.counter(name, delta) for name, delta in self._counters.items() if delta
        )
        return metrics

    def acknowledge(self, sent: List[Metric]) -> None:
        """Subtract counter deltas the server has accepted."""
        for metric in sent:
            if metric.delta is not None and metric.id in self._counters:
                self._counters[metric.id] -= metric.delta
