"""
Agent - Runner.

Two loops on one event loop: poll every poll_interval, report
every report_interval. A failed report keeps the unacknowledged
counter deltas for the next attempt.
"""

import asyncio
import logging
from typing import Optional

from core.config import AgentConfig
from core.exceptions import MetricsException
from agent.collector import RuntimeCollector
from agent.reporter import MetricsReporter


logger = logging.getLogger(__name__)


class AgentRunner:
    """Poll/report scheduler."""

    def __init__(
        self,
        config: AgentConfig,
        collector: Optional[RuntimeCollector] = None,
        reporter: Optional[MetricsReporter] = None,
    ) -> None:
        self._config = config
        self._collector = collector or RuntimeCollector()
        self._reporter = reporter or MetricsReporter(config)
        self._stopped = asyncio.Event()

    def stop(self) -> None:
        self._stopped.set()

    async def report_once(self) -> bool:
        """Send one batch; returns False if it failed."""
        metrics = self._collector.snapshot()
        try:
            await self._reporter.send_batch(metrics)
        except MetricsException as e:
            logger.error(f"Failed sending batch metrics: {e}")
            return False
        self._collector.acknowledge(metrics)
        logger.debug(f"Reported {len(metrics)} metrics")
        return True

    async def _every(self, interval: float, action) -> None:
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await action()

    async def _poll(self) -> None:
        self._collector.collect()

    async def run(self) -> None:
        logger.info(
            f"Agent started. Server={self._config.address}, "
            f"poll={self._config.poll_interval}s, report={self._config.report_interval}s"
        )
        async with self._reporter:
            await asyncio.gather(
                self._every(self._config.poll_interval, self._poll),
                self._every(self._config.report_interval, self.report_once),
            )
        logger.info("Agent stopped")
