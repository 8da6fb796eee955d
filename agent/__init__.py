"""
Agent Package.

Samples process statistics and reports them to the collector.

Components:
- collector: psutil/gc sampler
- reporter: aiohttp client with retries
- runner: poll/report loops
"""

from agent.collector import RuntimeCollector
from agent.reporter import MetricsReporter
from agent.runner import AgentRunner


__all__ = [
    "AgentRunner",
    "MetricsReporter",
    "RuntimeCollector",
]
