"""
Agent - Metrics Reporter.

============================================================
PURPOSE
============================================================
Outbound HTTP client of the reporting agent.

- JSON bodies, gzip-compressed
- Every send runs through the shared retry policy
- aiohttp errors are translated before classification:
    connection refused/reset, timeouts, truncated payloads
        -> TransientIOError (retried)
    non-2xx responses, invalid URLs, serialisation failures
        -> FatalIOError (raised at once)

============================================================
"""

import asyncio
import gzip
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional

import aiohttp

from core.config import AgentConfig
from core.exceptions import FatalIOError, TransientIOError
from core.retry import with_retry_async
from storage.models import Metric


logger = logging.getLogger(__name__)


class MetricsReporter:
    """Sends metrics to the collector server."""

    def __init__(
        self,
        config: AgentConfig,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "MetricsReporter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------------------------------------
    # SENDING
    # --------------------------------------------------------

    async def send_metric(self, metric: Metric) -> None:
        """POST /update with one metric."""
        await self._send("/update", metric.to_dict(), f"metric {metric.type.value}/{metric.id}")

    async def send_batch(self, metrics: List[Metric]) -> None:
        """POST /updates with all metrics in one request."""
        if not metrics:
            return
        await self._send("/updates", [m.to_dict() for m in metrics], f"batch of {len(metrics)}")

    async def _send(self, path: str, payload: Any, label: str) -> None:
        try:
            body = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise FatalIOError(f"Failed serializing {label}: {e}", cause=e) from e
        if self._config.compress:
            body = gzip.compress(body)

        await with_retry_async(
            lambda: self._post(path, body),
            delays=self._config.retry_delays,
            sleep=self._sleep,
            operation_name=f"send {label}",
        )

    async def _post(self, path: str, body: bytes) -> None:
        """One attempt."""
        await self.connect()
        headers = {"Content-Type": "application/json"}
        if self._config.compress:
            headers["Content-Encoding"] = "gzip"
            headers["Accept-Encoding"] = "gzip"

        url = f"{self._config.base_url}{path}"
        try:
            async with self._session.post(url, data=body, headers=headers) as response:
                await response.read()
                if response.status != 200:
                    raise FatalIOError(
                        f"Server returned status {response.status} for {path}",
                        context={"status": response.status, "url": url},
                    )
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            raise TransientIOError(f"Network error: {e}", context={"url": url}, cause=e) from e
        except asyncio.TimeoutError as e:
            raise TransientIOError("Request timeout", context={"url": url}, cause=e) from e
        except aiohttp.ClientError as e:
            raise FatalIOError(f"Request failed: {e}", context={"url": url}, cause=e) from e
