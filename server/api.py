"""
Collector HTTP API.

============================================================
PURPOSE
============================================================
Thin HTTP layer over a MetricsRepository.

- Parses and validates requests, then calls the repository
- found=False -> 404, ValidationError -> 400, any other
  repository error -> 500
- Repository calls are blocking and run in a worker thread

============================================================
ROUTES
============================================================
POST /update/{type}/{name}/{value}   single update, path form
POST /update                         single update, JSON body
POST /updates                        batch update, JSON array
POST /value                          lookup, JSON body
GET  /value/{type}/{name}            lookup, plain text
GET  /                               HTML table of all metrics
GET  /ping                           storage health

============================================================
"""

import asyncio
import html
import json
import logging
from typing import Any, Callable, List, Optional, TypeVar

from aiohttp import web

from core.context import OperationContext
from core.exceptions import MetricsException, ValidationError
from storage.models import Metric, MetricKind, parse_metric
from storage.repositories.base import MetricsRepository
from storage.snapshot import SnapshotFile


logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUEST_TIMEOUT_SECONDS = 30.0


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data),
        status=status,
        content_type="application/json",
    )


def error_response(message: str, status: int) -> web.Response:
    return web.Response(text=message + "\n", status=status, content_type="text/plain")


def format_gauge(value: float) -> str:
    """Shortest text form of a gauge ("123.45", "3", "1e+21")."""
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


# ============================================================
# API HANDLERS
# ============================================================

class CollectorAPI:
    """HTTP handlers for the metrics collector."""

    def __init__(
        self,
        repository: MetricsRepository,
        snapshot: Optional[SnapshotFile] = None,
        sync_save: bool = False,
    ):
        """
        Initialize API.

        Args:
            repository: Metric store
            snapshot: Snapshot file, written after each update when sync_save
            sync_save: Save a snapshot synchronously after every update
        """
        self._repository = repository
        self._snapshot = snapshot
        self._sync_save = sync_save and snapshot is not None

    async def _call(self, fn: Callable[[OperationContext], T]) -> T:
        ctx = OperationContext.background().with_timeout(REQUEST_TIMEOUT_SECONDS)
        try:
            return await asyncio.to_thread(fn, ctx)
        except asyncio.CancelledError:
            ctx.cancel()
            raise

    async def _after_update(self) -> None:
        if not self._sync_save:
            return

        def save(ctx: OperationContext) -> None:
            self._snapshot.save(self._repository.get_all(ctx))

        await self._call(save)

    async def _read_json(self, request: web.Request) -> Any:
        if request.content_type != "application/json":
            raise ValidationError("content type must be application/json")
        body = await request.read()
        if not body:
            raise ValidationError("empty request body")
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"invalid JSON: {e}") from e

    async def _update(self, metric: Metric) -> None:
        if metric.type == MetricKind.GAUGE:
            await self._call(lambda ctx: self._repository.update_gauge(ctx, metric.id, metric.value))
        else:
            await self._call(lambda ctx: self._repository.update_counter(ctx, metric.id, metric.delta))
        await self._after_update()

    async def _lookup(self, kind: MetricKind, name: str) -> Optional[Metric]:
        if kind == MetricKind.GAUGE:
            value, found = await self._call(lambda ctx: self._repository.get_gauge(ctx, name))
            return Metric.gauge(name, value) if found else None
        delta, found = await self._call(lambda ctx: self._repository.get_counter(ctx, name))
        return Metric.counter(name, delta) if found else None

    # --------------------------------------------------------
    # UPDATE ENDPOINTS
    # --------------------------------------------------------

    async def update_path(self, request: web.Request) -> web.Response:
        """
        POST /update/{type}/{name}/{value}
        """
        metric = parse_metric(
            request.match_info["type"],
            request.match_info["name"],
            request.match_info["value"],
        )
        await self._update(metric)
        return web.Response(status=200)

    async def update_json(self, request: web.Request) -> web.Response:
        """
        POST /update

        Body: {"id": ..., "type": ..., "value"|"delta": ...}
        Responds with the stored metric after the update.
        """
        metric = Metric.from_dict(await self._read_json(request))
        await self._update(metric)
        stored = await self._lookup(metric.type, metric.id)
        return json_response(stored.to_dict() if stored else metric.to_dict())

    async def update_batch(self, request: web.Request) -> web.Response:
        """
        POST /updates

        Body: JSON array of metrics, applied all-or-nothing.
        """
        payload = await self._read_json(request)
        if not isinstance(payload, list):
            raise ValidationError("batch body must be a JSON array")
        metrics: List[Metric] = [Metric.from_dict(item) for item in payload]

        await self._call(lambda ctx: self._repository.update_batch(ctx, metrics))
        await self._after_update()
        return json_response({"status": "ok", "updated": len(metrics)})

    # --------------------------------------------------------
    # READ ENDPOINTS
    # --------------------------------------------------------

    async def value_json(self, request: web.Request) -> web.Response:
        """
        POST /value

        Body: {"id": ..., "type": ...}
        """
        payload = await self._read_json(request)
        if not isinstance(payload, dict) or not payload.get("id") or not payload.get("type"):
            raise ValidationError("id and type are required")

        kind = MetricKind.parse(payload["type"])
        stored = await self._lookup(kind, payload["id"])
        if stored is None:
            return error_response("metric not found", 404)
        return json_response(stored.to_dict())

    async def value_path(self, request: web.Request) -> web.Response:
        """
        GET /value/{type}/{name}
        """
        kind = MetricKind.parse(request.match_info["type"])
        stored = await self._lookup(kind, request.match_info["name"])
        if stored is None:
            return error_response("metric not found", 404)

        if kind == MetricKind.GAUGE:
            return web.Response(text=format_gauge(stored.value))
        return web.Response(text=str(stored.delta))

    async def index(self, request: web.Request) -> web.Response:
        """
        GET /

        HTML table of every stored metric.
        """
        metrics = await self._call(self._repository.get_all)
        rows = []
        for metric in sorted(metrics, key=lambda m: (m.id, m.type.value)):
            shown = format_gauge(metric.value) if metric.type == MetricKind.GAUGE else str(metric.delta)
            rows.append(
                f"<tr><td>{html.escape(metric.id)}</td>"
                f"<td>{metric.type.value}</td><td>{shown}</td></tr>"
            )
        page = (
            "<!DOCTYPE html><html><head><title>Metrics</title></head><body>"
            "<h1>Metrics</h1><table><tr><th>Name</th><th>Type</th><th>Value</th></tr>"
            + "".join(rows)
            + "</table></body></html>"
        )
        return web.Response(text=page, content_type="text/html")

    # --------------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------------

    async def ping(self, request: web.Request) -> web.Response:
        """
        GET /ping
        """
        await self._call(self._repository.ping)
        return web.Response(text="ok")


# ============================================================
# ERROR MAPPING
# ============================================================

@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map the error taxonomy to status codes."""
    try:
        return await handler(request)
    except ValidationError as e:
        return error_response(e.message, 400)
    except MetricsException as e:
        logger.error(f"{request.method} {request.path} failed: {e}")
        return error_response("internal server error", 500)


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(
    repository: MetricsRepository,
    snapshot: Optional[SnapshotFile] = None,
    sync_save: bool = False,
) -> web.Application:
    """
    Create the collector application.

    Returns an aiohttp Application with all routes configured.
    """
    from server.middleware import access_log_middleware, gzip_middleware

    api = CollectorAPI(repository, snapshot=snapshot, sync_save=sync_save)

    app = web.Application(
        middlewares=[access_log_middleware, gzip_middleware, error_middleware]
    )

    app.router.add_post("/update/{type}/{name}/{value}", api.update_path)
    app.router.add_post("/update", api.update_json)
    app.router.add_post("/update/", api.update_json)
    app.router.add_post("/updates", api.update_batch)
    app.router.add_post("/updates/", api.update_batch)
    app.router.add_post("/value", api.value_json)
    app.router.add_post("/value/", api.value_json)
    app.router.add_get("/value/{type}/{name}", api.value_path)
    app.router.add_get("/", api.index)
    app.router.add_get("/ping", api.ping)

    return app
