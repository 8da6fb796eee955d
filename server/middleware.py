"""
Collector HTTP Middleware.

- access_log_middleware: one log line per request (method, path,
  status, duration, response size)
- gzip_middleware: gzip responses when the client accepts it

Gzip-encoded request bodies are decompressed by aiohttp's request
parser before handlers read them.
"""

import logging
import time

from aiohttp import web


logger = logging.getLogger("server.access")


@web.middleware
async def access_log_middleware(request: web.Request, handler):
    started = time.monotonic()
    status = 500
    size = 0
    try:
        response = await handler(request)
        status = response.status
        size = response.content_length or 0
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"{request.method} {request.path} status={status} "
            f"duration={duration_ms:.1f}ms size={size}"
        )


@web.middleware
async def gzip_middleware(request: web.Request, handler):
    response = await handler(request)
    accepts = request.headers.get("Accept-Encoding", "")
    if "gzip" in accepts and isinstance(response, web.Response) and response.body:
        response.enable_compression(web.ContentCoding.gzip)
    return response
