"""
Server Package.

HTTP layer of the metrics collector (aiohttp).

Usage:
    from server import create_app

    app = create_app(repository)
    web.run_app(app, host="localhost", port=8080)
"""

from server.api import CollectorAPI, create_app


__all__ = [
    "CollectorAPI",
    "create_app",
]
