"""
HTTP endpoint for a running sync process.

Provides the FastAPI application (liveness and Prometheus metrics) and the
HttpServer that runs it on a background uvicorn thread.
"""

from .app import create_app
from .server import HttpServer

__all__ = ["HttpServer", "create_app"]
