"""
FastAPI application for the gitsync HTTP endpoint.

Routes:
    GET /         liveness: 200 while the process runs
    GET /health   same, under a named path
    GET /metrics  Prometheus metrics (only when metrics are enabled)
"""

import logging

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from gitsync import __version__
from gitsync.core.sync.metrics import SyncMetrics

logger = logging.getLogger(__name__)


def create_app(metrics: SyncMetrics | None = None) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        metrics: Metrics to expose at /metrics; the route is absent when None

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="gitsync",
        description="Liveness and metrics endpoint of a gitsync process",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness check. Checks nothing beyond the process answering."""
        return {"status": "ok"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    if metrics is not None:

        @app.get("/metrics")
        async def metrics_endpoint() -> Response:
            return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)

    return app
