"""
Tests for the HTTP endpoint.

The application is exercised through FastAPI's TestClient; HttpServer is
started for real on a free local port.
"""

import socket

import httpx
import pytest
from fastapi.testclient import TestClient

from gitsync.core.errors import ResourceError
from gitsync.core.http import HttpServer, create_app
from gitsync.core.sync import IterationOutcome
from gitsync.core.sync.metrics import SyncMetrics


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def metrics():
    return SyncMetrics()


class TestApp:
    """Test the routes."""

    def test_root_is_liveness(self, metrics):
        client = TestClient(create_app(metrics))

        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health(self):
        response = TestClient(create_app()).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_exposition(self, metrics):
        metrics.observe(IterationOutcome.success("a" * 40, True, duration_seconds=0.5))
        client = TestClient(create_app(metrics))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'git_sync_count_total{status="success"} 1.0' in response.text
        assert 'git_sync_duration_seconds_sum{status="success"} 0.5' in response.text

    def test_metrics_disabled(self):
        response = TestClient(create_app(None)).get("/metrics")

        assert response.status_code == 404


class TestHttpServer:
    """Test the background server."""

    def test_serves_until_stopped(self, metrics):
        port = free_port()
        server = HttpServer(create_app(metrics), "127.0.0.1", port)

        server.start()
        try:
            assert server.running
            response = httpx.get(f"http://127.0.0.1:{port}/", timeout=5)
            assert response.status_code == 200
        finally:
            server.stop()

        assert not server.running

    def test_port_in_use_fails_to_start(self):
        with socket.socket() as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = taken.getsockname()[1]

            server = HttpServer(create_app(), "127.0.0.1", port)
            with pytest.raises(ResourceError):
                server.start()

        assert not server.running

    def test_stop_without_start(self):
        HttpServer(create_app(), "127.0.0.1", free_port()).stop()
