"""
Background uvicorn server for the HTTP endpoint.

The sync loop owns the main thread (and its signal handlers), so uvicorn
runs on a daemon thread and is stopped through ``should_exit``.
"""

from __future__ import annotations

import logging
import threading
import time

import uvicorn
from fastapi import FastAPI

from gitsync.core.errors import ResourceError

logger = logging.getLogger(__name__)


class HttpServer:
    """
    Serves a FastAPI app on host:port until stopped.

    Example:
        >>> server = HttpServer(create_app(metrics), "0.0.0.0", 2020)
        >>> server.start()
        >>> server.stop()
    """

    STARTUP_TIMEOUT = 10.0

    def __init__(self, app: FastAPI, host: str, port: int, log_level: str = "warning") -> None:
        self.host = host
        self.port = port
        self._server = uvicorn.Server(
            uvicorn.Config(app, host=host, port=port, log_level=log_level, lifespan="off")
        )
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start serving and wait until the socket is bound.

        Raises:
            ResourceError: If the server did not come up (e.g. port in use)
        """
        self._thread = threading.Thread(
            target=self._serve, name="gitsync-http", daemon=True
        )
        self._thread.start()

        waited = 0.0
        while not self._server.started:
            if not self._thread.is_alive() or waited >= self.STARTUP_TIMEOUT:
                self.stop()
                raise ResourceError(f"Unable to serve HTTP on {self.host}:{self.port}")
            time.sleep(0.05)
            waited += 0.05
        logger.info("Serving HTTP on %s:%d", self.host, self.port)

    def _serve(self) -> None:
        try:
            self._server.run()
        except SystemExit:
            # uvicorn exits when it cannot bind; start() reports the failure
            logger.debug("HTTP server on %s:%d exited", self.host, self.port)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("HTTP server did not stop within %ss", timeout)
        self._thread = None
