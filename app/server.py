"""Embedded uvicorn server that can be started and stopped from code."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI

logger = logging.getLogger(__name__)


class ApiServer:
    """Runs the API on a background thread.

    ``start`` on a running server and ``stop`` on a stopped one are no-ops.
    ``stop`` stops accepting connections, lets in-flight requests finish and
    waits at most ``grace_seconds`` (plus a short join margin).
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "0.0.0.0",
        port: int = 9999,
        grace_seconds: float = 2.0,
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.grace_seconds = grace_seconds
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    def start(self) -> None:
        with self._lock:
            if self.running:
                logger.debug("API server already running")
                return
            config = uvicorn.Config(
                self.app,
                host=self.host,
                port=self.port,
                log_config=None,
                timeout_graceful_shutdown=max(1, int(self.grace_seconds)),
            )
            self._server = uvicorn.Server(config)
            self._thread = threading.Thread(
                target=self._server.run,
                name="api-server",
                daemon=True,
            )
            self._thread.start()
        logger.info("API server starting on %s:%s", self.host, self.port)

    def wait_until_started(self, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.started:
                return True
            if not self.running:
                return False
            time.sleep(0.05)
        return self.started

    def stop(self) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            if server is None or thread is None:
                logger.debug("API server was not running")
                return
            self._server = None
            self._thread = None
        logger.info("Stopping API server")
        server.should_exit = True
        thread.join(timeout=self.grace_seconds + 1.0)
        if thread.is_alive():
            server.force_exit = True
            thread.join(timeout=1.0)
            logger.warning("API server did not drain in time", extra={"reason": "timeout"})
        else:
            logger.info("API server stopped")
