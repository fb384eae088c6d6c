"""
HUD-EXPORTER Metrics HTTP Listener

### ARCHITECTURAL CONTEXT
Node ID: monitoring.server

Serves the cached snapshot for Prometheus scraping.

Endpoints:
  GET /metrics  → Prometheus text exposition format
  anything else → 404, empty body

Uses stdlib socketserver/http.server, one connection at a time on the
caller's thread. No keep-alive: every response asserts Connection: close.

### CRITICAL INVARIANTS
1. Read-only: never modifies the cache, only copies the snapshot out.
2. The stop signal is checked at least once per poll interval (1s).
3. The listening socket is closed exactly once, when serve() returns.
4. Bring-up failures are logged, never raised.
"""

from __future__ import annotations

import logging
import socket
import socketserver
import sys
import threading
from http.server import BaseHTTPRequestHandler
from typing import Any

from hud_exporter.core.models import BindTarget
from hud_exporter.monitoring.cache import MetricsCache
from hud_exporter.monitoring.exposition import CONTENT_TYPE, render_exposition

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"
MAX_REQUEST_BYTES = 1024
LISTEN_BACKLOG = 5
POLL_INTERVAL_SECONDS = 1.0
CLIENT_TIMEOUT_SECONDS = 1.0
DRAIN_TIMEOUT_SECONDS = 0.05


class MetricsRequestHandler(BaseHTTPRequestHandler):
    """Answers exactly one request per connection, decided by the request line."""

    protocol_version = "HTTP/1.1"
    timeout = CLIENT_TIMEOUT_SECONDS
    server: MetricsHTTPServer

    def handle(self) -> None:
        self.close_connection = True
        self.handle_one_request()

    def handle_one_request(self) -> None:
        try:
            self.raw_requestline = self.rfile.readline(MAX_REQUEST_BYTES + 1)
        except TimeoutError:
            logger.debug("Metrics client %s sent no request line", self.address_string())
            return
        if not self.raw_requestline:
            return

        self.requestline = self.raw_requestline.decode("iso-8859-1").rstrip("\r\n")
        self.request_version = self.protocol_version
        parts = self.requestline.split()
        if len(parts) >= 2:
            self.command, self.path = parts[0], parts[1]
        else:
            self.command, self.path = "", ""

        well_formed = len(self.raw_requestline) <= MAX_REQUEST_BYTES
        self._drain_request(MAX_REQUEST_BYTES - len(self.raw_requestline))

        if well_formed and self.command == "GET" and self.path.split("?", 1)[0] == METRICS_PATH:
            self._serve_metrics()
        else:
            self._serve_not_found()
        self.wfile.flush()

    def _drain_request(self, budget: int) -> None:
        # Best-effort read of headers and a small body, bounded in bytes and time
        self.connection.settimeout(DRAIN_TIMEOUT_SECONDS)
        content_length = 0
        try:
            while budget > 0:
                line = self.rfile.readline(budget)
                budget -= len(line)
                if line in (b"\r\n", b"\n", b""):
                    break
                name, _, value = line.partition(b":")
                if name.strip().lower() == b"content-length" and value.strip().isdigit():
                    content_length = int(value.strip())
            if 0 < content_length <= budget:
                self.rfile.read(content_length)
        except TimeoutError:
            pass
        finally:
            self.connection.settimeout(self.timeout)

    def _serve_metrics(self) -> None:
        snapshot = self.server.cache.read()
        body = render_exposition(snapshot).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def _serve_not_found(self) -> None:
        self.send_response(404)
        self.send_header("Content-Length", "0")
        self.send_header("Connection", "close")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        """Route access logs to DEBUG instead of stderr."""
        logger.debug("%s - %s", self.address_string(), format % args)


class MetricsHTTPServer(socketserver.TCPServer):
    """Single-threaded TCP server bound to one BindTarget."""

    request_queue_size = LISTEN_BACKLOG

    def __init__(self, target: BindTarget, cache: MetricsCache) -> None:
        self.cache = cache
        super().__init__((target.host, target.port), MetricsRequestHandler)

    def server_bind(self) -> None:
        try:
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            logger.warning("Failed to set SO_REUSEADDR on exporter socket: %s", e)
        self.socket.bind(self.server_address)
        self.server_address = self.socket.getsockname()

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.warning(
            "Dropped metrics connection from %s: %s",
            client_address, sys.exc_info()[1],
        )


class MetricsListener:
    """
    Owns the listening socket and the accept loop.

    Usage:
        listener = MetricsListener(BindTarget(host="127.0.0.1", port=16969), cache)
        if listener.open():
            listener.serve(stop_event)  # blocks until stop_event is set
    """

    def __init__(
        self,
        target: BindTarget,
        cache: MetricsCache,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._target = target
        self._cache = cache
        self._poll_interval = poll_interval
        self._server: MetricsHTTPServer | None = None

    def open(self) -> bool:
        """Create, bind and listen. Returns False (and logs) on any failure."""
        try:
            server = MetricsHTTPServer(self._target, self._cache)
        except OSError as e:
            logger.error("Failed to bind metrics exporter to %s: %s", self._target, e)
            return False
        server.timeout = self._poll_interval
        self._server = server
        logger.info("Metrics exporter listening on http://%s:%d%s", *self.server_address, METRICS_PATH)
        return True

    def serve(self, stop: threading.Event) -> None:
        """Run the accept loop until `stop` is set, then close the socket."""
        if self._server is None:
            return
        try:
            while not stop.is_set():
                self._server.handle_request()
        except (OSError, ValueError) as e:
            logger.error("Accept wait failed on metrics exporter socket: %s", e)
        finally:
            self.close()

    def close(self) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None
            logger.info("Metrics exporter socket closed")

    @property
    def server_address(self) -> tuple[str, int] | None:
        server = self._server
        if server is None:
            return None
        host, port = server.server_address[:2]
        return host, port

    @property
    def is_open(self) -> bool:
        return self._server is not None
