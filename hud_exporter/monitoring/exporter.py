"""
HUD-EXPORTER Telemetry Exporter

### ARCHITECTURAL CONTEXT
Node ID: monitoring.exporter

Lifecycle controller embedded by the host application. Owns two threads:
  - start-delay thread: waits start_delay_seconds, then opens the listener
    and runs its accept loop
  - refresh thread: every refresh_interval_ms, copies the counter source
    into the metrics cache

States: STOPPED → STARTING → LISTENING → STOPPED
A listener that fails to come up, or whose accept loop dies, moves the
exporter to NOT_SERVING: refresh keeps running until stop().

### CRITICAL INVARIANTS
1. Disabled exporter: no thread is started and no socket is opened, ever.
2. Non-blocking for the host: start() returns immediately.
3. stop() is a join. It returns only after both threads have exited.
4. Nothing raises across start() / stop() / update_metrics().
5. The cache lock is never held while calling into the counter source.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from enum import Enum
from types import TracebackType

from config.settings import ExporterConfig
from hud_exporter.core.models import BindTarget, MetricsSnapshot
from hud_exporter.core.sources import CounterSource
from hud_exporter.monitoring.address import parse_bind_address
from hud_exporter.monitoring.cache import MetricsCache
from hud_exporter.monitoring.server import POLL_INTERVAL_SECONDS, MetricsListener

logger = logging.getLogger(__name__)


class ExporterState(str, Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    NOT_SERVING = "NOT_SERVING"


class TelemetryExporter:
    """
    Periodically snapshots a CounterSource and serves it on /metrics.

    Usage:
        exporter = TelemetryExporter(settings.exporter, source)
        exporter.start()   # returns immediately
        # ... host application runs ...
        exporter.stop()    # blocks until both threads are joined

    or as a context manager:
        with TelemetryExporter(settings.exporter, source) as exporter:
            ...
    """

    def __init__(
        self,
        config: ExporterConfig,
        source: CounterSource,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._config = config
        self._source = source
        self._poll_interval = poll_interval
        self._cache = MetricsCache()
        self._stop = threading.Event()
        self._state_lock = threading.Lock()
        self._state = ExporterState.STOPPED
        self._listener: MetricsListener | None = None
        self._server_thread: threading.Thread | None = None
        self._refresh_thread: threading.Thread | None = None
        self._bind_target: BindTarget | None = None

        if not config.enabled:
            return

        self._bind_target = parse_bind_address(config.bind_address)
        logger.info("Telemetry exporter initialized on %s", self._bind_target)

    # ── Public lifecycle ──

    def start(self) -> None:
        """Launch the start-delay and refresh threads. No-op if disabled or running."""
        if not self._config.enabled:
            return
        with self._state_lock:
            if self._threads_alive():
                return
            self._stop.clear()
            self._state = ExporterState.STARTING
            self._server_thread = threading.Thread(
                target=self._run_server,
                daemon=True,
                name="telemetry-exporter-server",
            )
            self._refresh_thread = threading.Thread(
                target=self._run_refresh,
                daemon=True,
                name="telemetry-exporter-refresh",
            )
            self._server_thread.start()
            self._refresh_thread.start()

    def stop(self) -> None:
        """Signal both threads and wait for them. Safe to call repeatedly."""
        self._stop.set()
        current = threading.current_thread()
        for thread in (self._server_thread, self._refresh_thread):
            if thread is not None and thread is not current and thread.is_alive():
                thread.join()
        with self._state_lock:
            if self._state is not ExporterState.STOPPED:
                logger.info("Telemetry exporter stopped")
            self._state = ExporterState.STOPPED

    def update_metrics(self) -> None:
        """Run one refresh tick: read the source and overwrite the cache."""
        try:
            snapshot = MetricsSnapshot(
                counters=self._source.read_counters(),
                process_name=self._source.process_name(),
                graphics_api=self._source.graphics_api(),
                process_pid=os.getpid(),
                captured_at=time.monotonic(),
            )
        except Exception as e:
            # Includes ValidationError from a source returning the wrong types
            logger.warning("Counter source read failed, keeping previous snapshot: %s", e)
            return

        self._cache.store(snapshot)

    # ── Threads ──

    def _run_server(self) -> None:
        delay = self._config.start_delay_seconds
        logger.info("Telemetry exporter starting in %s seconds", delay)
        if self._stop.wait(delay):
            return

        listener = MetricsListener(self._bind_target, self._cache, self._poll_interval)
        if not listener.open():
            self._set_state(ExporterState.NOT_SERVING)
            return
        self._listener = listener
        self._set_state(ExporterState.LISTENING)
        try:
            listener.serve(self._stop)
        finally:
            self._listener = None
            self._set_state(ExporterState.NOT_SERVING)

    def _run_refresh(self) -> None:
        interval = self._config.refresh_interval_ms / 1000.0
        while not self._stop.wait(interval):
            self.update_metrics()

    # ── Helpers ──

    def _threads_alive(self) -> bool:
        return any(
            t is not None and t.is_alive()
            for t in (self._server_thread, self._refresh_thread)
        )

    def _set_state(self, state: ExporterState) -> None:
        with self._state_lock:
            if not self._stop.is_set():
                self._state = state

    # ── Introspection ──

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    @property
    def state(self) -> ExporterState:
        return self._state

    @property
    def has_data(self) -> bool:
        return self._cache.has_data

    @property
    def cache(self) -> MetricsCache:
        return self._cache

    @property
    def bind_target(self) -> BindTarget | None:
        return self._bind_target

    @property
    def server_address(self) -> tuple[str, int] | None:
        """Bound (host, port) once listening, else None."""
        listener = self._listener
        return listener.server_address if listener is not None else None

    # ── Context manager ──

    def __enter__(self) -> TelemetryExporter:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def __del__(self) -> None:
        if hasattr(self, "_stop"):
            self.stop()
