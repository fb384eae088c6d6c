"""
HUD-EXPORTER Tests: Telemetry Exporter Lifecycle

Node ID: tests.unit.test_exporter_lifecycle
Graph Link: tested_by → monitoring.exporter

Tests cover:
- Disabled exporter never starts threads or opens sockets
- start()/stop() idempotence and join semantics
- Start delay is interruptible by stop()
- Refresh loop: no eager priming, has_data, wholesale overwrite
- Counter source failures, including wrongly typed values, are absorbed
- Listener bring-up failure leaves the refresh loop running (NOT_SERVING)
"""

from __future__ import annotations

import os
import socket
import threading
import time

import httpx
import pytest

from config.settings import ExporterConfig
from hud_exporter.core.models import PerfCounters
from hud_exporter.core.sources import StaticCounterSource
from hud_exporter.monitoring.exporter import ExporterState, TelemetryExporter
from hud_exporter.monitoring.server import MetricsListener


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _exporter_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t.name.startswith("telemetry-exporter")]


def _config(**overrides) -> ExporterConfig:
    values = {
        "enabled": True,
        "bind_address": f"127.0.0.1:{_free_port()}",
        "start_delay_seconds": 0.0,
        "refresh_interval_ms": 20,
    }
    values.update(overrides)
    return ExporterConfig(**values)


@pytest.fixture
def source() -> StaticCounterSource:
    return StaticCounterSource(
        PerfCounters(fps=120.0, cpu_temp=55),
        process_name="game.exe",
        engine=2,
    )


@pytest.fixture
def exporter(source):
    exp = TelemetryExporter(_config(), source, poll_interval=0.05)
    yield exp
    exp.stop()


class TestDisabled:

    def test_no_threads_no_socket(self, source, monkeypatch):
        opened = []
        monkeypatch.setattr(
            "hud_exporter.monitoring.server.MetricsHTTPServer.__init__",
            lambda *a, **kw: opened.append(a),
        )
        exp = TelemetryExporter(_config(enabled=False, start_delay_seconds=0.0), source)
        exp.start()
        time.sleep(0.1)
        assert _exporter_threads() == []
        assert opened == []
        assert exp.is_enabled is False
        assert exp.bind_target is None
        assert exp.server_address is None
        assert exp.state is ExporterState.STOPPED
        exp.stop()

    def test_stop_when_disabled(self, source):
        exp = TelemetryExporter(_config(enabled=False), source)
        exp.stop()
        exp.stop()
        assert exp.state is ExporterState.STOPPED


class TestStartStop:

    def test_stop_before_start_is_prompt(self, source):
        exp = TelemetryExporter(_config(), source)
        started = time.monotonic()
        exp.stop()
        assert time.monotonic() - started < 0.5
        assert exp.state is ExporterState.STOPPED

    def test_stop_twice(self, exporter):
        exporter.start()
        exporter.stop()
        exporter.stop()
        assert exporter.state is ExporterState.STOPPED
        assert _exporter_threads() == []

    def test_start_twice_spawns_one_pair(self, exporter):
        exporter.start()
        first = list(_exporter_threads())
        exporter.start()
        assert len(_exporter_threads()) == 2
        assert set(_exporter_threads()) == set(first)

    def test_stop_joins_threads(self, exporter):
        exporter.start()
        assert _wait_for(lambda: exporter.state is ExporterState.LISTENING)
        exporter.stop()
        assert _exporter_threads() == []

    def test_start_delay_interrupted_by_stop(self, source):
        exp = TelemetryExporter(_config(start_delay_seconds=30.0), source)
        exp.start()
        assert exp.state is ExporterState.STARTING
        started = time.monotonic()
        exp.stop()
        assert time.monotonic() - started < 1.0
        assert exp.server_address is None
        assert _exporter_threads() == []

    def test_restart_after_stop(self, exporter):
        exporter.start()
        exporter.stop()
        exporter.start()
        assert len(_exporter_threads()) == 2
        assert exporter.state in (ExporterState.STARTING, ExporterState.LISTENING)

    def test_context_manager(self, source):
        with TelemetryExporter(_config(), source, poll_interval=0.05) as exp:
            assert _wait_for(lambda: exp.state is ExporterState.LISTENING)
        assert exp.state is ExporterState.STOPPED
        assert _exporter_threads() == []


class TestListening:

    def test_serves_after_delay(self, exporter):
        exporter.start()
        assert _wait_for(lambda: exporter.server_address is not None)
        host, port = exporter.server_address
        assert (host, port) == (exporter.bind_target.host, exporter.bind_target.port)
        resp = httpx.get(f"http://{host}:{port}/metrics", timeout=5)
        assert resp.status_code == 200

    def test_socket_closed_after_stop(self, exporter):
        exporter.start()
        assert _wait_for(lambda: exporter.server_address is not None)
        _, port = exporter.server_address
        exporter.stop()
        assert exporter.server_address is None
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1).close()

    def test_bind_failure_keeps_refresh_running(self, source, caplog):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]
            exp = TelemetryExporter(_config(bind_address=f"127.0.0.1:{port}"), source)
            exp.start()
            try:
                assert _wait_for(lambda: exp.has_data)
                assert _wait_for(lambda: exp.state is ExporterState.NOT_SERVING)
                assert exp.server_address is None
                assert "Failed to bind" in caplog.text
            finally:
                exp.stop()

    def test_accept_loop_exit_marks_not_serving(self, source, monkeypatch):
        monkeypatch.setattr(MetricsListener, "serve", lambda self, stop: self.close())
        exp = TelemetryExporter(_config(), source)
        exp.start()
        try:
            assert _wait_for(lambda: exp.state is ExporterState.NOT_SERVING)
            assert exp.server_address is None
        finally:
            exp.stop()
        assert exp.state is ExporterState.STOPPED


class TestRefresh:

    def test_no_eager_priming(self, source):
        exp = TelemetryExporter(_config(refresh_interval_ms=500, start_delay_seconds=30.0), source)
        exp.start()
        try:
            assert exp.has_data is False
            assert _wait_for(lambda: exp.has_data, timeout=5.0)
        finally:
            exp.stop()

    def test_has_data_stays_true(self, exporter):
        exporter.start()
        assert _wait_for(lambda: exporter.has_data)
        exporter.stop()
        assert exporter.has_data is True

    def test_update_metrics_snapshot(self, exporter):
        assert exporter.has_data is False
        exporter.update_metrics()
        snap = exporter.cache.read()
        assert exporter.has_data is True
        assert snap.counters.fps == 120.0
        assert snap.process_name == "game.exe"
        assert snap.graphics_api == "VULKAN"
        assert snap.process_pid == os.getpid()
        assert snap.captured_at > 0

    def test_refresh_overwrites_all_fields(self, exporter, source):
        exporter.update_metrics()
        source.publish(PerfCounters(gpu_power=200.0))
        source.set_engine(99)
        exporter.update_metrics()
        snap = exporter.cache.read()
        assert snap.counters == PerfCounters(gpu_power=200.0)
        assert snap.counters.fps == 0.0
        assert snap.counters.cpu_temp == 0
        assert snap.graphics_api == "unknown"

    def test_refresh_loop_picks_up_host_updates(self, exporter, source):
        exporter.start()
        source.publish(PerfCounters(fps=42.0))
        assert _wait_for(lambda: exporter.cache.read().counters.fps == 42.0)

    def test_source_failure_is_absorbed(self, caplog):
        class FlakySource(StaticCounterSource):
            fail = False

            def read_counters(self) -> PerfCounters:
                if self.fail:
                    raise RuntimeError("shared memory gone")
                return super().read_counters()

        flaky = FlakySource(PerfCounters(fps=60.0), process_name="g")
        exp = TelemetryExporter(_config(), flaky)
        exp.update_metrics()
        flaky.fail = True
        exp.update_metrics()
        assert exp.cache.read().counters.fps == 60.0
        assert "shared memory gone" in caplog.text

    def test_source_failure_does_not_stop_loop(self, caplog):
        calls = []

        class BrokenSource(StaticCounterSource):
            def read_counters(self) -> PerfCounters:
                calls.append(1)
                raise RuntimeError("boom")

        exp = TelemetryExporter(_config(start_delay_seconds=30.0), BrokenSource(process_name="g"))
        exp.start()
        try:
            assert _wait_for(lambda: len(calls) >= 3)
            assert exp.has_data is False
        finally:
            exp.stop()

    def test_malformed_source_values_are_absorbed(self, caplog):
        class NamelessSource(StaticCounterSource):
            broken = False

            def process_name(self):
                return None if self.broken else "g"

        nameless = NamelessSource(PerfCounters(fps=60.0))
        exp = TelemetryExporter(_config(), nameless)
        exp.update_metrics()
        nameless.broken = True
        nameless.publish(PerfCounters(fps=30.0))
        exp.update_metrics()
        assert exp.cache.read().counters.fps == 60.0
        assert exp.cache.read().process_name == "g"
        assert "keeping previous snapshot" in caplog.text

    def test_malformed_source_values_do_not_stop_loop(self):
        calls = []

        class BadTypeSource(StaticCounterSource):
            def graphics_api(self):
                calls.append(1)
                return 42

        exp = TelemetryExporter(_config(start_delay_seconds=30.0), BadTypeSource(process_name="g"))
        exp.start()
        try:
            assert _wait_for(lambda: len(calls) >= 3)
            assert exp.has_data is False
        finally:
            exp.stop()
