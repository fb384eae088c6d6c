"""
HUD-EXPORTER Counter Sources

### ARCHITECTURAL CONTEXT
Node ID: core.sources

The exporter never reaches into the host application. It polls a
CounterSource once per refresh tick and copies what it gets.

Two sources ship with the package:
  - StaticCounterSource: the host pushes counters into it from its own thread
  - SystemCounterSource: psutil-backed readings of the local machine, used
    when the exporter runs standalone from the CLI

### CRITICAL INVARIANTS
1. Sources do their own locking; callers never hold another lock around them.
2. read_counters() returns a frozen record, safe to hand across threads.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Protocol, runtime_checkable

import psutil

from hud_exporter.core.models import (
    UNKNOWN_GRAPHICS_API,
    PerfCounters,
    graphics_api_name,
)

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024 ** 3

# Preferred sensor chips, checked in order before falling back to any reading
_CPU_SENSORS = ("coretemp", "k10temp", "cpu_thermal", "cpu-thermal", "zenpower")


@runtime_checkable
class CounterSource(Protocol):
    """Snapshot provider polled by the refresh task."""

    def read_counters(self) -> PerfCounters: ...

    def process_name(self) -> str: ...

    def graphics_api(self) -> str: ...


def resolve_process_name() -> str:
    """Best-effort name of the current program."""
    if sys.argv and sys.argv[0]:
        name = os.path.basename(sys.argv[0])
        if name:
            return name
    try:
        return psutil.Process().name()
    except psutil.Error:
        return "unknown"


class StaticCounterSource:
    """
    In-memory source fed by the host application.

    Usage:
        source = StaticCounterSource()
        exporter = TelemetryExporter(config, source)
        # host render loop:
        source.publish(PerfCounters(fps=144.0, frametime_ms=6.9))
        source.set_engine(2)  # VULKAN
    """

    def __init__(
        self,
        counters: PerfCounters | None = None,
        process_name: str | None = None,
        engine: int | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._counters = counters if counters is not None else PerfCounters()
        self._process_name = process_name or resolve_process_name()
        self._engine = engine

    def publish(self, counters: PerfCounters) -> None:
        with self._lock:
            self._counters = counters

    def set_engine(self, engine: int | None) -> None:
        with self._lock:
            self._engine = engine

    def read_counters(self) -> PerfCounters:
        with self._lock:
            return self._counters

    def process_name(self) -> str:
        return self._process_name

    def graphics_api(self) -> str:
        with self._lock:
            return graphics_api_name(self._engine)


class SystemCounterSource:
    """
    Reads CPU, memory and process figures of the local machine via psutil.

    Frame and GPU counters have no portable source and stay at zero.
    Any sensor that is missing on this platform reads as zero instead of
    failing the whole tick.
    """

    def __init__(self, pid: int | None = None) -> None:
        self._process = psutil.Process(pid)
        # Prime cpu_percent so the first real read has a baseline
        psutil.cpu_percent(interval=None)

    def read_counters(self) -> PerfCounters:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return PerfCounters(
            cpu_load=psutil.cpu_percent(interval=None),
            cpu_mhz=self._cpu_frequency(),
            cpu_temp=self._cpu_temperature(),
            ram_used_gb=mem.used / _BYTES_PER_GB,
            swap_used_gb=swap.used / _BYTES_PER_GB,
            process_rss_gb=self._process.memory_info().rss / _BYTES_PER_GB,
        )

    def process_name(self) -> str:
        try:
            return self._process.name()
        except psutil.Error:
            return resolve_process_name()

    def graphics_api(self) -> str:
        return UNKNOWN_GRAPHICS_API

    @staticmethod
    def _cpu_frequency() -> int:
        try:
            freq = psutil.cpu_freq()
        except (OSError, NotImplementedError):
            return 0
        return int(freq.current) if freq else 0

    @staticmethod
    def _cpu_temperature() -> int:
        sensors_temperatures = getattr(psutil, "sensors_temperatures", None)
        if sensors_temperatures is None:
            return 0
        try:
            temps = sensors_temperatures()
        except OSError as e:
            logger.debug("Temperature sensors unavailable: %s", e)
            return 0
        for name in _CPU_SENSORS:
            if temps.get(name):
                return int(temps[name][0].current)
        for readings in temps.values():
            if readings:
                return int(readings[0].current)
        return 0
