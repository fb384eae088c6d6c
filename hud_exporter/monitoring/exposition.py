"""
HUD-EXPORTER Prometheus Exposition

### ARCHITECTURAL CONTEXT
Node ID: monitoring.exposition

Renders a MetricsSnapshot into the Prometheus text format (0.0.4).
Every family is a gauge with exactly one sample:

    # HELP mangohud_fps_current Current frames per second
    # TYPE mangohud_fps_current gauge
    mangohud_fps_current{process_name="game",graphics_api="VULKAN",pid="42"} 144.00 1760000000000

### CRITICAL INVARIANTS
1. Fixed, exhaustive family list in stable order (GAUGE_FAMILIES).
2. Labels and the timestamp are computed once per document.
3. Timestamp is wall-clock time at formatting, not snapshot capture time.
4. No external dependencies (no prometheus_client required).
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from hud_exporter.core.models import MetricsSnapshot

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_LABEL_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_LABEL_TABLE = str.maketrans(_LABEL_ESCAPES)


@dataclass(frozen=True)
class GaugeFamily:
    """
    One exported gauge.

    Attributes:
        name: Metric family name.
        help: HELP line text.
        field: Attribute of PerfCounters holding the value.
        precision: Decimal places, or None to render as an integer.
    """
    name: str
    help: str
    field: str
    precision: int | None = None

    def format_value(self, value: float) -> str:
        if self.precision is None:
            return str(int(value))
        return f"{value:.{self.precision}f}"


GAUGE_FAMILIES: tuple[GaugeFamily, ...] = (
    # ── Frame pacing ──
    GaugeFamily("mangohud_fps_current", "Current frames per second", "fps", 2),
    GaugeFamily("mangohud_frametime_ms", "Current frame time in milliseconds", "frametime_ms", 3),
    # ── CPU ──
    GaugeFamily("mangohud_cpu_load_percent", "CPU load percentage", "cpu_load", 1),
    GaugeFamily("mangohud_cpu_power_watts", "CPU power consumption in watts", "cpu_power", 1),
    GaugeFamily("mangohud_cpu_frequency_mhz", "CPU frequency in MHz", "cpu_mhz"),
    GaugeFamily("mangohud_cpu_temperature_celsius", "CPU temperature in Celsius", "cpu_temp"),
    # ── GPU ──
    GaugeFamily("mangohud_gpu_load_percent", "GPU load percentage", "gpu_load", 1),
    GaugeFamily("mangohud_gpu_temperature_celsius", "GPU temperature in Celsius", "gpu_temp"),
    GaugeFamily("mangohud_gpu_core_clock_mhz", "GPU core clock in MHz", "gpu_core_clock"),
    GaugeFamily("mangohud_gpu_memory_clock_mhz", "GPU memory clock in MHz", "gpu_mem_clock"),
    GaugeFamily("mangohud_gpu_power_watts", "GPU power consumption in watts", "gpu_power", 1),
    GaugeFamily("mangohud_gpu_vram_used_gb", "GPU VRAM used in GB", "gpu_vram_used_gb", 3),
    # ── Memory ──
    GaugeFamily("mangohud_ram_used_gb", "System RAM used in GB", "ram_used_gb", 3),
    GaugeFamily("mangohud_swap_used_gb", "System swap used in GB", "swap_used_gb", 3),
    GaugeFamily("mangohud_process_rss_gb", "Process RSS memory in GB", "process_rss_gb", 3),
)


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote, LF, CR and TAB for a quoted label value."""
    return value.translate(_LABEL_TABLE)


def format_labels(snapshot: MetricsSnapshot) -> str:
    return (
        f'process_name="{escape_label_value(snapshot.process_name)}",'
        f'graphics_api="{escape_label_value(snapshot.graphics_api)}",'
        f'pid="{snapshot.process_pid}"'
    )


def render_exposition(snapshot: MetricsSnapshot, now_ms: int | None = None) -> str:
    """
    Render all gauge families for one scrape.

    Args:
        snapshot: Cached snapshot, already copied out of the cache.
        now_ms: Sample timestamp override (ms since epoch). Defaults to now.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    labels = format_labels(snapshot)
    counters = snapshot.counters

    lines: list[str] = []
    for family in GAUGE_FAMILIES:
        value = family.format_value(getattr(counters, family.field))
        lines.append(f"# HELP {family.name} {family.help}")
        lines.append(f"# TYPE {family.name} gauge")
        lines.append(f"{family.name}{{{labels}}} {value} {now_ms}")

    return "\n".join(lines) + "\n"
