"""
HUD-EXPORTER Domain Models

### ARCHITECTURAL CONTEXT
Node ID: core.models

Immutable data contracts shared by the counter sources, the metrics cache
and the exposition formatter. A counter source emits PerfCounters, the
refresh task wraps them into a MetricsSnapshot, and the address parser
produces a BindTarget for the listener.

### DESIGN DECISIONS
- Pydantic models for runtime validation
- Frozen=True: a snapshot is replaced wholesale, never mutated in place
- Clocks and temperatures are integers, everything else floats
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ─── Graphics Engines ────────────────────────────────────────────────

GRAPHICS_ENGINES: tuple[str, ...] = (
    "Unknown",
    "OpenGL",
    "VULKAN",
    "DXVK",
    "VKD3D",
    "DAMAVAND",
    "ZINK",
    "WINED3D",
    "Feral3D",
    "ToGL",
    "GAMESCOPE",
)

UNKNOWN_GRAPHICS_API = "unknown"


def graphics_api_name(engine: int | None) -> str:
    """
    Map an engine index reported by the host to its display name.

    Out-of-range or missing indices fall back to "unknown" rather than
    raising, so a misbehaving host can never break a refresh tick.
    """
    if engine is None or engine < 0 or engine >= len(GRAPHICS_ENGINES):
        return UNKNOWN_GRAPHICS_API
    return GRAPHICS_ENGINES[engine]


# ─── Counter Record ──────────────────────────────────────────────────

class PerfCounters(BaseModel, frozen=True):
    """
    Raw performance counters published by the host application.
    Memory figures are in GB, power in watts, clocks in MHz.
    """

    fps: float = 0.0
    frametime_ms: float = 0.0
    cpu_load: float = 0.0
    cpu_power: float = 0.0
    cpu_mhz: int = 0
    cpu_temp: int = 0
    gpu_load: float = 0.0
    gpu_temp: int = 0
    gpu_core_clock: int = 0
    gpu_mem_clock: int = 0
    gpu_power: float = 0.0
    gpu_vram_used_gb: float = 0.0
    ram_used_gb: float = 0.0
    swap_used_gb: float = 0.0
    process_rss_gb: float = 0.0


# ─── Cached Snapshot ─────────────────────────────────────────────────

class MetricsSnapshot(BaseModel, frozen=True):
    """One refresh tick worth of counters plus process metadata."""

    counters: PerfCounters = Field(default_factory=PerfCounters)
    process_name: str = ""
    graphics_api: str = UNKNOWN_GRAPHICS_API
    process_pid: int = 0
    captured_at: float = Field(
        default=0.0,
        description="time.monotonic() at refresh; not used for exposition timestamps",
    )


# ─── Listener Target ─────────────────────────────────────────────────

class BindTarget(BaseModel, frozen=True):
    """Resolved listen address for the metrics listener."""

    host: str
    port: int = Field(ge=1, le=65535)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"
