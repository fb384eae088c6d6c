"""
HUD-EXPORTER Metrics Cache

### ARCHITECTURAL CONTEXT
Node ID: monitoring.cache

The only state shared between the refresh thread and request handling.

### CRITICAL INVARIANTS
1. Every access happens under the lock, held only for the copy in or out.
2. store() replaces the whole snapshot; fields are never merged.
3. has_data flips to True on the first store and never back.
"""

from __future__ import annotations

import threading

from hud_exporter.core.models import MetricsSnapshot


class MetricsCache:
    """Latest MetricsSnapshot behind a mutex."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = MetricsSnapshot()
        self._has_data = threading.Event()

    def store(self, snapshot: MetricsSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
        self._has_data.set()

    def read(self) -> MetricsSnapshot:
        # Snapshots are frozen, so handing out the reference is a copy-out
        with self._lock:
            return self._snapshot

    @property
    def has_data(self) -> bool:
        return self._has_data.is_set()
