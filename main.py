"""
HUD-EXPORTER CLI Entrypoint

### ARCHITECTURAL CONTEXT
Node ID: cli.main

### PURPOSE
Runs the telemetry exporter standalone, on counters read from the local
machine, and offers two helpers around it.

### USAGE
  python -m main serve              # Export local counters until Ctrl+C
  python -m main serve --bind 127.0.0.1:9100 --delay 0
  python -m main render             # Print one exposition document
  python -m main scrape --bind 127.0.0.1:9100   # Fetch /metrics from a running exporter

### CRITICAL INVARIANTS
1. `serve` always enables the exporter, whatever HUD_EXPORTER_ENABLED says.
2. Ctrl+C / SIGTERM perform a full stop() (both threads joined).
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading

import httpx

from config.settings import ExporterConfig, Settings
from hud_exporter.core.models import MetricsSnapshot
from hud_exporter.core.sources import SystemCounterSource
from hud_exporter.monitoring.address import parse_bind_address
from hud_exporter.monitoring.exporter import TelemetryExporter
from hud_exporter.monitoring.exposition import render_exposition
from hud_exporter.monitoring.server import METRICS_PATH
from hud_exporter.utils.log_format import configure_logging

logger = logging.getLogger("hud_exporter")


def setup_logging(verbose: bool = False, json_output: bool = False, level: str = "INFO") -> None:
    """Configure package logging."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    configure_logging(level=resolved, json_output=json_output)
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_exporter_config(
    base: ExporterConfig,
    bind: str | None = None,
    delay: float | None = None,
    interval: int | None = None,
) -> ExporterConfig:
    """Apply CLI overrides on top of the environment config. Always enabled."""
    overrides: dict[str, object] = {"enabled": True}
    if bind is not None:
        overrides["bind_address"] = bind
    if delay is not None:
        overrides["start_delay_seconds"] = delay
    if interval is not None:
        overrides["refresh_interval_ms"] = interval
    return ExporterConfig.model_validate({**base.model_dump(), **overrides})


def cmd_serve(settings: Settings, args: argparse.Namespace) -> int:
    """Run the exporter on SystemCounterSource until a shutdown signal."""
    config = build_exporter_config(settings.exporter, args.bind, args.delay, args.interval)
    exporter = TelemetryExporter(config, SystemCounterSource())

    logger.info("═══ HUD-EXPORTER ═══")
    logger.info(
        "Bind: %s | Delay: %ss | Interval: %dms",
        exporter.bind_target, config.start_delay_seconds, config.refresh_interval_ms,
    )

    shutdown = threading.Event()

    def handle_signal(sig, frame):
        logger.info("Shutdown signal received.")
        shutdown.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    with exporter:
        while not shutdown.wait(1.0):
            pass
    return 0


def cmd_render(settings: Settings, args: argparse.Namespace) -> int:
    """Print one exposition document for the current local counters."""
    source = SystemCounterSource()
    snapshot = MetricsSnapshot(
        counters=source.read_counters(),
        process_name=source.process_name(),
        graphics_api=source.graphics_api(),
        process_pid=os.getpid(),
    )
    sys.stdout.write(render_exposition(snapshot))
    return 0


def cmd_scrape(settings: Settings, args: argparse.Namespace) -> int:
    """Fetch /metrics from a running exporter and print the body."""
    target = parse_bind_address(args.bind or settings.exporter.bind_address)
    host = "127.0.0.1" if target.host == "0.0.0.0" else target.host
    url = f"http://{host}:{target.port}{METRICS_PATH}"

    try:
        response = httpx.get(url, timeout=args.timeout)
    except httpx.HTTPError as e:
        logger.error("Failed to scrape %s: %s", url, e)
        return 1

    if response.status_code != 200:
        logger.error("Scrape of %s returned HTTP %d", url, response.status_code)
        return 1

    sys.stdout.write(response.text)
    return 0


COMMANDS = {
    "serve": cmd_serve,
    "render": cmd_render,
    "scrape": cmd_scrape,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hud-exporter",
        description="HUD-EXPORTER: Prometheus exporter for HUD performance counters",
    )
    parser.add_argument(
        "command",
        choices=sorted(COMMANDS),
        help="Operating mode",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON log lines",
    )
    parser.add_argument(
        "--bind",
        default=None,
        help="'host:port' or bare 'port' (default: HUD_EXPORTER_BIND_ADDRESS)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds before the listener comes up. Used with 'serve'.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Refresh interval in milliseconds. Used with 'serve'.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="HTTP timeout in seconds (default: 5). Used with 'scrape'.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(args.verbose, args.json_logs or settings.json_logs, settings.log_level)
    return COMMANDS[args.command](settings, args)


if __name__ == "__main__":
    sys.exit(main())
