"""
HUD-EXPORTER Structured Logging

### ARCHITECTURAL CONTEXT
Node ID: utils.log_format

12-Factor App Logging: treat logs as event streams. The exporter logs
through plain `logging.getLogger(__name__)` loggers; this module only
decides how records are rendered when JSON output is requested.

### CRITICAL INVARIANTS
1. One JSON object per line, always valid JSON.
2. Thread name is always present (exporter work happens off the main thread).
3. Zero external dependencies, stdlib only.

### LOG LEVELS
- DEBUG: access log lines, sensor probing
- INFO: exporter initialized, start delay, listening, stopped
- WARNING: suspicious bind host, SO_REUSEADDR failure, dropped connections,
           counter source read failures
- ERROR: invalid port fallback, bind/listen failure, accept wait failure
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any


# Standard fields that should not be duplicated in "extra"
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "thread", "threadName", "exc_info", "exc_text",
    "message", "asctime", "taskName",
})

_NAMESPACE = "hud_exporter"


class JsonFormatter(logging.Formatter):
    """
    JSON structured log formatter.

    Output format:
    ```json
    {
        "ts": "2026-02-01T14:30:01.123000+00:00",
        "level": "INFO",
        "component": "hud_exporter.monitoring.server",
        "thread": "telemetry-exporter-server",
        "msg": "Metrics exporter listening on http://0.0.0.0:16969/metrics"
    }
    ```

    Extra fields can be added via:
    ```python
    logger.info("msg", extra={"port": 16969})
    ```
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_dict:
                try:
                    json.dumps(value)  # Only include JSON-serializable values
                    log_dict[key] = value
                except (TypeError, ValueError):
                    pass

        if record.exc_info and record.exc_info[1]:
            log_dict["exception"] = str(record.exc_info[1])

        return json.dumps(log_dict, default=str)


def configure_logging(level: int = logging.INFO, json_output: bool = False) -> logging.Logger:
    """
    Attach a single stderr handler to the package logger.

    Repeated calls replace the handler instead of stacking duplicates.
    """
    logger = logging.getLogger(_NAMESPACE)
    logger.setLevel(level)

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(name)-32s | %(levelname)-5s | %(message)s",
            datefmt="%H:%M:%S",
        ))

    logger.handlers.clear()
    logger.addHandler(handler)
    # Prevent propagation to root logger (avoid duplicate output)
    logger.propagate = False
    return logger
