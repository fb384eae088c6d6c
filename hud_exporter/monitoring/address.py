"""
HUD-EXPORTER Bind Address Parser

### ARCHITECTURAL CONTEXT
Node ID: monitoring.address

Turns the single `bind_address` config string into a BindTarget.
Accepted forms: "host:port" or a bare "port".

### CRITICAL INVARIANTS
1. Never raises. A bad or out-of-range port becomes DEFAULT_PORT.
2. A bare port listens on all interfaces.
3. Host format is only sanity-checked (warning), never rejected.
"""

from __future__ import annotations

import logging

from hud_exporter.core.models import BindTarget

logger = logging.getLogger(__name__)

DEFAULT_PORT = 16969
ALL_INTERFACES = "0.0.0.0"
WELL_KNOWN_HOSTS = frozenset({ALL_INTERFACES, "127.0.0.1", "localhost"})

_MIN_PORT = 1
_MAX_PORT = 65535
_IPV4_CHARS = frozenset("0123456789.")


def _parse_port(text: str) -> int:
    digits = text.strip()
    unsigned = digits[1:] if digits.startswith(("+", "-")) else digits
    # ASCII digits only, with an optional sign
    if not (unsigned.isascii() and unsigned.isdigit()):
        logger.error("Failed to parse exporter port %r. Using default %d", text, DEFAULT_PORT)
        return DEFAULT_PORT
    port = int(digits)
    if port < _MIN_PORT or port > _MAX_PORT:
        logger.error("Invalid exporter port number %d. Using default %d", port, DEFAULT_PORT)
        return DEFAULT_PORT
    return port


def parse_bind_address(address: str) -> BindTarget:
    """
    Resolve a bind address string.

    Examples:
        "127.0.0.1:9100" → BindTarget(host="127.0.0.1", port=9100)
        "9100"           → BindTarget(host="0.0.0.0", port=9100)
        "localhost:abc"  → BindTarget(host="localhost", port=16969)
    """
    address = address.strip()
    if ":" in address:
        host, port_text = address.split(":", 1)
        host = host or ALL_INTERFACES
    else:
        host, port_text = ALL_INTERFACES, address

    port = _parse_port(port_text)

    if host not in WELL_KNOWN_HOSTS and not set(host) <= _IPV4_CHARS:
        logger.warning("Exporter bind address %r might not be a valid IPv4 address", host)

    return BindTarget(host=host, port=port)
