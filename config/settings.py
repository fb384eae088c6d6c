"""
HUD-EXPORTER Configuration

### ARCHITECTURAL CONTEXT
Type-safe configuration using pydantic-settings. Values load from
environment variables or a .env file at the project root.

### DESIGN DECISIONS
- pydantic-settings over raw os.environ for validation at startup
- The exporter bundle is frozen: it is read once at construction
- Exporter is disabled by default; enabling it is always explicit
- bind_address stays a raw string; monitoring.address resolves it and
  falls back to defaults instead of failing validation
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve .env relative to project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class ExporterConfig(BaseSettings):
    """Telemetry exporter bundle. Env prefix: HUD_EXPORTER_."""

    enabled: bool = Field(
        default=False,
        description="Master switch. When false no thread or socket is ever created.",
    )
    bind_address: str = Field(
        default="16969",
        description="'host:port' or bare 'port' (listens on all interfaces)",
    )
    start_delay_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Delay before the HTTP listener is brought up",
    )
    refresh_interval_ms: int = Field(
        default=1000,
        ge=1,
        description="Period of the cache refresh loop",
    )

    model_config = SettingsConfigDict(
        env_prefix="HUD_EXPORTER_",
        env_file=str(_ENV_FILE),
        extra="ignore",
        frozen=True,
    )


class Settings(BaseSettings):
    """Root configuration."""

    exporter: ExporterConfig = Field(default_factory=ExporterConfig)

    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False, description="Emit one JSON object per log line")

    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), extra="ignore")


def load_settings() -> Settings:
    """Load settings from environment variables with validation."""
    return Settings()
