"""Application configuration."""

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Common development ports scanned when no port is given
DEFAULT_SCAN_PORTS = [3000, 3001, 3002, 5173, 8000, 8080, 4000, 5000, 7531]


class Settings(BaseSettings):
    """Settings loaded from DEVPORTS_* environment variables or .env."""

    # Development mode: human-readable logs. When False, logs are JSON lines.
    dev_mode: bool = True

    # Logging
    log_level: str = "warning"

    # Ports scanned by `devports ports` without -p/-r
    default_ports: list[int] = DEFAULT_SCAN_PORTS

    # Timeout for lsof/netstat/tasklist/taskkill. None waits indefinitely.
    command_timeout: float | None = None

    # Pause between a kill and the verification probe
    kill_settle_seconds: float = 0.5

    # Service manager
    shutdown_timeout: float = 5.0  # seconds between SIGTERM and SIGKILL
    restart_delay: float = 1.0

    @model_validator(mode="after")
    def _validate_values(self) -> "Settings":
        for port in self.default_ports:
            if not 1 <= port <= 65535:
                raise ValueError(f"DEVPORTS_DEFAULT_PORTS contains invalid port {port}")
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ValueError("DEVPORTS_COMMAND_TIMEOUT must be positive")
        for name in ("kill_settle_seconds", "shutdown_timeout", "restart_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"DEVPORTS_{name.upper()} must not be negative")
        return self

    class Config:
        env_prefix = "DEVPORTS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        # .env belongs to the project being inspected
        extra = "ignore"


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging; JSON lines unless dev_mode is on."""
    level_name = (level or settings.log_level).upper()
    if not settings.dev_mode:
        logging.basicConfig(
            level=getattr(logging, level_name, logging.WARNING),
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}',
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level_name, logging.WARNING),
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        )
