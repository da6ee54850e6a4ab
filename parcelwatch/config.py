"""
Configuration management for ParcelWatch.
Handles loading settings from environment variables and .env files.
"""

import os
import re
from pathlib import Path
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv

from parcelwatch.exceptions import ConfigurationError


DEFAULT_POLLING_DURATION = "10m"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> float:
    """
    Parse a duration such as "90s", "10m" or "1h30m" into seconds.

    A bare number is read as seconds.
    """
    text = value.strip().lower()
    if not text:
        raise ConfigurationError("Duration must not be empty")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if seconds <= 0:
            raise ConfigurationError(f"Duration must be positive: {value!r}")
        return seconds

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text) or seconds <= 0:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return seconds


@dataclass
class ParcelWatchConfig:
    """Main configuration class for ParcelWatch."""

    # Tracking provider
    parcels_service_url: str = ""
    provider_timeout: float = 30.0  # seconds

    # Storage
    db_path: str = ""

    # Polling
    polling_interval: float = 600.0  # seconds
    updates_buffer_size: int = 0  # 0 = synchronous hand-off
    shutdown_grace_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/parcelwatch.log"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ParcelWatchConfig":
        """Load configuration from environment variables."""

        # Try to load from .env file
        if env_file:
            load_dotenv(env_file)
        else:
            # Try common locations
            for env_path in [".env", "config.env"]:
                if Path(env_path).exists():
                    load_dotenv(env_path)
                    break

        try:
            return cls(
                # Provider
                parcels_service_url=os.getenv("PARCELS_SERVICE_URL", "").rstrip("/"),
                provider_timeout=float(os.getenv("PROVIDER_TIMEOUT", "30")),

                # Storage
                db_path=os.getenv("DB_PATH", ""),

                # Polling
                polling_interval=parse_duration(
                    os.getenv("POLLING_DURATION") or DEFAULT_POLLING_DURATION
                ),
                updates_buffer_size=int(os.getenv("UPDATES_BUFFER_SIZE", "0")),
                shutdown_grace_seconds=float(os.getenv("SHUTDOWN_GRACE_SECONDS", "10")),

                # Logging
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_file=os.getenv("LOG_FILE", "logs/parcelwatch.log"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
        if self.db_path:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.parcels_service_url:
            errors.append("PARCELS_SERVICE_URL is required")
        if not self.db_path:
            errors.append("DB_PATH is required")
        if self.polling_interval <= 0:
            errors.append("POLLING_DURATION must be positive")
        if self.provider_timeout <= 0:
            errors.append("PROVIDER_TIMEOUT must be positive")
        if self.updates_buffer_size < 0:
            errors.append("UPDATES_BUFFER_SIZE must not be negative")

        return errors


def init_config(env_file: Optional[str] = None) -> ParcelWatchConfig:
    """Load configuration and create the directories it points at."""
    config = ParcelWatchConfig.from_env(env_file)
    config.ensure_directories()
    return config
