"""Shared fixtures."""

import pytest


CONFIG_KEYS = (
    "PARCELS_SERVICE_URL",
    "PROVIDER_TIMEOUT",
    "DB_PATH",
    "POLLING_DURATION",
    "UPDATES_BUFFER_SIZE",
    "SHUTDOWN_GRACE_SECONDS",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """
    Start from an environment without ParcelWatch settings.

    Values loaded from .env files during the test are removed afterwards.
    """
    for key in CONFIG_KEYS:
        # setenv first so monkeypatch remembers the original state
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
