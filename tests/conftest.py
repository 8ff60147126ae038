# tests/conftest.py

"""Shared pytest fixtures for all shop_aggregator tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from shop_aggregator.config.settings import Settings


@pytest.fixture(autouse=True)
def mock_sleep() -> Generator[None, None, None]:
    """Make retry, rate-limit and interval waits return immediately."""
    with patch("time.sleep"):
        yield


@pytest.fixture(autouse=True)
def isolated_state(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
) -> Path:
    """Point the state database and run logs at a per-test directory."""
    monkeypatch.setattr(Settings, "STATE_DB_PATH", tmp_path / "state.db")
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
    monkeypatch.setattr(Settings, "SERPAPI_API_KEY", "")
    return tmp_path
