"""Shared pytest configuration and fixtures."""

import pytest

from vector_rag.config import Settings


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


@pytest.fixture(autouse=True)
def _hermetic_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop any ambient env vars that would override Settings fields."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
