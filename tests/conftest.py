"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from acpsession.config import Config, reset_config
from acpsession.engine.processor import EventProcessor
from acpsession.session.registry import SessionRegistry

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)

SESSION_ID = "sess-1"


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch):
    """Isolate tests from the user's config and environment."""
    monkeypatch.delenv("ACPS_LOG", raising=False)
    monkeypatch.delenv("ACPS_AGENT", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    """Default config with persistence pointed away from the working tree."""
    cfg = Config()
    cfg.session.persist = False
    return cfg


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def session_id(registry, tmp_path) -> str:
    """A registered, empty session."""
    registry.create_session(SESSION_ID, str(tmp_path))
    return SESSION_ID


@pytest.fixture
def processor(registry, config) -> EventProcessor:
    return EventProcessor(registry, config)
