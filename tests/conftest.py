"""
Shared test fixtures for meterhub tests.

Provides environment isolation for Settings and fixtures wrapping the
in-memory FakeStorage from tests/fakes.py.

CHANGELOG:
- 2026-10-08: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fakes import FakeStorage, make_storage_factory

# All Settings environment variable names, used for cleanup.
_ALL_ENV_VARS = (
    "DATABASE_URL",
    "REDIS_URL",
    "SITE_CONFIG_PATH",
    "SNAPSHOT_INTERVAL_S",
    "ROLLUP_TICK_S",
    "ROLLUP_RETRY_S",
    "ROLLUP_CATCH_UP",
    "BROADCAST_CHANNEL_PREFIX",
    "BROADCAST_CACHE_TTL_S",
    "HEALTH_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove meterhub env vars and isolate from .env files before each test."""
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables."""
    env = {
        "DATABASE_URL": "postgresql+asyncpg://meterhub:secret@db:5432/meterhub",
        "REDIS_URL": "redis://redis:6379/0",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_full(
    monkeypatch: pytest.MonkeyPatch, env_vars_required_only: dict[str, str]
) -> dict[str, str]:
    """Set all Settings environment variables with non-default values."""
    env = {
        **env_vars_required_only,
        "SITE_CONFIG_PATH": "/etc/meterhub/sites.json",
        "SNAPSHOT_INTERVAL_S": "10",
        "ROLLUP_TICK_S": "30",
        "ROLLUP_RETRY_S": "120",
        "ROLLUP_CATCH_UP": "false",
        "BROADCAST_CHANNEL_PREFIX": "meters",
        "BROADCAST_CACHE_TTL_S": "60",
        "HEALTH_PATH": "/tmp/health.json",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def fake_storage() -> FakeStorage:
    """Create an empty in-memory storage."""
    return FakeStorage()


@pytest.fixture()
def storage_factory(
    fake_storage: FakeStorage,
) -> Callable[[], AbstractAsyncContextManager[FakeStorage]]:
    """Return a storage factory yielding *fake_storage*."""
    return make_storage_factory(fake_storage)


@pytest.fixture()
def mock_db_session() -> AsyncMock:
    """Create a mock async database session.

    Returns:
        AsyncMock: A mock that behaves like an SQLAlchemy AsyncSession.
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.get = AsyncMock(return_value=None)
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session
