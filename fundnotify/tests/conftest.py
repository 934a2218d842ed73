from __future__ import annotations

import os

# Point the module-level engine at SQLite before any fundnotify import reads settings.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from fundnotify.core.config import get_settings
from fundnotify.domain.models import Base
from fundnotify.services.telemetry import reset_counters


@pytest.fixture(autouse=True)
def _reset_caches():
    # Ensure settings and counters do not leak between tests.
    get_settings.cache_clear()
    reset_counters()
    yield
    get_settings.cache_clear()
    reset_counters()


@pytest.fixture
async def session_factory(tmp_path):
    # One file-backed SQLite database per test keeps tests isolated and allows concurrent sessions.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notify.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
