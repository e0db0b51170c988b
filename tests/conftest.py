"""Shared pytest configuration and fixtures for GDPR Guard tests.

Sets required environment variables before any gdprguard module is imported,
so that ``gdprguard.config.get_settings()`` succeeds in the test environment.
"""
from __future__ import annotations

import os

# Set required env vars before any gdprguard module is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")
os.environ.setdefault("STORAGE_ZONE", "test-zone")
os.environ.setdefault("STORAGE_API_KEY", "test-access-key")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import gdprguard.models  # noqa: F401
from gdprguard.config import get_settings
from gdprguard.db.base import Base


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Async SQLite in-memory engine.  ``StaticPool`` keeps every connection on
    the same underlying database so the schema survives between sessions."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
