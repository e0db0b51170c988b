"""Lazily-constructed async engine and session factory.

The engine is built on first use from :func:`~gdprguard.config.get_settings`
so that importing ORM models or services never requires a database driver.
"""
from __future__ import annotations

import functools
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gdprguard.config import get_settings


@functools.lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    url = get_settings().database_url
    options: dict = {"echo": False, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        options.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **options)


@functools.lru_cache(maxsize=1)
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_sessionmaker()() as session:
        yield session
