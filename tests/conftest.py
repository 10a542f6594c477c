"""Pytest configuration and fixtures."""

from collections.abc import Mapping
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tradeup_engine.storage.models import Base

ACTOR = "ops-user-1"


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def actor() -> str:
    """User id recorded on audit events."""
    return ACTOR


@pytest.fixture
def raw_intake() -> Mapping[str, Any]:
    """A valid raw intake submission."""
    return {
        "source": " Craigslist ",
        "category": "Electronics",
        "location": "Austin  TX",
        "title": "  Sony WH-1000XM4 headphones ",
        "price_usd": 120.004,
        "seller_rep_score": 4.5,
    }
