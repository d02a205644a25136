"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.config import Settings
from spotbot.db.engine import create_engine, get_session, init_db
from spotbot.db.repository import Repository


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults (HTTP mode, in-memory DB)."""
    return Settings(spotbot_env="development", database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """An in-memory SQLite engine with all tables."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def repo(engine: AsyncEngine) -> AsyncGenerator[Repository, None]:
    """A repository with a session bound to the in-memory database."""
    async with get_session(engine) as session:
        yield Repository(session)
