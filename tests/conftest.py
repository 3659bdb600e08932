"""Test configuration and fixtures for SieveQL."""

from dotenv import load_dotenv
import pytest
import asyncio
import os
import sys
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from tests.models import Base

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def event_loop_policy():
    """Set event loop policy for Windows compatibility."""
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    yield


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Create a test database engine for each test function.

    SIEVEQL_TEST_DATABASE_URL points the suite at an external database;
    otherwise a file-backed SQLite database is used so that concurrent
    sessions each get their own connection.
    """
    test_db_url = os.getenv('SIEVEQL_TEST_DATABASE_URL')
    if test_db_url:
        engine = create_async_engine(test_db_url, echo=False, pool_size=5, max_overflow=10, pool_pre_ping=True)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        is_external_db = True
    else:
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sieveql.db'}", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        is_external_db = False

    yield engine

    if is_external_db:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A single session, for tests that share one session across operations."""
    async with session_factory() as session:
        yield session


# Import fixtures from fixtures module
from tests.fixtures import populated_db  # noqa: E402,F401
