"""
Shared pytest fixtures for the deliberation test suite.

Every test gets a fresh SQLite database on disk (aiosqlite) and a scripted
generation client, so the schedulers run end to end without a network.
"""

import os

# Settings and flags are cached on first use; pin them before any test runs
os.environ["FF_USE_REDIS"] = "false"
os.environ["CRON_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from deliberation.core.database import create_tables
from tests.helpers import FakeGenerationClient


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client() -> FakeGenerationClient:
    return FakeGenerationClient()
