"""
Global pytest configuration and fixtures for Pulss billing tests.

Every test gets a fresh in-memory SQLite database; PostgreSQL row locks are
no-ops there, so concurrency tests exercise the constraint fallbacks instead.
"""

import asyncio
import os
import sys

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Keep the developer's .env database out of the test run
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("ENVIRONMENT", "test")

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from pulss.platform.billing import models  # noqa: E402,F401
from pulss.platform.db import Base  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def async_db_engine():
    """Async database engine with the billing schema created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Required for SQLite in-memory async
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()
        # Give asyncio a chance to clean up pending tasks
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def async_db_session(async_db_engine):
    """Async database session.

    Billing services commit their own transactions, so nothing is rolled back
    between statements of a single test; isolation comes from the per-test
    engine.
    """
    SessionMaker = async_sessionmaker(
        async_db_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    async with SessionMaker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()
