"""Shared pytest fixtures."""

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from streamlock.infrastructure.database import DatabaseClient
from streamlock.infrastructure.ledger.account import Ed25519Account
from streamlock.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import FakeLedgerClient, InMemoryKeyValueStore


@pytest.fixture
def creator_account() -> Ed25519Account:
    """A fresh creator signing key."""
    return Ed25519Account.generate()


@pytest.fixture
def viewer_account() -> Ed25519Account:
    """A fresh viewer signing key."""
    return Ed25519Account.generate()


@pytest.fixture
def fake_ledger() -> FakeLedgerClient:
    """In-memory ledger running the protocol contract rules."""
    return FakeLedgerClient()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def master_secret() -> bytes:
    return bytes(range(32))


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set.
    """
    import warnings

    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    settings = TestDatabaseSettings(database_url=test_redis_url)
    client = DatabaseClient(settings)
    client.initialize_database()

    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        warnings.warn(
            f"Redis not available at {test_redis_url}: {e}. "
            "Tests requiring Redis will be skipped.",
            UserWarning,
        )
        await client.close()
        pytest.skip(f"Redis not available: {e}")

    yield client

    # Cleanup: flush test database
    try:
        async with client.get_connection() as conn:
            await conn.flushdb()
    except Exception:
        pass  # Ignore cleanup errors
    await client.close()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
