"""Pytest fixtures for integration tests against a real PostgreSQL."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest

from workflow_engine.config.settings import DatabaseSettings
from workflow_engine.store.postgres import PostgresStore


@pytest.fixture(scope="session")
def database_url() -> str:
    """Connection URL of a disposable test database."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    return url


@pytest.fixture
async def pg_store(database_url: str) -> AsyncGenerator[PostgresStore, None]:
    """Migrated store with empty tables."""
    settings = DatabaseSettings(_env_file=None, url=database_url, pool_min_size=1, pool_max_size=4)
    store = await PostgresStore.open(settings, connect_timeout=5.0)
    await store.migrate()
    await store.db.truncate()
    yield store
    await store.close()
