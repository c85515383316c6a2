"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator

import pytest
import structlog
from fakeredis import aioredis

from workflow_engine.config.settings import DatabaseSettings, EngineSettings, OrchestratorSettings, RedisSettings
from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.engine.context import ServiceContext
from workflow_engine.engine.stage_runner import StageRunner
from workflow_engine.store.memory import InMemoryStore
from workflow_engine.store.models import Project

ENV_PREFIXES = ("DB_", "REDIS_", "ORCHESTRATOR_")


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration a test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Environment without any workflow engine variables."""
    import os

    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def engine_settings(clean_env: pytest.MonkeyPatch) -> EngineSettings:
    """Settings tuned for fast tests: short poll interval and timeouts."""
    return EngineSettings(
        database=DatabaseSettings(_env_file=None),
        redis=RedisSettings(_env_file=None),
        orchestrator=OrchestratorSettings(
            _env_file=None,
            max_concurrent_handlers=4,
            handler_timeout=2.0,
            shutdown_timeout=2.0,
            poll_interval=0.05,
        ),
    )


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
async def redis_client() -> AsyncIterator[aioredis.FakeRedis]:
    """In-process Redis shared by publishers and subscribers in one test."""
    client = aioredis.FakeRedis()
    yield client
    await client.aclose()


@pytest.fixture
def bus(redis_client: aioredis.FakeRedis) -> RedisEventBus:
    """Event bus over fakeredis with a short poll interval."""
    return RedisEventBus(redis_client, poll_interval=0.05)


@pytest.fixture
def service_context(engine_settings: EngineSettings, store: InMemoryStore, bus: RedisEventBus) -> ServiceContext:
    """Service context wired to the in-memory store and fakeredis."""
    return ServiceContext(settings=engine_settings, store=store, bus=bus)


@pytest.fixture
def stage_runner(store: InMemoryStore) -> StageRunner:
    """Stage runner over the in-memory store."""
    return StageRunner(store)


@pytest.fixture
async def project(store: InMemoryStore) -> Project:
    """A freshly created project."""
    return await store.projects.create(Project(name="Acme Launch", description="demo"))
