"""Process-wide service handles shared by the orchestrator and CLI commands."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from workflow_engine.config.settings import EngineSettings
from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.store.base import Store
from workflow_engine.store.postgres import PostgresStore

log = structlog.get_logger(__name__)


@dataclass
class ServiceContext:
    """Settings plus connected store and event bus.

    Constructed once at startup and passed explicitly to whatever needs it.
    """

    settings: EngineSettings
    store: Store
    bus: RedisEventBus

    @classmethod
    async def create(cls, settings: EngineSettings) -> ServiceContext:
        """Connect storage, then the event bus.

        Raises:
            ConnectivityError: If either service is unreachable. Anything
                already opened is closed before the error propagates.
        """
        timeout = settings.orchestrator.connect_timeout
        store = await PostgresStore.open(settings.database, connect_timeout=timeout)
        bus = RedisEventBus.from_settings(settings.redis, poll_interval=settings.orchestrator.poll_interval)
        try:
            await bus.connect(timeout=timeout)
        except BaseException:
            await bus.close()
            await store.close()
            raise
        return cls(settings=settings, store=store, bus=bus)

    async def close(self) -> None:
        await self.bus.close()
        await self.store.close()
        log.info("service_context_closed")
