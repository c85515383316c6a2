"""
Event-driven orchestration loop.

The orchestrator subscribes to the project-created channel and turns each
event into a Project row. Receiving and handling are decoupled: every
payload is handed to the ``Dispatcher`` and the loop goes straight back to
listening.

Failure containment:
    A malformed payload or a failed write is logged with the event's context
    and dropped. Nothing is retried, and no single event can stop the loop.
"""

from __future__ import annotations

import asyncio
import signal

import structlog

from workflow_engine.config.settings import EngineSettings
from workflow_engine.engine.context import ServiceContext
from workflow_engine.engine.dispatcher import Dispatcher
from workflow_engine.engine.events import parse_project_created
from workflow_engine.exceptions import MalformedEventError, StorageError
from workflow_engine.store.models import Project

log = structlog.get_logger(__name__)


class Orchestrator:
    """Consume project-created events and persist the projects they announce."""

    def __init__(self, context: ServiceContext) -> None:
        self.context = context
        orchestrator_settings = context.settings.orchestrator
        self.channel = orchestrator_settings.channel
        self.shutdown_timeout = orchestrator_settings.shutdown_timeout
        self.dispatcher = Dispatcher(
            max_concurrency=orchestrator_settings.max_concurrent_handlers,
            task_timeout=orchestrator_settings.handler_timeout,
        )
        self.subscribed = asyncio.Event()
        self.received = 0

    async def run(self, stop: asyncio.Event) -> None:
        """Receive events until ``stop`` is set, then drain handlers."""
        log.info(
            "orchestrator_starting",
            channel=self.channel,
            max_concurrent_handlers=self.dispatcher.max_concurrency,
        )
        try:
            async for payload in self.context.bus.subscribe(self.channel, stop, ready=self.subscribed):
                self.received += 1
                self.dispatcher.submit(self.handle_project_created, payload, name=f"event-{self.received}")
        finally:
            cancelled = await self.dispatcher.drain(self.shutdown_timeout)
            stats = self.dispatcher.stats
            log.info(
                "orchestrator_stopped",
                received=self.received,
                succeeded=stats.succeeded,
                failed=stats.failed,
                timed_out=stats.timed_out,
                cancelled=cancelled,
            )

    async def handle_project_created(self, payload: str | bytes) -> Project | None:
        """Create the project announced by one payload.

        Returns:
            The stored project, or None if the payload was dropped.
        """
        try:
            event = parse_project_created(payload)
        except MalformedEventError as e:
            log.warning("event_malformed", channel=self.channel, error=e.message, payload=payload[:200])
            return None

        with structlog.contextvars.bound_contextvars(event_id=event.id):
            project = Project(name=event.name, description=event.description, source_event_id=event.id)
            try:
                stored, created = await self.context.store.projects.create_from_event(project)
            except StorageError as e:
                log.error("project_create_failed", error=str(e))
                return None

            if created:
                log.info("project_created", project_id=str(stored.project_id), name=stored.name)
            else:
                log.info("event_duplicate_ignored", project_id=str(stored.project_id))
            return stored


async def serve(settings: EngineSettings) -> None:
    """Connect services and run the orchestrator until SIGINT or SIGTERM.

    Raises:
        ConnectivityError: If storage or the event bus is unreachable
    """
    context = await ServiceContext.create(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await Orchestrator(context).run(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await context.close()
