"""Orchestration: event bus, dispatcher, lifecycle rules and the receive loop."""

from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.engine.context import ServiceContext
from workflow_engine.engine.dispatcher import Dispatcher
from workflow_engine.engine.orchestrator import Orchestrator, serve
from workflow_engine.engine.stage_runner import StageRunner

__all__ = ["Dispatcher", "Orchestrator", "RedisEventBus", "ServiceContext", "StageRunner", "serve"]
