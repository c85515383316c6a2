"""Configuration management for the workflow engine."""

from workflow_engine.config.settings import (
    PROJECT_CREATED_CHANNEL,
    DatabaseSettings,
    EngineSettings,
    OrchestratorSettings,
    RedisSettings,
    load_settings,
)

__all__ = [
    "PROJECT_CREATED_CHANNEL",
    "DatabaseSettings",
    "EngineSettings",
    "OrchestratorSettings",
    "RedisSettings",
    "load_settings",
]
