"""
Configuration system using Pydantic for type-safe settings management.

Settings are resolved once at startup from the process environment, an
optional ``.env`` file and, optionally, a YAML file. Every field carries a
documented fallback default so a local development stack needs no
configuration at all.

Environment variables:
    DB_HOST, DB_PORT, DB_USER, DB_PASSWORD, DB_NAME, DB_URL
    DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE, DB_POOL_MAX_LIFETIME, DB_POOL_MAX_IDLE
    REDIS_ADDR, REDIS_PASSWORD, REDIS_DB
    ORCHESTRATOR_CHANNEL, ORCHESTRATOR_MAX_CONCURRENT_HANDLERS, ...
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_engine.exceptions import ConfigurationError

PROJECT_CREATED_CHANNEL = "project_created_events"


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection and pool configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_", extra="ignore", case_sensitive=False)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5433, ge=1, le=65535, description="Database port")
    user: str = Field(default="user", description="Database user")
    password: str = Field(default="password", description="Database password")
    name: str = Field(default="workflow_engine_db", description="Database name")
    url: str | None = Field(default=None, description="Full conninfo/URL, overrides the individual parts")
    sslmode: str = Field(default="disable", description="libpq sslmode")

    pool_min_size: int = Field(default=10, ge=0, description="Connections kept open while idle")
    pool_max_size: int = Field(default=25, ge=1, description="Maximum concurrently open connections")
    pool_max_lifetime: float = Field(default=300.0, gt=0, description="Seconds before a connection is rotated")
    pool_max_idle: float = Field(default=600.0, gt=0, description="Seconds an idle connection above min_size is kept")
    pool_timeout: float = Field(default=30.0, gt=0, description="Seconds a caller waits to check out a connection")

    @field_validator("pool_max_size")
    @classmethod
    def _max_not_below_min(cls, value: int, info: ValidationInfo) -> int:
        min_size = info.data.get("pool_min_size", 0)
        if value < min_size:
            raise ValueError(f"pool_max_size ({value}) must be >= pool_min_size ({min_size})")
        return value

    def conninfo(self) -> str:
        """Build the libpq connection string."""
        if self.url:
            return self.url
        return make_conninfo(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            dbname=self.name,
            sslmode=self.sslmode,
        )


class RedisSettings(BaseSettings):
    """Event bus (Redis) configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore", case_sensitive=False)

    addr: str = Field(default="localhost:6379", description="Redis address as host:port")
    password: str | None = Field(default=None, description="Redis password")
    db: int = Field(default=0, ge=0, description="Logical database index")

    @field_validator("password", mode="before")
    @classmethod
    def _empty_password_is_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("addr")
    @classmethod
    def _validate_addr(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"REDIS_ADDR must be host:port, got: {value}")
        return value

    @property
    def host(self) -> str:
        return self.addr.rpartition(":")[0]

    @property
    def port(self) -> int:
        return int(self.addr.rpartition(":")[2])


class OrchestratorSettings(BaseSettings):
    """Orchestration loop behaviour."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRATOR_", extra="ignore", case_sensitive=False)

    channel: str = Field(default=PROJECT_CREATED_CHANNEL, description="Channel carrying project-created events")
    max_concurrent_handlers: int = Field(default=16, ge=1, le=1024, description="Handlers executing at once")
    handler_timeout: float = Field(default=30.0, gt=0, description="Seconds before a handler is cancelled")
    shutdown_timeout: float = Field(default=10.0, ge=0, description="Seconds to drain handlers on shutdown")
    connect_timeout: float = Field(default=5.0, gt=0, description="Seconds allowed for startup connectivity checks")
    poll_interval: float = Field(default=1.0, gt=0, description="Seconds between shutdown checks while idle")


class EngineSettings(BaseModel):
    """Main workflow engine settings.

    Combines the database, event bus and orchestrator sections. Each section
    reads its own environment prefix; values given explicitly (from YAML or
    keyword arguments) take precedence over the environment.
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> EngineSettings:
        """Load settings from the environment and an optional dotenv file.

        Args:
            env_file: Path to a dotenv file. Missing files are ignored.

        Raises:
            ConfigurationError: If any value fails validation
        """
        try:
            return cls(
                database=DatabaseSettings(_env_file=env_file),
                redis=RedisSettings(_env_file=env_file),
                orchestrator=OrchestratorSettings(_env_file=env_file),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str, env_file: str | Path | None = ".env") -> EngineSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.
        Sections missing from the file fall back to the environment.

        Args:
            config_path: Path to YAML configuration file
            env_file: Dotenv file consulted for values absent from the YAML

        Returns:
            EngineSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content) or {}
            if not isinstance(config_dict, dict):
                raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        sections = {
            "database": DatabaseSettings,
            "redis": RedisSettings,
            "orchestrator": OrchestratorSettings,
        }
        unknown = set(config_dict) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        try:
            return cls(
                **{
                    key: section_cls(_env_file=env_file, **(config_dict.get(key) or {}))
                    for key, section_cls in sections.items()
                }
            )
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))


def load_settings(config_path: str | None = None, env_file: str | Path | None = ".env") -> EngineSettings:
    """Resolve settings from YAML when a path is given, otherwise from the environment."""
    if config_path:
        return EngineSettings.from_yaml(config_path, env_file=env_file)
    return EngineSettings.from_env(env_file=env_file)
