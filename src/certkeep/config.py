"""Configuration loading with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from certkeep.observability import LogLevel
from certkeep.utils.validation import validate_identifier

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

DEFAULT_LOCK_LEASE_SECONDS = 60.0
DEFAULT_LOCK_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_QUERY_TIMEOUT_SECONDS = 3.0


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class DatabaseConfig(BaseModel):
    """Database backend configuration."""

    backend: str = "sqlite"  # sqlite | postgres
    # Backend-specific settings
    path: str | None = None  # For SQLite
    busy_timeout: float = Field(default=5.0, gt=0)  # For SQLite
    dsn: str | None = None  # For PostgreSQL

    def backend_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for the backend constructor."""
        return self.model_dump(exclude={"backend"}, exclude_none=True)


class StorageOptions(BaseModel):
    """Options for the record store and lock manager."""

    data_table: str = "certkeep_data"
    lock_table: str = "certkeep_locks"
    lock_lease_seconds: float = Field(default=DEFAULT_LOCK_LEASE_SECONDS, gt=0)
    lock_poll_interval_seconds: float = Field(default=DEFAULT_LOCK_POLL_INTERVAL_SECONDS, gt=0)
    query_timeout_seconds: float = Field(default=DEFAULT_QUERY_TIMEOUT_SECONDS, gt=0)

    @field_validator("data_table", "lock_table")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        return validate_identifier(value, name="table name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for certkeep."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageOptions = Field(default_factory=StorageOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        # Substitute environment variables
        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)
