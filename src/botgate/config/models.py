from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_PATTERN = re.compile(r"\$\{(\w+)(?::([^}]*))?\}")


def resolve_env_vars(value: str) -> str:
    def replacer(match):
        var_name = match.group(1)
        default_value = match.group(2) or ""
        return os.environ.get(var_name, default_value)

    return _ENV_PATTERN.sub(replacer, value)


class SessionsConfig(BaseModel):
    flush_interval_seconds: float = Field(default=30, gt=0)
    default_ttl_ms: int = Field(default=300_000, ge=0)


class PermissionsConfig(BaseModel):
    audit_log_size: int = Field(default=1000, ge=1)


class GamesConfig(BaseModel):
    sweep_interval_seconds: float = Field(default=300, gt=0)
    inactivity_timeout_seconds: int = Field(default=1800, gt=0)
    history_retention_seconds: int = Field(default=86400, ge=0)
    # Per-type overrides, e.g. {"wordchain": {"max_players": 4, "min_word_length": 4}}.
    settings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator("settings", mode="before")
    @classmethod
    def lower_case_types(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k).strip().lower(): (val or {}) for k, val in v.items()}
        return v


class PersistenceConfig(BaseModel):
    shutdown_flush_attempts: int = Field(default=3, ge=1)


class BotConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    owner_id: str = "${BOTGATE_OWNER_ID:}"
    command_prefix: str = "."
    database_url: str = "${BOTGATE_DATABASE_URL:sqlite+pysqlite:///data/botgate.db}"
    log_level: str = "INFO"
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    games: GamesConfig = Field(default_factory=GamesConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)

    @field_validator("owner_id", "database_url", "log_level", mode="before")
    @classmethod
    def resolve_env(cls, v: Any) -> Any:
        if isinstance(v, str):
            return resolve_env_vars(v)
        return v

    @field_validator("command_prefix")
    @classmethod
    def non_empty_prefix(cls, v: str) -> str:
        if not v or v.strip() != v:
            raise ValueError("command_prefix must be a non-empty string without whitespace")
        return v

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str) -> str:
        level = (v or "INFO").upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level
