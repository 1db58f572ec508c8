"""Configuration for the bot runtime."""

from .loader import ConfigLoader, configure_logging
from .models import (
    BotConfig,
    GamesConfig,
    PermissionsConfig,
    PersistenceConfig,
    SessionsConfig,
    resolve_env_vars,
)

__all__ = [
    "BotConfig",
    "ConfigLoader",
    "GamesConfig",
    "PermissionsConfig",
    "PersistenceConfig",
    "SessionsConfig",
    "configure_logging",
    "resolve_env_vars",
]
