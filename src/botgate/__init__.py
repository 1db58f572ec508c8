from .config import BotConfig, ConfigLoader, configure_logging
from .core import (
    AuthorizationDecision,
    BotGateError,
    ChatLocks,
    EventResult,
    GameOutcome,
    GameSession,
    InboundEvent,
    PermissionRegistry,
    SessionStore,
)
from .core.engine import GameEngine
from .core.gate import AuthorizationGate
from .core.sweeper import GameSweeper
from .games import default_strategies
from .runtime import BotRuntime

__all__ = [
    "AuthorizationDecision",
    "AuthorizationGate",
    "BotConfig",
    "BotGateError",
    "BotRuntime",
    "ChatLocks",
    "ConfigLoader",
    "EventResult",
    "GameEngine",
    "GameOutcome",
    "GameSession",
    "GameSweeper",
    "InboundEvent",
    "PermissionRegistry",
    "SessionStore",
    "configure_logging",
    "default_strategies",
]
