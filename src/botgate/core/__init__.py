from .errors import (
    BotGateError,
    GameAlreadyActiveError,
    GameError,
    GameFullError,
    GameNotFoundError,
    GameStateError,
    InvalidCommandNameError,
    InvalidMoveFormatError,
    MoveRejectedError,
    NotAParticipantError,
    NotYourTurnError,
    PermissionAlreadyGrantedError,
    PermissionNotFoundError,
    PermissionRegistryError,
    PlayerAlreadyJoinedError,
    UnknownGameTypeError,
)
from .locks import ChatLocks
from .permissions import PermissionRegistry
from .ports import MessagingGatewayPort, PersistencePort, StatisticsPort
from .session_store import SessionStore
from .types import (
    AuditRecord,
    AuthorizationDecision,
    BulkResult,
    CommandSession,
    EventResult,
    GameOutcome,
    GameSession,
    GameSettings,
    GameSummary,
    InboundEvent,
    MoveRecord,
    MoveResult,
)

# GameEngine, AuthorizationGate and GameSweeper import botgate.games, which in
# turn imports this package; they are exported from the top-level package.

__all__ = [
    "AuditRecord",
    "AuthorizationDecision",
    "BotGateError",
    "BulkResult",
    "ChatLocks",
    "CommandSession",
    "EventResult",
    "GameAlreadyActiveError",
    "GameError",
    "GameFullError",
    "GameNotFoundError",
    "GameOutcome",
    "GameSession",
    "GameSettings",
    "GameStateError",
    "GameSummary",
    "InboundEvent",
    "InvalidCommandNameError",
    "InvalidMoveFormatError",
    "MessagingGatewayPort",
    "MoveRecord",
    "MoveRejectedError",
    "MoveResult",
    "NotAParticipantError",
    "NotYourTurnError",
    "PermissionAlreadyGrantedError",
    "PermissionNotFoundError",
    "PermissionRegistry",
    "PermissionRegistryError",
    "PersistencePort",
    "PlayerAlreadyJoinedError",
    "SessionStore",
    "StatisticsPort",
    "UnknownGameTypeError",
]
