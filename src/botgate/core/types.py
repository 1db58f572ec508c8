from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

GAME_WAITING = "waiting"
GAME_ACTIVE = "active"
GAME_ENDED = "ended"

REASON_OWNER = "owner"
REASON_ACTIVE_GAME_INPUT = "active_game_input"
REASON_EXPLICIT_GRANT = "explicit_grant"
REASON_DENIED = "denied"


@dataclass
class InboundEvent:
    sender_id: str
    chat_id: str
    raw_text: str
    is_self_sent: bool = False
    timestamp: Optional[datetime] = None


@dataclass
class AuthorizationDecision:
    allowed: bool
    reason: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandSession:
    command: str
    step: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    active: bool = True
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class GameSettings:
    max_players: int
    min_players: int
    turn_timeout_seconds: int
    limits: dict[str, Any] = field(default_factory=dict)


@dataclass
class MoveRecord:
    player: str
    move: Any
    timestamp: datetime
    outcome: dict[str, Any] = field(default_factory=dict)


@dataclass
class GameOutcome:
    winner: Optional[str]
    reason: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class GameSession:
    id: str
    type: str
    chat_id: str
    created_by: str
    settings: GameSettings
    players: list[str] = field(default_factory=list)
    current_player_index: int = 0
    status: str = GAME_WAITING
    board_state: dict[str, Any] = field(default_factory=dict)
    score: dict[str, int] = field(default_factory=dict)
    move_log: list[MoveRecord] = field(default_factory=list)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    winner: Optional[str] = None
    end_reason: Optional[str] = None

    @property
    def current_player(self) -> str | None:
        if not self.players:
            return None
        return self.players[self.current_player_index]


@dataclass
class MoveResult:
    session: GameSession
    detail: dict[str, Any] = field(default_factory=dict)
    outcome: Optional[GameOutcome] = None


@dataclass
class GameSummary:
    game_id: str
    type: str
    players: list[str]
    winner: Optional[str]
    score: dict[str, int]
    reason: str
    ended_at: datetime


@dataclass
class AuditRecord:
    id: str
    action: str
    user_id: str
    command: str
    actor: Optional[str]
    timestamp: datetime


@dataclass
class BulkResult:
    command: str
    success: bool
    reason: str


@dataclass
class EventResult:
    status: str
    decision: Optional[AuthorizationDecision] = None
    reply: Optional[str] = None
    error: Optional[str] = None
    move: Optional[MoveResult] = None
