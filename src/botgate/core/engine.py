from __future__ import annotations

import copy
import logging
import random
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping

from ..games import GameStrategy, default_strategies
from .errors import (
    GameAlreadyActiveError,
    GameFullError,
    GameNotFoundError,
    GameStateError,
    NotAParticipantError,
    NotYourTurnError,
    PlayerAlreadyJoinedError,
    UnknownGameTypeError,
)
from .normalize import format_timestamp, normalize_user_id, parse_timestamp, utcnow
from .ports import StatisticsPort
from .types import (
    GAME_ACTIVE,
    GAME_ENDED,
    GAME_WAITING,
    GameOutcome,
    GameSession,
    GameSettings,
    GameSummary,
    MoveRecord,
    MoveResult,
)

_SETTINGS_FIELDS = ("max_players", "min_players", "turn_timeout_seconds")


class GameEngine:
    """Game-session lifecycle over a table of per-type strategies.

    The engine holds every session in memory and indexes the non-ended one per
    chat. All methods are synchronous; callers serialize per chat.
    """

    namespace = "games"
    snapshot_key = "state"

    def __init__(
        self,
        strategies: Mapping[str, GameStrategy] | None = None,
        statistics: StatisticsPort | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
        settings_overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self._strategies = dict(strategies or default_strategies())
        self._statistics = statistics
        self._clock = clock or utcnow
        self._rng = rng or random.Random()
        self._settings_overrides = {k: dict(v) for k, v in (settings_overrides or {}).items()}
        self._sessions: dict[str, GameSession] = {}
        self._active_by_chat: dict[str, str] = {}
        self._logger = logging.getLogger(__name__)
        self.dirty = False

    @property
    def game_types(self) -> list[str]:
        return sorted(self._strategies)

    def strategy_for(self, game_type: str) -> GameStrategy:
        strategy = self._strategies.get((game_type or "").strip().lower())
        if strategy is None:
            raise UnknownGameTypeError(game_type)
        return strategy

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_game(
        self,
        game_type: str,
        chat_id: str,
        initiator: str,
        settings: Mapping[str, Any] | None = None,
    ) -> GameSession:
        strategy = self.strategy_for(game_type)
        existing = self.get_active_game(chat_id)
        if existing is not None:
            raise GameAlreadyActiveError(chat_id, existing.id)

        now = self._clock()
        player = normalize_user_id(initiator)
        session = GameSession(
            id=uuid.uuid4().hex,
            type=strategy.name,
            chat_id=chat_id,
            created_by=player,
            settings=self._merge_settings(strategy, settings),
            players=[player],
            status=GAME_WAITING,
            score={player: 0},
            created_at=now,
            last_activity_at=now,
        )
        self._sessions[session.id] = session
        self._active_by_chat[chat_id] = session.id
        self.dirty = True
        self._logger.info("Created %s game %s in chat %s by %s", session.type, session.id, chat_id, player)
        return session

    def join_game(self, game_id: str, player: str) -> GameSession:
        session = self._require(game_id)
        player = normalize_user_id(player)
        if session.status != GAME_WAITING:
            raise GameStateError(f"game {game_id} is {session.status}", game_id, session.status)
        if player in session.players:
            raise PlayerAlreadyJoinedError(f"{player} already joined", game_id)
        if len(session.players) >= session.settings.max_players:
            raise GameFullError(f"game {game_id} is full", game_id)

        session.players.append(player)
        session.score.setdefault(player, 0)
        session.last_activity_at = self._clock()
        self.dirty = True
        self._logger.info("Player %s joined game %s (%d/%d)", player, game_id, len(session.players), session.settings.max_players)

        if len(session.players) == session.settings.min_players:
            self.start_game(game_id)
        return session

    def start_game(self, game_id: str) -> GameSession:
        session = self._require(game_id)
        if session.status != GAME_WAITING:
            raise GameStateError(f"game {game_id} is {session.status}", game_id, session.status)
        if len(session.players) < session.settings.min_players:
            raise GameStateError(
                f"game {game_id} needs {session.settings.min_players} players", game_id, session.status
            )

        strategy = self.strategy_for(session.type)
        now = self._clock()
        session.board_state = strategy.initialize(session, self._rng)
        session.status = GAME_ACTIVE
        session.current_player_index = 0
        session.score = {player: 0 for player in session.players}
        session.started_at = now
        session.last_activity_at = now
        self.dirty = True
        self._logger.info("Started %s game %s with players=%s", session.type, game_id, session.players)
        return session

    def process_move(self, game_id: str, player: str, raw_move: str) -> MoveResult:
        session = self._require(game_id)
        if session.status != GAME_ACTIVE:
            raise GameStateError(f"game {game_id} is {session.status}", game_id, session.status)
        player = normalize_user_id(player)
        if player not in session.players:
            raise NotAParticipantError(f"{player} is not playing", game_id)
        strategy = self.strategy_for(session.type)
        if strategy.turn_based and player != session.current_player:
            raise NotYourTurnError(game_id, session.current_player or "")

        move = strategy.parse_move(raw_move)
        # MoveRejectedError propagates here with board_state untouched.
        applied = strategy.apply_move(session, player, move)

        now = self._clock()
        session.move_log.append(
            MoveRecord(player=player, move=move, timestamp=now, outcome=dict(applied.detail))
        )
        if applied.score_delta:
            session.score[player] = session.score.get(player, 0) + applied.score_delta
        if strategy.turn_based:
            session.current_player_index = (session.current_player_index + 1) % len(session.players)
        session.last_activity_at = now
        self.dirty = True

        outcome = strategy.check_end(session)
        if outcome is not None:
            self.end_game(game_id, outcome)
        return MoveResult(session=session, detail=dict(applied.detail), outcome=outcome)

    def end_game(self, game_id: str, outcome: GameOutcome) -> GameSession:
        session = self._require(game_id)
        if session.status == GAME_ENDED:
            return session

        now = self._clock()
        session.status = GAME_ENDED
        session.ended_at = now
        session.winner = outcome.winner
        session.end_reason = outcome.reason
        if self._active_by_chat.get(session.chat_id) == session.id:
            del self._active_by_chat[session.chat_id]
        self.dirty = True
        self._logger.info(
            "Ended %s game %s: reason=%s winner=%s", session.type, game_id, outcome.reason, outcome.winner
        )
        self._notify_statistics(session)
        return session

    def stop_game(self, chat_id: str) -> GameSession:
        session = self.get_active_game(chat_id)
        if session is None:
            raise GameNotFoundError(f"no game running in chat {chat_id}")
        return self.end_game(session.id, GameOutcome(winner=None, reason="stopped"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def matches_move(self, session: GameSession, text: str) -> bool:
        strategy = self._strategies.get(session.type)
        if strategy is None:
            return False
        try:
            return strategy.matches(text)
        except Exception:
            self._logger.exception("Move grammar check failed for %s", session.type)
            return False

    def get_session(self, game_id: str) -> GameSession | None:
        return self._sessions.get(game_id)

    def get_active_game(self, chat_id: str) -> GameSession | None:
        game_id = self._active_by_chat.get(chat_id)
        if game_id is None:
            return None
        session = self._sessions.get(game_id)
        if session is None or session.status == GAME_ENDED:
            self._active_by_chat.pop(chat_id, None)
            return None
        return session

    def list_sessions(self) -> list[GameSession]:
        return list(self._sessions.values())

    def history(self, chat_id: str | None = None, limit: int = 20) -> list[GameSession]:
        ended = [
            s
            for s in self._sessions.values()
            if s.status == GAME_ENDED and (chat_id is None or s.chat_id == chat_id)
        ]
        ended.sort(key=lambda s: s.ended_at or datetime.min, reverse=True)
        return ended[: max(0, limit)]

    def purge_ended(self, before: datetime, chat_id: str | None = None) -> int:
        doomed = [
            s.id
            for s in self._sessions.values()
            if s.status == GAME_ENDED
            and s.ended_at is not None
            and s.ended_at < before
            and (chat_id is None or s.chat_id == chat_id)
        ]
        for game_id in doomed:
            del self._sessions[game_id]
        if doomed:
            self.dirty = True
            self._logger.info("Purged %d ended games", len(doomed))
        return len(doomed)

    def render(self, session: GameSession) -> str:
        return self.strategy_for(session.type).render(session)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {"sessions": [self._encode_session(s) for s in self._sessions.values()]}

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        snapshot = snapshot if isinstance(snapshot, dict) else {}
        self._sessions = {}
        self._active_by_chat = {}
        for raw in snapshot.get("sessions") or ():
            try:
                session = self._decode_session(raw)
            except Exception:
                self._logger.warning("Skipping unreadable game session in snapshot", exc_info=True)
                continue
            if session.type not in self._strategies:
                self._logger.warning("Skipping game %s of unknown type %s", session.id, session.type)
                continue
            if session.status != GAME_ENDED:
                if session.chat_id in self._active_by_chat:
                    self._logger.warning("Chat %s has more than one open game; keeping the first", session.chat_id)
                    continue
                self._active_by_chat[session.chat_id] = session.id
            self._sessions[session.id] = session
        self.dirty = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, game_id: str) -> GameSession:
        session = self._sessions.get(game_id)
        if session is None:
            raise GameNotFoundError(f"game {game_id} not found", game_id)
        return session

    def _merge_settings(self, strategy: GameStrategy, overrides: Mapping[str, Any] | None) -> GameSettings:
        settings = strategy.default_settings()
        for layer in (self._settings_overrides.get(strategy.name), overrides):
            if not layer:
                continue
            for key, value in layer.items():
                if key in _SETTINGS_FIELDS:
                    setattr(settings, key, int(value))
                elif key == "limits" and isinstance(value, Mapping):
                    settings.limits.update(copy.deepcopy(dict(value)))
                else:
                    settings.limits[key] = copy.deepcopy(value)
        settings.min_players = max(1, min(settings.min_players, settings.max_players))
        return settings

    def _notify_statistics(self, session: GameSession) -> None:
        if self._statistics is None:
            return
        summary = GameSummary(
            game_id=session.id,
            type=session.type,
            players=list(session.players),
            winner=session.winner,
            score=dict(session.score),
            reason=session.end_reason or "",
            ended_at=session.ended_at or self._clock(),
        )
        try:
            self._statistics.record_game(summary)
        except Exception:
            self._logger.exception("Statistics update failed for game %s", session.id)

    @staticmethod
    def _encode_session(session: GameSession) -> dict[str, Any]:
        return {
            "id": session.id,
            "type": session.type,
            "chat_id": session.chat_id,
            "created_by": session.created_by,
            "settings": {
                "max_players": session.settings.max_players,
                "min_players": session.settings.min_players,
                "turn_timeout_seconds": session.settings.turn_timeout_seconds,
                "limits": session.settings.limits,
            },
            "players": list(session.players),
            "current_player_index": session.current_player_index,
            "status": session.status,
            "board_state": session.board_state,
            "score": dict(session.score),
            "move_log": [
                {
                    "player": record.player,
                    "move": record.move,
                    "timestamp": format_timestamp(record.timestamp),
                    "outcome": record.outcome,
                }
                for record in session.move_log
            ],
            "created_at": format_timestamp(session.created_at),
            "started_at": format_timestamp(session.started_at),
            "ended_at": format_timestamp(session.ended_at),
            "last_activity_at": format_timestamp(session.last_activity_at),
            "winner": session.winner,
            "end_reason": session.end_reason,
        }

    @staticmethod
    def _decode_session(raw: dict[str, Any]) -> GameSession:
        settings = raw.get("settings") or {}
        return GameSession(
            id=str(raw["id"]),
            type=str(raw["type"]),
            chat_id=str(raw["chat_id"]),
            created_by=str(raw.get("created_by") or ""),
            settings=GameSettings(
                max_players=int(settings.get("max_players", 1)),
                min_players=int(settings.get("min_players", 1)),
                turn_timeout_seconds=int(settings.get("turn_timeout_seconds", 60)),
                limits=dict(settings.get("limits") or {}),
            ),
            players=list(raw.get("players") or []),
            current_player_index=int(raw.get("current_player_index") or 0),
            status=str(raw.get("status") or GAME_WAITING),
            board_state=dict(raw.get("board_state") or {}),
            score={str(k): int(v) for k, v in (raw.get("score") or {}).items()},
            move_log=[
                MoveRecord(
                    player=str(entry.get("player") or ""),
                    move=entry.get("move"),
                    timestamp=parse_timestamp(entry.get("timestamp")) or datetime.min,
                    outcome=dict(entry.get("outcome") or {}),
                )
                for entry in raw.get("move_log") or ()
            ],
            created_at=parse_timestamp(raw.get("created_at")),
            started_at=parse_timestamp(raw.get("started_at")),
            ended_at=parse_timestamp(raw.get("ended_at")),
            last_activity_at=parse_timestamp(raw.get("last_activity_at")),
            winner=raw.get("winner"),
            end_reason=raw.get("end_reason"),
        )
