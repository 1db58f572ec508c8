from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ...core.normalize import dump_json, parse_json_dict
from ...core.types import GameSummary
from ..interfaces import UnitOfWork

RESULT_WON = "won"
RESULT_LOST = "lost"
RESULT_DRAW = "draw"
RESULT_ABANDONED = "abandoned"

_LOSING_REASONS = {"max_wrong_guesses"}


def result_for(summary: GameSummary, player: str) -> str:
    """Classify one player's result in a finished game.

    Games stopped or timed out without a winner count as played but neither
    won nor lost, and leave the win streak alone.
    """
    if summary.winner is not None:
        return RESULT_WON if summary.winner == player else RESULT_LOST
    if summary.reason == "draw":
        return RESULT_DRAW
    if summary.reason in _LOSING_REASONS:
        return RESULT_LOST
    return RESULT_ABANDONED


class SQLAlchemyStatistics:
    """Statistics collaborator backed by ``bg_player_stats``/``bg_game_results``.

    ``record_game`` only buffers, so ending a game never touches the database.
    ``flush`` drains the buffer in one transaction and is meant to run off the
    event loop.
    """

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self._uow_factory = uow_factory
        self._pending: list[GameSummary] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def record_game(self, summary: GameSummary) -> None:
        with self._lock:
            self._pending.append(summary)

    def flush(self) -> int:
        with self._lock:
            batch, self._pending = self._pending, []
        if not batch:
            return 0
        try:
            with self._uow_factory() as uow:
                written = 0
                for summary in batch:
                    if uow.game_results.exists(summary.game_id):
                        continue
                    self._apply(uow, summary)
                    written += 1
                uow.commit()
        except Exception:
            with self._lock:
                # Put the batch back in front so ordering survives a retry.
                self._pending = batch + self._pending
            raise
        self._logger.info("Recorded statistics for %d games", written)
        return written

    def player_stats(self, user_id: str) -> dict[str, Any] | None:
        with self._uow_factory() as uow:
            row = uow.player_stats.get(user_id)
            return None if row is None else self._row_to_dict(row)

    def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        with self._uow_factory() as uow:
            return [self._row_to_dict(row) for row in uow.player_stats.top(limit)]

    def _apply(self, uow: UnitOfWork, summary: GameSummary) -> None:
        uow.game_results.add(
            game_id=summary.game_id,
            game_type=summary.type,
            winner=summary.winner,
            reason=summary.reason,
            players_json=dump_json(list(summary.players)),
            score_json=dump_json(dict(summary.score)),
            ended_at=summary.ended_at,
        )
        for player in summary.players:
            row = uow.player_stats.get_or_create(player)
            result = result_for(summary, player)
            score = int(summary.score.get(player, 0))

            row.games_played += 1
            if result == RESULT_WON:
                row.games_won += 1
                row.win_streak += 1
                row.best_win_streak = max(row.best_win_streak, row.win_streak)
            elif result == RESULT_LOST:
                row.games_lost += 1
                row.win_streak = 0
            elif result == RESULT_DRAW:
                row.games_draw += 1
            row.total_score += score
            row.best_score = max(row.best_score, score)

            per_type = parse_json_dict(row.per_type_json)
            counters = per_type.setdefault(summary.type, {"played": 0, "won": 0, "lost": 0, "draw": 0})
            counters["played"] = int(counters.get("played", 0)) + 1
            if result != RESULT_ABANDONED:
                counters[result] = int(counters.get(result, 0)) + 1
            row.per_type_json = dump_json(per_type)
            row.last_played_at = summary.ended_at

    @staticmethod
    def _row_to_dict(row) -> dict[str, Any]:
        return {
            "user_id": row.user_id,
            "games_played": row.games_played,
            "games_won": row.games_won,
            "games_lost": row.games_lost,
            "games_draw": row.games_draw,
            "total_score": row.total_score,
            "best_score": row.best_score,
            "win_streak": row.win_streak,
            "best_win_streak": row.best_win_streak,
            "per_type": parse_json_dict(row.per_type_json),
            "last_played_at": row.last_played_at,
        }
