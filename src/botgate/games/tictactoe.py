from __future__ import annotations

import random
import re
from typing import Any

from ..core.errors import MoveRejectedError
from ..core.types import GAME_ACTIVE, GameOutcome, GameSession
from .base import AppliedMove, BaseStrategy, display_name

WIN_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)
SYMBOLS = ("X", "O")


class TicTacToe(BaseStrategy):
    name = "tictactoe"
    turn_based = True
    max_players = 2
    min_players = 2
    turn_timeout_seconds = 60

    _GRAMMAR = re.compile(r"^[1-9]$")

    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]:
        return {"board": [None] * 9, "symbols": list(SYMBOLS)}

    def parse_move(self, raw: str) -> int:
        text = (raw or "").strip()
        if not self._GRAMMAR.match(text):
            raise self._invalid(raw)
        return int(text) - 1

    def symbol_for(self, session: GameSession, player: str) -> str:
        symbols = session.board_state.get("symbols") or list(SYMBOLS)
        return symbols[session.players.index(player) % len(symbols)]

    def apply_move(self, session: GameSession, player: str, move: int) -> AppliedMove:
        board = session.board_state["board"]
        if board[move] is not None:
            raise MoveRejectedError("cell_occupied", f"cell {move + 1} is already taken", session.id)
        symbol = self.symbol_for(session, player)
        board[move] = symbol
        return AppliedMove(detail={"cell": move, "symbol": symbol})

    def check_end(self, session: GameSession) -> GameOutcome | None:
        board = session.board_state["board"]
        symbols = session.board_state.get("symbols") or list(SYMBOLS)
        for line in WIN_LINES:
            a, b, c = (board[i] for i in line)
            if a is not None and a == b == c:
                owner_index = symbols.index(a)
                winner = session.players[owner_index] if owner_index < len(session.players) else None
                return GameOutcome(winner=winner, reason="win", detail={"line": list(line), "symbol": a})
        if all(cell is not None for cell in board):
            return GameOutcome(winner=None, reason="draw")
        return None

    def render(self, session: GameSession) -> str:
        board = session.board_state.get("board") or [None] * 9
        rows = []
        for start in (0, 3, 6):
            rows.append(" ".join(board[i] or str(i + 1) for i in range(start, start + 3)))
        lines = ["TIC-TAC-TOE", *rows]
        if session.status == GAME_ACTIVE and session.current_player:
            lines.append(f"Turn: {display_name(session.current_player)}")
        return "\n".join(lines)
