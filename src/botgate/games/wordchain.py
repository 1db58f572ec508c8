from __future__ import annotations

import random
import re
from typing import Any

from ..core.errors import MoveRejectedError
from ..core.types import GAME_ACTIVE, GameSession
from .base import AppliedMove, BaseStrategy, display_name


class WordChain(BaseStrategy):
    """Each word must start with the last letter of the previous one.

    The chain has no natural end; sessions finish through ``stop`` or the
    inactivity sweep.
    """

    name = "wordchain"
    turn_based = True
    max_players = 10
    min_players = 2
    turn_timeout_seconds = 30
    default_limits = {"min_word_length": 3}

    _GRAMMAR = re.compile(r"^[A-Za-z]+$")

    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]:
        return {"current_word": None, "used_words": [], "chain": []}

    def parse_move(self, raw: str) -> str:
        text = (raw or "").strip()
        if not self._GRAMMAR.match(text):
            raise self._invalid(raw)
        return text.lower()

    def apply_move(self, session: GameSession, player: str, move: str) -> AppliedMove:
        state = session.board_state
        min_length = int(session.settings.limits.get("min_word_length", 1) or 1)
        if len(move) < min_length:
            raise MoveRejectedError(
                "word_too_short", f"words need at least {min_length} letters", session.id
            )
        if move in state["used_words"]:
            raise MoveRejectedError("word_already_used", f"{move} was already played", session.id)
        current = state.get("current_word")
        if current and move[0] != current[-1]:
            raise MoveRejectedError(
                "wrong_first_letter", f"word must start with {current[-1]!r}", session.id
            )

        state["current_word"] = move
        state["used_words"].append(move)
        state["chain"].append({"player": player, "word": move})
        return AppliedMove(score_delta=len(move), detail={"word": move, "points": len(move)})

    def render(self, session: GameSession) -> str:
        state = session.board_state
        lines = ["WORD CHAIN"]
        for entry in (state.get("chain") or [])[-5:]:
            lines.append(f"- {entry['word']} ({display_name(entry['player'])})")
        current = state.get("current_word")
        if current:
            lines.append(f"Next word starts with: {current[-1].upper()}")
        if session.status == GAME_ACTIVE and session.current_player:
            lines.append(f"Turn: {display_name(session.current_player)}")
        return "\n".join(lines)
