from __future__ import annotations

import random
import re
from typing import Any

from ..core.errors import MoveRejectedError
from ..core.types import GameOutcome, GameSession
from .base import AppliedMove, BaseStrategy

HANGMAN_WORDS = [
    "antenna", "backpack", "beacon", "campfire", "compass", "desert",
    "frontier", "harbor", "lantern", "outpost", "patrol", "radio",
    "shelter", "signal", "summit", "tunnel", "waypoint", "wildfire",
]

RANDOM_WORDS = [
    "javascript", "python", "computer", "programming", "algorithm",
    "database", "network", "security", "artificial", "intelligence",
    "machine", "learning", "development", "software", "hardware",
]


class Hangman(BaseStrategy):
    """Single-player letter guessing against a hidden word."""

    name = "hangman"
    turn_based = False
    max_players = 1
    min_players = 1
    turn_timeout_seconds = 120
    default_limits = {"max_wrong_guesses": 6}
    word_list = HANGMAN_WORDS

    _GRAMMAR = re.compile(r"^[A-Za-z]$")

    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]:
        limits = session.settings.limits
        word = limits.get("word") or rng.choice(limits.get("words") or self.word_list)
        word = str(word).strip().lower()
        return {
            "word": word,
            "masked": [ch if not ch.isalpha() else "_" for ch in word],
            "guessed": [],
            "wrong_guesses": 0,
        }

    def parse_move(self, raw: str) -> str:
        text = (raw or "").strip()
        if not self._GRAMMAR.match(text):
            raise self._invalid(raw)
        return text.lower()

    def apply_move(self, session: GameSession, player: str, move: str) -> AppliedMove:
        state = session.board_state
        if move in state["guessed"]:
            raise MoveRejectedError("letter_already_guessed", f"{move} was already guessed", session.id)

        state["guessed"].append(move)
        word = state["word"]
        correct = move in word
        if correct:
            for index, ch in enumerate(word):
                if ch == move:
                    state["masked"][index] = ch
        else:
            state["wrong_guesses"] += 1
        return AppliedMove(
            detail={
                "letter": move,
                "correct": correct,
                "masked": "".join(state["masked"]),
                "wrong_guesses": state["wrong_guesses"],
            }
        )

    def check_end(self, session: GameSession) -> GameOutcome | None:
        state = session.board_state
        if "".join(state["masked"]) == state["word"]:
            winner = session.players[0] if session.players else None
            return GameOutcome(winner=winner, reason="word_guessed", detail={"word": state["word"]})
        max_wrong = int(session.settings.limits.get("max_wrong_guesses", 6))
        if state["wrong_guesses"] >= max_wrong:
            return GameOutcome(winner=None, reason="max_wrong_guesses", detail={"word": state["word"]})
        return None

    def render(self, session: GameSession) -> str:
        state = session.board_state
        max_wrong = int(session.settings.limits.get("max_wrong_guesses", 6))
        lines = [
            self.name.upper(),
            f"Word: {' '.join(state.get('masked') or [])}",
            f"Wrong guesses: {state.get('wrong_guesses', 0)}/{max_wrong}",
        ]
        if state.get("guessed"):
            lines.append(f"Guessed: {', '.join(state['guessed'])}")
        return "\n".join(lines)


class RandomWord(Hangman):
    name = "randomword"
    turn_timeout_seconds = 60
    word_list = RANDOM_WORDS
