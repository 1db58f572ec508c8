from __future__ import annotations

import random
import re
import string
from typing import Any

from ..core.errors import MoveRejectedError
from ..core.types import GameOutcome, GameSession
from .base import AppliedMove, BaseStrategy

QUESTION_BANK = [
    {"question": "Which planet is known as the Red Planet?", "options": ["Venus", "Mars", "Jupiter"], "answer": 1},
    {"question": "How many sides does a hexagon have?", "options": ["5", "6", "8"], "answer": 1},
    {"question": "What is the chemical symbol for gold?", "options": ["Au", "Ag", "Gd"], "answer": 0},
    {"question": "Which ocean is the largest?", "options": ["Atlantic", "Indian", "Pacific"], "answer": 2},
    {"question": "What does CPU stand for?", "options": ["Central Processing Unit", "Computer Power Unit", "Core Program Utility"], "answer": 0},
    {"question": "How many minutes are in a day?", "options": ["1440", "1240", "1600"], "answer": 0},
    {"question": "Which gas do plants absorb from the air?", "options": ["Oxygen", "Nitrogen", "Carbon dioxide"], "answer": 2},
    {"question": "What is the smallest prime number?", "options": ["0", "1", "2"], "answer": 2},
    {"question": "Which language runs natively in web browsers?", "options": ["JavaScript", "Python", "Go"], "answer": 0},
    {"question": "What is the boiling point of water at sea level in Celsius?", "options": ["90", "100", "110"], "answer": 1},
    {"question": "Which continent is the Sahara desert on?", "options": ["Asia", "Africa", "Australia"], "answer": 1},
    {"question": "How many bits are in a byte?", "options": ["4", "8", "16"], "answer": 1},
]


def option_label(index: int) -> str:
    return string.ascii_lowercase[index]


class Quiz(BaseStrategy):
    """Simultaneous multiple-choice quiz; any participant may answer.

    Answers are a single option letter (`a`-`d`) or option number (`1`-`4`).
    Every answer, right or wrong, moves on to the next question.
    """

    name = "quiz"
    turn_based = False
    max_players = 10
    min_players = 1
    turn_timeout_seconds = 30
    default_limits = {"questions_per_round": 10}

    _GRAMMAR = re.compile(r"^([a-dA-D]|[1-4])$")

    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]:
        limits = session.settings.limits
        fixed = limits.get("questions")
        if fixed:
            questions = [dict(q) for q in fixed]
        else:
            count = min(int(limits.get("questions_per_round", 10)), len(QUESTION_BANK))
            questions = [dict(q) for q in rng.sample(QUESTION_BANK, k=count)]
        return {"questions": questions, "current_question": 0}

    def parse_move(self, raw: str) -> str:
        text = (raw or "").strip().lower()
        if not self._GRAMMAR.match(text):
            raise self._invalid(raw)
        if text.isdigit():
            return option_label(int(text) - 1)
        return text

    def apply_move(self, session: GameSession, player: str, move: str) -> AppliedMove:
        state = session.board_state
        index = state["current_question"]
        if index >= len(state["questions"]):
            raise MoveRejectedError("no_active_question", "the quiz is over", session.id)
        question = state["questions"][index]
        options = question["options"]
        if move not in (option_label(i) for i in range(len(options))):
            last = option_label(len(options) - 1)
            raise MoveRejectedError("invalid_option", f"choose an option from a to {last}", session.id)
        correct_index = int(question["answer"])
        correct = move == option_label(correct_index)

        state["current_question"] = index + 1
        return AppliedMove(
            score_delta=1 if correct else 0,
            detail={"question_index": index, "correct": correct, "correct_answer": str(options[correct_index])},
        )

    def check_end(self, session: GameSession) -> GameOutcome | None:
        state = session.board_state
        if state["current_question"] < len(state["questions"]):
            return None
        winner = None
        best = None
        for player in session.players:
            points = session.score.get(player, 0)
            # Strictly greater keeps the earliest player on ties.
            if best is None or points > best:
                best = points
                winner = player
        return GameOutcome(winner=winner, reason="questions_exhausted", detail={"scores": dict(session.score)})

    def render(self, session: GameSession) -> str:
        state = session.board_state
        questions = state.get("questions") or []
        index = state.get("current_question", 0)
        if index >= len(questions):
            return "QUIZ finished"
        question = questions[index]
        lines = [f"QUIZ {index + 1}/{len(questions)}", question["question"]]
        for i, option in enumerate(question["options"]):
            lines.append(f"{option_label(i)}) {option}")
        return "\n".join(lines)
