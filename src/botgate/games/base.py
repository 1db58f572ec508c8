from __future__ import annotations

import copy
import random
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

from ..core.errors import InvalidMoveFormatError
from ..core.types import GameOutcome, GameSession, GameSettings


@dataclass
class AppliedMove:
    score_delta: int = 0
    detail: dict[str, Any] = field(default_factory=dict)


class GameStrategy(Protocol):
    name: str
    turn_based: bool

    def default_settings(self) -> GameSettings: ...
    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]: ...
    def parse_move(self, raw: str) -> Any: ...
    def matches(self, raw: str) -> bool: ...
    def apply_move(self, session: GameSession, player: str, move: Any) -> AppliedMove: ...
    def check_end(self, session: GameSession) -> GameOutcome | None: ...
    def render(self, session: GameSession) -> str: ...


class BaseStrategy:
    """Shared plumbing for the built-in game types.

    Subclasses set the class-level defaults and implement the four hooks the
    engine drives: ``initialize``, ``parse_move``, ``apply_move`` and
    ``check_end``. ``apply_move`` must raise ``MoveRejectedError`` before
    touching ``board_state`` when a move breaks the rules.
    """

    name: ClassVar[str] = ""
    turn_based: ClassVar[bool] = False
    max_players: ClassVar[int] = 1
    min_players: ClassVar[int] = 1
    turn_timeout_seconds: ClassVar[int] = 60
    default_limits: ClassVar[dict[str, Any]] = {}

    def default_settings(self) -> GameSettings:
        return GameSettings(
            max_players=self.max_players,
            min_players=self.min_players,
            turn_timeout_seconds=self.turn_timeout_seconds,
            limits=copy.deepcopy(self.default_limits),
        )

    def matches(self, raw: str) -> bool:
        try:
            self.parse_move(raw)
        except InvalidMoveFormatError:
            return False
        return True

    def initialize(self, session: GameSession, rng: random.Random) -> dict[str, Any]:
        raise NotImplementedError

    def parse_move(self, raw: str) -> Any:
        raise NotImplementedError

    def apply_move(self, session: GameSession, player: str, move: Any) -> AppliedMove:
        raise NotImplementedError

    def check_end(self, session: GameSession) -> GameOutcome | None:
        return None

    def render(self, session: GameSession) -> str:
        return f"{self.name}: {session.status}"

    def _invalid(self, raw: str) -> InvalidMoveFormatError:
        return InvalidMoveFormatError(f"{raw!r} is not a {self.name} move")


def display_name(user_id: str | None) -> str:
    return (user_id or "").split("@", 1)[0]
