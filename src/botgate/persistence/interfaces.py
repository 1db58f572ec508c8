from __future__ import annotations

from datetime import datetime
from typing import Protocol


class KeyValueRepo(Protocol):
    def get(self, namespace: str, key: str): ...
    def upsert(self, namespace: str, key: str, value_json: str): ...
    def delete(self, namespace: str, key: str) -> int: ...
    def keys(self, namespace: str) -> list[str]: ...


class PlayerStatRepo(Protocol):
    def get(self, user_id: str): ...
    def get_or_create(self, user_id: str): ...
    def top(self, limit: int = 10): ...


class GameResultRepo(Protocol):
    def exists(self, game_id: str) -> bool: ...
    def add(
        self,
        game_id: str,
        game_type: str,
        winner: str | None,
        reason: str,
        players_json: str,
        score_json: str,
        ended_at: datetime,
    ): ...
    def recent(self, limit: int = 20, game_type: str | None = None): ...


class UnitOfWork(Protocol):
    kv: KeyValueRepo
    player_stats: PlayerStatRepo
    game_results: GameResultRepo

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
