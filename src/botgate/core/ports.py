from __future__ import annotations

from typing import Any, Protocol

from .types import GameSummary


class MessagingGatewayPort(Protocol):
    async def send(self, chat_id: str, content: str) -> None:
        ...


class PersistencePort(Protocol):
    def save(self, namespace: str, key: str, value: Any) -> None:
        ...

    def load(self, namespace: str, key: str) -> Any | None:
        ...


class StatisticsPort(Protocol):
    def record_game(self, summary: GameSummary) -> None:
        ...
