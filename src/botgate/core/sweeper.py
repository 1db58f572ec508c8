from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from .engine import GameEngine
from .locks import ChatLocks
from .normalize import utcnow
from .types import GAME_ENDED, GameOutcome, GameSession


class GameSweeper:
    """Periodically force-ends idle games and purges old finished ones."""

    def __init__(
        self,
        engine: GameEngine,
        locks: ChatLocks,
        inactivity_timeout_seconds: int = 1800,
        sweep_interval_seconds: int = 300,
        history_retention_seconds: int = 86400,
        clock: Callable[[], datetime] | None = None,
        on_expired: Callable[[GameSession], Awaitable[None] | None] | None = None,
    ):
        self._engine = engine
        self._locks = locks
        self._inactivity = timedelta(seconds=inactivity_timeout_seconds)
        self._interval = sweep_interval_seconds
        self._retention = timedelta(seconds=history_retention_seconds)
        self._clock = clock or utcnow
        self._on_expired = on_expired
        self._task: asyncio.Task | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def sweep_once(self) -> list[GameSession]:
        expired: list[GameSession] = []
        candidates = [s for s in self._engine.list_sessions() if s.status != GAME_ENDED]
        for candidate in candidates:
            if not self._is_idle(candidate):
                continue
            async with self._locks.lock_for(candidate.chat_id):
                # Re-check under the lock: a move or stop may have landed meanwhile.
                session = self._engine.get_session(candidate.id)
                if session is None or session.status == GAME_ENDED or not self._is_idle(session):
                    continue
                self._engine.end_game(session.id, GameOutcome(winner=None, reason="timeout"))
            self._logger.info("Game %s in chat %s timed out", session.id, session.chat_id)
            expired.append(session)
            await self._notify(session)

        cutoff = self._clock() - self._retention
        ended_chats = {s.chat_id for s in self._engine.list_sessions() if s.status == GAME_ENDED}
        for chat_id in sorted(ended_chats):
            async with self._locks.lock_for(chat_id):
                self._engine.purge_ended(cutoff, chat_id=chat_id)
        return expired

    def _is_idle(self, session: GameSession) -> bool:
        last = session.last_activity_at or session.created_at
        if last is None:
            return False
        return self._clock() - last > self._inactivity

    async def _notify(self, session: GameSession) -> None:
        if self._on_expired is None:
            return
        try:
            maybe = self._on_expired(session)
            if asyncio.iscoroutine(maybe):
                await maybe
        except Exception:
            self._logger.exception("Expiry callback failed for game %s", session.id)

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self.sweep_once()
            except asyncio.CancelledError:
                return
            except Exception:
                self._logger.exception("Game sweep failed")
