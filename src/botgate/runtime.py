from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from typing import Any, Callable

from .commands import CommandContext, CommandHandler, register_builtin_commands
from .config import BotConfig
from .core.engine import GameEngine
from .core.errors import (
    BotGateError,
    GameError,
    InvalidMoveFormatError,
    MoveRejectedError,
    NotAParticipantError,
    NotYourTurnError,
)
from .core.gate import AuthorizationGate
from .core.locks import ChatLocks
from .core.normalize import is_valid_command_name, normalize_command_name, parse_command, utcnow
from .core.permissions import PermissionRegistry
from .core.ports import MessagingGatewayPort, PersistencePort, StatisticsPort
from .core.session_store import SessionStore
from .core.sweeper import GameSweeper
from .core.types import (
    REASON_ACTIVE_GAME_INPUT,
    AuthorizationDecision,
    EventResult,
    GameSession,
    InboundEvent,
)
from .games import default_strategies
from .persistence.sqlalchemy import (
    SQLAlchemyPersistence,
    SQLAlchemyStatistics,
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)

STATUS_DENIED = "denied"
STATUS_IGNORED = "ignored"
STATUS_MOVE_ACCEPTED = "move_accepted"
STATUS_MOVE_REJECTED = "move_rejected"
STATUS_COMMAND_OK = "command_ok"
STATUS_COMMAND_FAILED = "command_failed"
STATUS_UNHANDLED = "unhandled"

_OUTCOME_TEXT = {
    "win": "{winner} wins!",
    "draw": "It's a draw.",
    "word_guessed": "{winner} guessed the word: {word}",
    "max_wrong_guesses": "Out of guesses. The word was {word}",
    "questions_exhausted": "Quiz over. Winner: {winner}",
    "timeout": "Game ended after inactivity.",
    "stopped": "Game stopped.",
}


class BotRuntime:
    """Owns one instance of every component and runs the event pipeline.

    ``handle_event`` holds the chat's lock for the whole event, so events of
    one chat are applied one at a time while other chats proceed in parallel.
    In-memory state is mirrored to the persistence collaborator every
    ``sessions.flush_interval_seconds`` and once more on ``shutdown``.
    """

    def __init__(
        self,
        config: BotConfig | None = None,
        persistence: PersistencePort | None = None,
        gateway: MessagingGatewayPort | None = None,
        statistics: StatisticsPort | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or BotConfig()
        self._persistence = persistence
        self._gateway = gateway
        self._statistics = statistics
        self._clock = clock or utcnow
        self._logger = logging.getLogger(__name__)

        self.locks = ChatLocks()
        self.sessions = SessionStore(
            clock=self._clock,
            locks=self.locks,
            default_ttl_ms=self.config.sessions.default_ttl_ms,
        )
        self.permissions = PermissionRegistry(
            max_audit_records=self.config.permissions.audit_log_size,
            clock=self._clock,
        )
        self.games = GameEngine(
            strategies=default_strategies(),
            statistics=statistics,
            clock=self._clock,
            rng=rng,
            settings_overrides=self.config.games.settings,
        )
        self.gate = AuthorizationGate(
            owner_id=self.config.owner_id,
            command_prefix=self.config.command_prefix,
            permissions=self.permissions,
            games=self.games,
        )
        self.sweeper = GameSweeper(
            engine=self.games,
            locks=self.locks,
            inactivity_timeout_seconds=self.config.games.inactivity_timeout_seconds,
            sweep_interval_seconds=self.config.games.sweep_interval_seconds,
            history_retention_seconds=self.config.games.history_retention_seconds,
            clock=self._clock,
            on_expired=self._announce_timeout,
        )

        self._commands: dict[str, CommandHandler] = {}
        self._send_tasks: set[asyncio.Task] = set()
        self._flush_task: asyncio.Task | None = None
        self._started = False
        register_builtin_commands(self)

    @classmethod
    def from_config(
        cls,
        config: BotConfig,
        gateway: MessagingGatewayPort | None = None,
        **kwargs: Any,
    ) -> "BotRuntime":
        engine = build_engine(config.database_url)
        create_schema(engine)
        session_factory = build_session_factory(engine)

        def uow_factory() -> SQLAlchemyUnitOfWork:
            return SQLAlchemyUnitOfWork(session_factory)

        return cls(
            config=config,
            persistence=SQLAlchemyPersistence(uow_factory),
            gateway=gateway,
            statistics=SQLAlchemyStatistics(uow_factory),
            **kwargs,
        )

    @property
    def components(self) -> list[Any]:
        return [self.sessions, self.permissions, self.games]

    def register_command(self, name: str, handler: CommandHandler) -> None:
        key = normalize_command_name(name)
        if not is_valid_command_name(key):
            raise ValueError(f"invalid command name: {name!r}")
        self._commands[key] = handler

    def has_command(self, name: str) -> bool:
        return normalize_command_name(name) in self._commands

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        await self.load()
        self._flush_task = asyncio.create_task(self._flush_loop())
        self.sweeper.start()
        self._started = True
        self._logger.info("Bot runtime started (owner=%s)", self.config.owner_id or "<unset>")

    async def load(self) -> None:
        if self._persistence is None:
            return
        for component in self.components:
            try:
                snapshot = await asyncio.to_thread(
                    self._persistence.load, component.namespace, component.snapshot_key
                )
            except Exception:
                self._logger.exception("Could not load %s state; starting empty", component.namespace)
                continue
            component.restore(snapshot)
            self._logger.info("Loaded %s state", component.namespace)

    async def shutdown(self) -> bool:
        await self.sweeper.stop()
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        if self._send_tasks:
            await asyncio.gather(*list(self._send_tasks), return_exceptions=True)

        attempts = self.config.persistence.shutdown_flush_attempts
        flushed = False
        for attempt in range(1, attempts + 1):
            if await self.flush():
                flushed = True
                break
            self._logger.warning("Shutdown flush attempt %d/%d failed", attempt, attempts)
        if not flushed:
            self._logger.error("Unsaved state remains after %d flush attempts", attempts)
        self._started = False
        self._logger.info("Bot runtime stopped")
        return flushed

    async def flush(self, force: bool = False) -> bool:
        """Mirror dirty components; returns False if anything failed to save."""
        ok = True
        if self._persistence is not None:
            for component in self.components:
                if not (component.dirty or force):
                    continue
                snapshot = component.snapshot()
                component.dirty = False
                try:
                    await asyncio.to_thread(
                        self._persistence.save, component.namespace, component.snapshot_key, snapshot
                    )
                except Exception:
                    # Stay dirty so the next interval retries.
                    component.dirty = True
                    ok = False
                    self._logger.exception("Saving %s state failed", component.namespace)

        flush_stats = getattr(self._statistics, "flush", None)
        if callable(flush_stats):
            try:
                await asyncio.to_thread(flush_stats)
            except Exception:
                ok = False
                self._logger.exception("Flushing game statistics failed")
        return ok

    async def _flush_loop(self) -> None:
        interval = self.config.sessions.flush_interval_seconds
        while True:
            try:
                await asyncio.sleep(interval)
                self.sessions.purge_expired()
                await self.flush()
            except asyncio.CancelledError:
                return
            except Exception:
                self._logger.exception("Periodic flush failed")

    # ------------------------------------------------------------------
    # Event pipeline
    # ------------------------------------------------------------------

    async def handle_event(self, event: InboundEvent) -> EventResult:
        async with self.locks.lock_for(event.chat_id):
            try:
                return await self._process(event)
            except Exception as exc:
                self._logger.exception("Unhandled failure for event in chat %s", event.chat_id)
                return EventResult(status=STATUS_COMMAND_FAILED, error=str(exc))

    async def _process(self, event: InboundEvent) -> EventResult:
        decision = self.gate.decide(event)
        if not decision.allowed:
            return EventResult(status=STATUS_DENIED, decision=decision)

        text = event.raw_text or ""
        if decision.reason == REASON_ACTIVE_GAME_INPUT:
            session = self.games.get_session(decision.context.get("game_id", ""))
            if session is None:
                return EventResult(status=STATUS_IGNORED, decision=decision)
            return self._play(event, decision, session)

        parsed = parse_command(text, self.gate.command_prefix)
        if parsed is not None:
            name, args = parsed
            return await self._run_command(event, decision, name, args)

        # Owner text that is not a command may still be a move.
        session = self.games.get_active_game(event.chat_id)
        if session is not None and self.games.matches_move(session, text):
            return self._play(event, decision, session)

        return EventResult(status=STATUS_UNHANDLED, decision=decision)

    def _play(self, event: InboundEvent, decision: AuthorizationDecision, session: GameSession) -> EventResult:
        try:
            result = self.games.process_move(session.id, event.sender_id, event.raw_text)
        except (InvalidMoveFormatError, NotAParticipantError) as exc:
            self._logger.debug("Ignoring game input in chat %s: %s", event.chat_id, exc)
            return EventResult(status=STATUS_IGNORED, decision=decision, error=type(exc).__name__)
        except GameError as exc:
            reason = self._rejection_reason(exc)
            reply = f"Move rejected: {exc}"
            self.send(event.chat_id, reply)
            return EventResult(status=STATUS_MOVE_REJECTED, decision=decision, reply=reply, error=reason)

        reply = self.games.render(result.session)
        if result.outcome is not None:
            reply = f"{reply}\n{self._outcome_text(result.session)}"
        self.send(event.chat_id, reply)
        return EventResult(status=STATUS_MOVE_ACCEPTED, decision=decision, reply=reply, move=result)

    async def _run_command(
        self,
        event: InboundEvent,
        decision: AuthorizationDecision,
        name: str,
        args: list[str],
    ) -> EventResult:
        handler = self._commands.get(name)
        if handler is None:
            return EventResult(status=STATUS_UNHANDLED, decision=decision)

        ctx = CommandContext(runtime=self, event=event, name=name, args=args, decision=decision)
        try:
            reply = handler(ctx)
            if asyncio.iscoroutine(reply):
                reply = await reply
        except BotGateError as exc:
            reply = str(exc)
            self.send(event.chat_id, reply)
            return EventResult(
                status=STATUS_COMMAND_FAILED,
                decision=decision,
                reply=reply,
                error=self._rejection_reason(exc),
            )
        except Exception as exc:
            self._logger.exception("Command %s failed in chat %s", name, event.chat_id)
            return EventResult(status=STATUS_COMMAND_FAILED, decision=decision, error=str(exc))

        if reply:
            self.send(event.chat_id, reply)
        return EventResult(status=STATUS_COMMAND_OK, decision=decision, reply=reply)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send(self, chat_id: str, content: str) -> None:
        if self._gateway is None or not content:
            return
        task = asyncio.create_task(self._send(chat_id, content))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _send(self, chat_id: str, content: str) -> None:
        try:
            await self._gateway.send(chat_id, content)
        except Exception:
            self._logger.exception("Sending message to chat %s failed", chat_id)

    async def _announce_timeout(self, session: GameSession) -> None:
        self.send(session.chat_id, f"{session.type}: {self._outcome_text(session)}")

    @staticmethod
    def _rejection_reason(exc: BotGateError) -> str:
        if isinstance(exc, MoveRejectedError):
            return exc.reason
        if isinstance(exc, NotYourTurnError):
            return "not_your_turn"
        return type(exc).__name__

    @staticmethod
    def _outcome_text(session: GameSession) -> str:
        template = _OUTCOME_TEXT.get(session.end_reason or "", "Game over.")
        winner = (session.winner or "nobody").split("@", 1)[0]
        return template.format(winner=winner, word=session.board_state.get("word", ""))
