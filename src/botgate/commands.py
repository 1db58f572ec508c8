from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from .core.errors import BotGateError, GameNotFoundError
from .core.types import GAME_ACTIVE, AuthorizationDecision, BulkResult, InboundEvent

if TYPE_CHECKING:
    from .runtime import BotRuntime


class CommandUsageError(BotGateError):
    pass


@dataclass
class CommandContext:
    runtime: BotRuntime
    event: InboundEvent
    name: str
    args: list[str] = field(default_factory=list)
    decision: AuthorizationDecision | None = None

    @property
    def chat_id(self) -> str:
        return self.event.chat_id

    @property
    def sender_id(self) -> str:
        return self.event.sender_id


CommandHandler = Callable[[CommandContext], Union[Awaitable[Union[str, None]], str, None]]


def _summarize(results: list[BulkResult]) -> str:
    done = [r.command for r in results if r.success]
    failed = [f"{r.command} ({r.reason})" for r in results if not r.success]
    lines = []
    if done:
        lines.append(f"ok: {', '.join(done)}")
    if failed:
        lines.append(f"failed: {', '.join(failed)}")
    return "\n".join(lines) or "nothing to do"


def cmd_allow(ctx: CommandContext) -> str:
    if len(ctx.args) < 2:
        raise CommandUsageError("usage: allow <user> <command> [command ...]")
    user, commands = ctx.args[0], ctx.args[1:]
    permissions = ctx.runtime.permissions
    if len(commands) == 1:
        record = permissions.allow(user, commands[0], actor=ctx.sender_id)
        return f"Allowed {record.command} for {record.user_id}"
    return _summarize(permissions.allow_many(user, commands, actor=ctx.sender_id))


def cmd_disallow(ctx: CommandContext) -> str:
    if len(ctx.args) < 2:
        raise CommandUsageError("usage: disallow <user> <command ...|all>")
    user, commands = ctx.args[0], ctx.args[1:]
    permissions = ctx.runtime.permissions
    if [c.lower() for c in commands] == ["all"]:
        return _summarize(permissions.disallow_all(user, actor=ctx.sender_id))
    if len(commands) == 1:
        record = permissions.disallow(user, commands[0], actor=ctx.sender_id)
        return f"Disallowed {record.command} for {record.user_id}"
    return _summarize(permissions.disallow_many(user, commands, actor=ctx.sender_id))


def cmd_grants(ctx: CommandContext) -> str:
    permissions = ctx.runtime.permissions
    if ctx.args:
        commands = permissions.granted_commands(ctx.args[0])
        if not commands:
            return f"No commands allowed for {ctx.args[0]}"
        return f"{ctx.args[0]}: {', '.join(commands)}"
    grants = permissions.all_grants()
    if not grants:
        return "No explicit grants"
    return "\n".join(f"{user}: {', '.join(commands)}" for user, commands in sorted(grants.items()))


def cmd_game(ctx: CommandContext) -> str:
    games = ctx.runtime.games
    if not ctx.args:
        return f"Games: {', '.join(games.game_types)}"
    session = games.create_game(ctx.args[0], ctx.chat_id, ctx.sender_id)
    # Only a game the creator fills alone starts right away; others wait for joins.
    if len(session.players) >= session.settings.max_players:
        games.start_game(session.id)
        return games.render(session)
    prefix = ctx.runtime.gate.command_prefix
    needed = session.settings.min_players - len(session.players)
    if needed > 0:
        return f"{session.type} created, waiting for {needed} more player(s): send {prefix}join"
    return f"{session.type} created: send {prefix}join to play, {prefix}start to begin"


def cmd_join(ctx: CommandContext) -> str:
    games = ctx.runtime.games
    session = _require_game(ctx)
    games.join_game(session.id, ctx.sender_id)
    if session.status == GAME_ACTIVE:
        return games.render(session)
    return f"Joined {session.type} ({len(session.players)}/{session.settings.max_players})"


def cmd_start(ctx: CommandContext) -> str:
    games = ctx.runtime.games
    session = _require_game(ctx)
    games.start_game(session.id)
    return games.render(session)


def cmd_stop(ctx: CommandContext) -> str:
    session = ctx.runtime.games.stop_game(ctx.chat_id)
    return f"{session.type} stopped"


def _require_game(ctx: CommandContext):
    session = ctx.runtime.games.get_active_game(ctx.chat_id)
    if session is None:
        raise GameNotFoundError(f"no game running in chat {ctx.chat_id}")
    return session


BUILTIN_COMMANDS: dict[str, CommandHandler] = {
    "allow": cmd_allow,
    "disallow": cmd_disallow,
    "grants": cmd_grants,
    "game": cmd_game,
    "join": cmd_join,
    "start": cmd_start,
    "stop": cmd_stop,
}


def register_builtin_commands(runtime: BotRuntime) -> None:
    for name, handler in BUILTIN_COMMANDS.items():
        runtime.register_command(name, handler)
