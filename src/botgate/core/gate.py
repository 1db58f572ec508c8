from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .normalize import normalize_user_id, parse_command
from .permissions import PermissionRegistry
from .types import (
    GAME_ACTIVE,
    REASON_ACTIVE_GAME_INPUT,
    REASON_DENIED,
    REASON_EXPLICIT_GRANT,
    REASON_OWNER,
    AuthorizationDecision,
    InboundEvent,
)

if TYPE_CHECKING:
    from .engine import GameEngine


class AuthorizationGate:
    """Decides whether an inbound event gets processed at all.

    First match wins: owner or self-sent, input for the chat's active game,
    an explicitly granted command, otherwise deny. ``decide`` reads the
    registry and engine without mutating either.
    """

    def __init__(
        self,
        owner_id: str,
        command_prefix: str,
        permissions: PermissionRegistry,
        games: GameEngine,
    ):
        self._owner_id = normalize_user_id(owner_id)
        self._command_prefix = command_prefix
        self._permissions = permissions
        self._games = games
        self._logger = logging.getLogger(__name__)

    @property
    def command_prefix(self) -> str:
        return self._command_prefix

    def is_owner(self, sender_id: str | None) -> bool:
        return bool(self._owner_id) and normalize_user_id(sender_id) == self._owner_id

    def decide(self, event: InboundEvent) -> AuthorizationDecision:
        try:
            return self._decide(event)
        except Exception:
            self._logger.exception("Authorization check failed for chat %s", event.chat_id)
            return AuthorizationDecision(allowed=False, reason=REASON_DENIED, context={"error": True})

    def _decide(self, event: InboundEvent) -> AuthorizationDecision:
        if event.is_self_sent or self.is_owner(event.sender_id):
            return AuthorizationDecision(allowed=True, reason=REASON_OWNER)

        text = event.raw_text or ""
        session = self._games.get_active_game(event.chat_id)
        if session is not None and session.status == GAME_ACTIVE and self._games.matches_move(session, text):
            return AuthorizationDecision(
                allowed=True,
                reason=REASON_ACTIVE_GAME_INPUT,
                context={"game_id": session.id, "game_type": session.type},
            )

        parsed = parse_command(text, self._command_prefix)
        if parsed is not None:
            name, _ = parsed
            if self._permissions.is_granted(event.sender_id, name):
                return AuthorizationDecision(
                    allowed=True,
                    reason=REASON_EXPLICIT_GRANT,
                    context={"command": name},
                )

        self._logger.debug("Denied event from %s in chat %s", event.sender_id, event.chat_id)
        return AuthorizationDecision(allowed=False, reason=REASON_DENIED)
