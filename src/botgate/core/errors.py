from __future__ import annotations


class BotGateError(Exception):
    """Base for every failure the core reports to the calling pipeline."""


class GameError(BotGateError):
    def __init__(self, message: str, game_id: str | None = None):
        super().__init__(message)
        self.game_id = game_id


class GameNotFoundError(GameError):
    pass


class GameAlreadyActiveError(GameError):
    def __init__(self, chat_id: str, game_id: str):
        super().__init__(f"chat {chat_id} already hosts game {game_id}", game_id)
        self.chat_id = chat_id


class GameFullError(GameError):
    pass


class GameStateError(GameError):
    def __init__(self, message: str, game_id: str | None = None, status: str | None = None):
        super().__init__(message, game_id)
        self.status = status


class PlayerAlreadyJoinedError(GameError):
    pass


class NotAParticipantError(GameError):
    pass


class NotYourTurnError(GameError):
    def __init__(self, game_id: str, expected_player: str):
        super().__init__(f"waiting for {expected_player}", game_id)
        self.expected_player = expected_player


class InvalidMoveFormatError(GameError):
    pass


class MoveRejectedError(GameError):
    def __init__(self, reason: str, message: str | None = None, game_id: str | None = None):
        super().__init__(message or reason, game_id)
        self.reason = reason


class UnknownGameTypeError(GameError):
    def __init__(self, game_type: str):
        super().__init__(f"unknown game type: {game_type}")
        self.game_type = game_type


class PermissionRegistryError(BotGateError):
    def __init__(self, message: str, user_id: str | None = None, command: str | None = None):
        super().__init__(message)
        self.user_id = user_id
        self.command = command


class PermissionNotFoundError(PermissionRegistryError):
    pass


class PermissionAlreadyGrantedError(PermissionRegistryError):
    pass


class InvalidCommandNameError(PermissionRegistryError):
    pass
