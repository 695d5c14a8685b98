"""Request-level errors reported back to the requesting session as ``game-error``.

None of these are fatal: the room leaves its state untouched when one is raised.
"""

from __future__ import annotations

from typing import Optional


class GameError(Exception):
    code = "GameError"
    default_message = "Request rejected"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class NotFound(GameError):
    code = "NotFound"
    default_message = "Not found"


class SelfAccept(GameError):
    code = "SelfAccept"
    default_message = "You cannot accept your own challenge"


class SelfChallenge(GameError):
    code = "SelfChallenge"
    default_message = "You cannot challenge yourself"


class NotChallenger(GameError):
    code = "NotChallenger"
    default_message = "Only the challenger can cancel this challenge"


class NotParticipant(GameError):
    code = "NotParticipant"
    default_message = "You are not a player in this game"


class NotYourTurn(GameError):
    code = "NotYourTurn"
    default_message = "It is not your turn"


class IllegalBoard(GameError):
    code = "IllegalBoard"
    default_message = "You must play on the active board"


class CellOccupied(GameError):
    code = "CellOccupied"
    default_message = "Cell already occupied"


class BoardSettled(GameError):
    code = "BoardSettled"
    default_message = "That board is already decided"


class GameOver(GameError):
    code = "GameOver"
    default_message = "Game already finished"


class InvalidDepth(GameError):
    code = "InvalidDepth"
    default_message = "Unsupported board size"


class InvalidMessage(GameError):
    code = "InvalidMessage"
    default_message = "Malformed message"
