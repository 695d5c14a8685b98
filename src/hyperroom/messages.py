"""JSON protocol spoken over the room WebSocket.

Inbound frames are validated into one pydantic model per ``type``; outbound
frames are plain dicts built by the helpers at the bottom of this module.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .sessions import Identity, normalize_user_id

CellIndex = Annotated[int, Field(ge=0, le=8)]


class _Command(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# ---------- Inbound ----------


class ChallengeCommand(_Command):
    """Propose a match, either to one user or (without a target) to anyone."""

    type: Literal["game-challenge"]
    target_user_id: Optional[Union[int, str]] = Field(default=None, alias="targetUserId")
    game: str = "nested-ttt"
    game_name: Optional[str] = Field(default=None, alias="gameName", max_length=120)
    # Board depth; range is checked by the challenge manager.
    size: int = 1

    @field_validator("target_user_id")
    @classmethod
    def normalize_target(cls, value: Optional[Union[int, str]]) -> Optional[Union[int, str]]:
        return None if value is None else normalize_user_id(value)


class AcceptCommand(_Command):
    type: Literal["game-accepted"]
    challenge_id: str = Field(alias="challengeId")


class DeclineCommand(_Command):
    type: Literal["game-declined"]
    challenge_id: str = Field(alias="challengeId")


class CancelCommand(_Command):
    type: Literal["game-cancelled"]
    challenge_id: str = Field(alias="challengeId")


class MoveCommand(_Command):
    type: Literal["game-move"]
    game_id: str = Field(alias="gameId")
    board_path: List[CellIndex] = Field(default_factory=list, alias="boardPath")
    cell_index: CellIndex = Field(alias="cellIndex")


class ForfeitCommand(_Command):
    type: Literal["game-forfeit"]
    game_id: str = Field(alias="gameId")


class NotificationsReadCommand(_Command):
    type: Literal["notifications-read"]


class ChatCommand(_Command):
    type: Literal["chat-message"]
    text: str

    @field_validator("text")
    @classmethod
    def ensure_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message text must not be empty")
        return value


class TypingCommand(_Command):
    type: Literal["typing-start", "typing-stop"]


InboundCommand = Annotated[
    Union[
        ChallengeCommand,
        AcceptCommand,
        DeclineCommand,
        CancelCommand,
        MoveCommand,
        ForfeitCommand,
        NotificationsReadCommand,
        ChatCommand,
        TypingCommand,
    ],
    Field(discriminator="type"),
]

_INBOUND: TypeAdapter[InboundCommand] = TypeAdapter(InboundCommand)


def parse_inbound(data: Any) -> InboundCommand:
    """Validate a decoded JSON frame; raises ``pydantic.ValidationError``."""

    return _INBOUND.validate_python(data)


# ---------- Outbound ----------

Message = Dict[str, Any]


def online_users(users: Sequence[Identity]) -> Message:
    return {"type": "online-users", "users": [u.to_wire() for u in users]}


def game_challenge(challenge: Message) -> Message:
    return {"type": "game-challenge", "challenge": challenge}


def challenge_removed(challenge_id: str, reason: str) -> Message:
    return {"type": "game-challenge-removed", "challengeId": challenge_id, "reason": reason}


def challenge_expired(challenge_id: str) -> Message:
    return {"type": "game-challenge-expired", "challengeId": challenge_id}


def challenge_accepted(
    challenge_id: str, game_id: str, player1: Identity, player2: Identity
) -> Message:
    return {
        "type": "game-challenge-accepted",
        "challengeId": challenge_id,
        "gameId": game_id,
        "player1": player1.to_wire(),
        "player2": player2.to_wire(),
    }


def outgoing_challenges(challenges: Sequence[Message]) -> Message:
    return {"type": "your-outgoing-challenges", "challenges": list(challenges)}


def incoming_challenges(challenges: Sequence[Message]) -> Message:
    return {"type": "your-incoming-challenges", "challenges": list(challenges)}


def game_started(state: Message, your_symbol: str) -> Message:
    return {"type": "game-started", "gameState": state, "yourSymbol": your_symbol}


def game_state_update(state: Message) -> Message:
    return {"type": "game-state-update", "gameState": state}


def game_over(state: Message) -> Message:
    return {"type": "game-over", "gameState": state}


def game_over_announce(
    game_id: str,
    game_name: str,
    winner: Optional[str],
    winner_name: Optional[str],
    players: Dict[str, Identity],
) -> Message:
    return {
        "type": "game-over-announce",
        "gameId": game_id,
        "gameName": game_name,
        "winner": winner,
        "winnerName": winner_name,
        "players": {symbol: p.to_wire() for symbol, p in players.items()},
    }


def forfeit_notify(game_id: str, forfeited_by: Identity) -> Message:
    return {
        "type": "game-forfeit-notify",
        "gameId": game_id,
        "forfeitedByName": forfeited_by.username,
        "forfeitedBy": forfeited_by.user_id,
    }


def pending_notifications(notifications: Sequence[Message]) -> Message:
    return {"type": "pending-notifications", "notifications": list(notifications)}


def game_error(error: str, code: str) -> Message:
    return {"type": "game-error", "error": error, "code": code}


def chat_message(message: Message) -> Message:
    return {"type": "chat-message", "message": message}


def previous_messages(messages: Sequence[Message]) -> Message:
    return {"type": "previous-messages", "messages": list(messages)}


def system_message(text: str) -> Message:
    return {"type": "system-message", "text": text}


def typing(kind: str, username: str) -> Message:
    return {"type": kind, "username": username}
