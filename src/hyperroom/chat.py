"""Chat history collaborator.

The room only needs two calls from whatever stores chat lines; a database
backed implementation can be dropped in as long as it follows ``MessageStore``.
"""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Protocol

from .sessions import Identity, UserId


@dataclass(frozen=True)
class ChatMessage:
    message_id: int
    user_id: UserId
    username: str
    text: str
    created_at: float
    profile_image_url: Optional[str] = None

    def to_wire(self) -> Dict[str, object]:
        return {
            "id": self.message_id,
            "userId": self.user_id,
            "username": self.username,
            "text": self.text,
            "timestamp": self.created_at,
            "profile_image_url": self.profile_image_url,
        }


class MessageStore(Protocol):
    async def save(self, identity: Identity, text: str, created_at: float) -> ChatMessage:
        """Persist a chat line and return it with its assigned id."""
        ...

    async def recent(self, limit: int) -> List[ChatMessage]:
        """The newest ``limit`` lines, oldest first."""
        ...


class InMemoryMessageStore:
    """Keeps the last ``capacity`` lines in process memory."""

    def __init__(self, capacity: int = 100) -> None:
        self._messages: Deque[ChatMessage] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    async def save(self, identity: Identity, text: str, created_at: float) -> ChatMessage:
        message = ChatMessage(
            message_id=next(self._ids),
            user_id=identity.user_id,
            username=identity.username,
            text=text,
            created_at=created_at,
            profile_image_url=identity.profile_image_url,
        )
        self._messages.append(message)
        return message

    async def recent(self, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        return list(self._messages)[-limit:]
