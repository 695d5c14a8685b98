"""Per-user queue of events for users who were offline when they happened.

Entries are handed over once, on the next connect, and the queue is cleared at
that point. If the client drops before receiving them they are gone.
"""

from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .sessions import UserId


class NotificationKind(str, Enum):
    YOUR_TURN = "your-turn"
    CHALLENGE_RECEIVED = "challenge-received"
    CHALLENGE_EXPIRED = "challenge-expired"
    FORFEITED = "forfeited"
    GAME_OVER = "game-over"


@dataclass
class Notification:
    user_id: UserId
    kind: NotificationKind
    payload: Dict[str, Any] = field(default_factory=dict)
    notification_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    read: bool = False
    created_at: float = field(default_factory=time.time)

    def to_wire(self) -> Dict[str, Any]:
        return {
            **self.payload,
            "id": self.notification_id,
            "kind": self.kind.value,
            "read": self.read,
            "timestamp": self.created_at,
        }


class NotificationQueue:
    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit
        self._queues: Dict[UserId, Deque[Notification]] = {}

    def enqueue(
        self, user_id: UserId, kind: NotificationKind, **payload: Any
    ) -> Notification:
        notification = Notification(user_id=user_id, kind=kind, payload=payload)
        queue = self._queues.setdefault(user_id, deque(maxlen=self.limit))
        queue.append(notification)
        return notification

    def pending(self, user_id: UserId) -> List[Notification]:
        return list(self._queues.get(user_id, ()))

    def drain(self, user_id: UserId) -> List[Notification]:
        return list(self._queues.pop(user_id, ()))

    def mark_read(self, user_id: UserId) -> int:
        """Acknowledge (and discard) whatever is still queued for ``user_id``."""

        queue = self._queues.pop(user_id, ())
        for notification in queue:
            notification.read = True
        return len(queue)

    def __len__(self) -> int:
        return sum(len(q) for q in self._queues.values())
