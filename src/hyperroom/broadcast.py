"""Fan-out of outbound protocol messages to live sessions."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from . import messages
from .messages import Message
from .sessions import ConnectionClosed, Session, SessionRegistry, UserId

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """The only component that writes to connections.

    Publishes a fresh ``online-users`` list whenever the registry changes.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry
        registry.subscribe(self.publish_online_users)

    def to_session(self, session: Session, message: Message) -> bool:
        try:
            session.connection.send(message)
        except ConnectionClosed:
            logger.debug(
                "Dropped %s for closed session %s", message.get("type"), session.session_id
            )
            return False
        return True

    def to_user(self, user_id: UserId, message: Message) -> bool:
        """Send to every session of ``user_id``; False when none took it."""

        return self._send(self.registry.sessions_for(user_id), message) > 0

    def to_all(self, message: Message) -> int:
        return self._send(self.registry.sessions(), message)

    def to_all_except(self, message: Message, user_id: Optional[UserId]) -> int:
        """Send to everyone but the sessions belonging to ``user_id``."""

        targets = [s for s in self.registry.sessions() if s.user_id != user_id]
        return self._send(targets, message)

    def to_others(self, message: Message, session: Session) -> int:
        """Send to every session except ``session``, including the user's other tabs."""

        targets = [s for s in self.registry.sessions() if s is not session]
        return self._send(targets, message)

    def publish_online_users(self) -> None:
        self.to_all(messages.online_users(self.registry.list_online()))

    def _send(self, sessions: Iterable[Session], message: Message) -> int:
        delivered = 0
        for session in sessions:
            if self.to_session(session, message):
                delivered += 1
        return delivered
