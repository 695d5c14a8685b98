"""Live connections and the identities behind them."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)

UserId = Union[int, str]


def normalize_user_id(raw: UserId) -> UserId:
    """Digit-only ids are numeric; anything else stays an opaque string."""

    if isinstance(raw, str):
        raw = raw.strip()
        return int(raw) if raw.isdigit() else raw
    return raw


@dataclass(frozen=True)
class Identity:
    """A verified user as handed over by the auth collaborator."""

    user_id: UserId
    username: str
    profile_image_url: Optional[str] = None

    def to_wire(self) -> Dict[str, object]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "profileImageUrl": self.profile_image_url,
        }


class ConnectionClosed(Exception):
    """Raised by a connection that can no longer deliver messages."""


class Connection(Protocol):
    def send(self, message: Dict[str, object]) -> None:
        """Queue ``message`` for delivery without blocking."""
        ...


@dataclass(eq=False)
class Session:
    identity: Identity
    connection: Connection = field(repr=False)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: float = field(default_factory=time.time)

    @property
    def user_id(self) -> UserId:
        return self.identity.user_id


class SessionRegistry:
    """Owns the set of live sessions; several tabs per identity are allowed."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def register(self, identity: Identity, connection: Connection) -> Session:
        return self.add(Session(identity=identity, connection=connection))

    def add(self, session: Session) -> Session:
        if any(s.connection is session.connection for s in self._sessions.values()):
            raise ValueError("Connection is already registered")
        self._sessions[session.session_id] = session
        logger.info(
            "%s connected (session %s)", session.identity.username, session.session_id
        )
        self._changed()
        return session

    def unregister(self, session: Session) -> bool:
        if self._sessions.pop(session.session_id, None) is None:
            return False
        logger.info(
            "%s disconnected (session %s)", session.identity.username, session.session_id
        )
        self._changed()
        return True

    def __contains__(self, session: object) -> bool:
        return isinstance(session, Session) and session.session_id in self._sessions

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def sessions_for(self, user_id: UserId) -> List[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    def find(self, user_id: UserId) -> Optional[Session]:
        for session in self._sessions.values():
            if session.user_id == user_id:
                return session
        return None

    def is_online(self, user_id: UserId) -> bool:
        return self.find(user_id) is not None

    def list_online(self) -> List[Identity]:
        seen: Dict[UserId, Identity] = {}
        for session in self._sessions.values():
            seen.setdefault(session.user_id, session.identity)
        return list(seen.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()
