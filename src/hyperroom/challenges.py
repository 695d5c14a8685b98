"""Match invitations: open or targeted, until accepted, declined, cancelled or expired."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import messages
from .broadcast import BroadcastRouter
from .errors import InvalidDepth, NotChallenger, NotFound, SelfAccept, SelfChallenge
from .matches import Match, MatchCoordinator
from .notifications import NotificationKind, NotificationQueue
from .sessions import Identity, Session, UserId, normalize_user_id
from .timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_GAME = "nested-ttt"


@dataclass
class Challenge:
    challenger: Identity
    depth: int
    game_name: str
    game: str = DEFAULT_GAME
    # None makes the challenge open to anyone except the challenger.
    target_user_id: Optional[UserId] = None
    target_name: Optional[str] = None
    challenge_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    expires_at: float = 0.0
    timer: Optional[TimerHandle] = field(default=None, repr=False, compare=False)

    @property
    def is_open(self) -> bool:
        return self.target_user_id is None

    def to_wire(self) -> Dict[str, object]:
        return {
            "challengeId": self.challenge_id,
            "challengerId": self.challenger.user_id,
            "challengerName": self.challenger.username,
            "targetUserId": self.target_user_id,
            "targetName": self.target_name,
            "game": self.game,
            "gameName": self.game_name,
            "size": self.depth,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }


class ChallengeManager:
    def __init__(
        self,
        router: BroadcastRouter,
        notifications: NotificationQueue,
        matches: MatchCoordinator,
        scheduler: Scheduler,
        max_depth: int,
        ttl: float,
    ) -> None:
        self.router = router
        self.notifications = notifications
        self.matches = matches
        self.scheduler = scheduler
        self.max_depth = max_depth
        self.ttl = ttl
        self._challenges: Dict[str, Challenge] = {}

    def get(self, challenge_id: str) -> Optional[Challenge]:
        return self._challenges.get(challenge_id)

    def __len__(self) -> int:
        return len(self._challenges)

    def outgoing_for(self, user_id: UserId) -> List[Dict[str, object]]:
        return [
            c.to_wire() for c in self._challenges.values() if c.challenger.user_id == user_id
        ]

    def incoming_for(self, user_id: UserId) -> List[Dict[str, object]]:
        return [
            c.to_wire()
            for c in self._challenges.values()
            if c.challenger.user_id != user_id
            and (c.is_open or c.target_user_id == user_id)
        ]

    # ---- transitions ----

    def create(
        self,
        session: Session,
        target_user_id: Optional[UserId],
        depth: int,
        game_name: Optional[str] = None,
        game: str = DEFAULT_GAME,
    ) -> Challenge:
        if depth < 0 or depth > self.max_depth:
            raise InvalidDepth(f"Board size must be between 0 and {self.max_depth}, got {depth}")
        if target_user_id is not None:
            target_user_id = normalize_user_id(target_user_id)
            if target_user_id == session.user_id:
                raise SelfChallenge()

        target = self.router.registry.find(target_user_id) if target_user_id is not None else None
        challenge = Challenge(
            challenger=session.identity,
            depth=depth,
            game_name=game_name or f"Nested TTT (Size {depth})",
            game=game,
            target_user_id=target_user_id,
            target_name=target.identity.username if target else None,
        )
        challenge.expires_at = challenge.created_at + self.ttl
        cid = challenge.challenge_id
        challenge.timer = self.scheduler.call_later(self.ttl, lambda: self.expire(cid))
        self._challenges[cid] = challenge
        logger.info(
            "%s challenged %s (%s)",
            session.identity.username,
            challenge.target_name or target_user_id or "anyone",
            cid,
        )

        announcement = messages.game_challenge(challenge.to_wire())
        if challenge.is_open:
            self.router.to_all_except(announcement, session.user_id)
        elif not self.router.to_user(target_user_id, announcement):
            self.notifications.enqueue(
                target_user_id,
                NotificationKind.CHALLENGE_RECEIVED,
                challengeId=cid,
                challengerName=session.identity.username,
                gameName=challenge.game_name,
                size=depth,
            )
        self._publish_outgoing(challenge.challenger)
        return challenge

    def accept(self, session: Session, challenge_id: str) -> Match:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFound("Challenge not found")
        if challenge.challenger.user_id == session.user_id:
            raise SelfAccept()
        if not challenge.is_open and challenge.target_user_id != session.user_id:
            raise NotFound("Challenge not found")

        match = self.matches.create(
            challenge.challenger, session.identity, challenge.depth, challenge.game_name
        )
        self._discard(challenge)
        logger.info("%s accepted challenge %s", session.identity.username, challenge_id)
        self.router.to_all(
            messages.challenge_accepted(
                challenge_id, match.match_id, challenge.challenger, session.identity
            )
        )
        self.matches.announce_start(match)
        return match

    def decline(self, session: Session, challenge_id: str) -> Challenge:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFound("Challenge not found")
        # Only the target may turn down a private challenge; the challenger cancels.
        if not challenge.is_open and challenge.target_user_id != session.user_id:
            raise NotFound("Challenge not found")
        self._discard(challenge)
        logger.info("%s declined challenge %s", session.identity.username, challenge_id)
        self.router.to_all(messages.challenge_removed(challenge_id, "declined"))
        return challenge

    def cancel(self, session: Session, challenge_id: str) -> Challenge:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFound("Challenge not found")
        if challenge.challenger.user_id != session.user_id:
            raise NotChallenger()
        self._discard(challenge)
        logger.info("%s cancelled challenge %s", session.identity.username, challenge_id)
        self.router.to_all(messages.challenge_removed(challenge_id, "cancelled"))
        return challenge

    def expire(self, challenge_id: str) -> None:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            return
        challenge.timer = None
        self._discard(challenge)
        logger.info("Challenge %s expired", challenge_id)
        self.router.to_all(messages.challenge_removed(challenge_id, "expired"))
        challenger = challenge.challenger
        if not self.router.to_user(challenger.user_id, messages.challenge_expired(challenge_id)):
            self.notifications.enqueue(
                challenger.user_id,
                NotificationKind.CHALLENGE_EXPIRED,
                challengeId=challenge_id,
                gameName=challenge.game_name,
                targetName=challenge.target_name,
            )

    # ---- helpers ----

    def _discard(self, challenge: Challenge) -> None:
        del self._challenges[challenge.challenge_id]
        if challenge.timer is not None:
            challenge.timer.cancel()
            challenge.timer = None
        self._publish_outgoing(challenge.challenger)

    def _publish_outgoing(self, challenger: Identity) -> None:
        self.router.to_user(
            challenger.user_id,
            messages.outgoing_challenges(self.outgoing_for(challenger.user_id)),
        )
