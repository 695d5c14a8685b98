"""Shared fakes: a recording connection, a hand-cranked scheduler and a wired-up lobby."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List

import pytest

from hyperroom.broadcast import BroadcastRouter
from hyperroom.challenges import ChallengeManager
from hyperroom.matches import MatchCoordinator
from hyperroom.notifications import NotificationQueue
from hyperroom.sessions import ConnectionClosed, Identity, Session, SessionRegistry


class FakeConnection:
    def __init__(self) -> None:
        self.sent: List[Dict[str, object]] = []
        self.closed = False

    def send(self, message: Dict[str, object]) -> None:
        if self.closed:
            raise ConnectionClosed()
        self.sent.append(message)

    def of_type(self, kind: str) -> List[Dict[str, object]]:
        return [m for m in self.sent if m["type"] == kind]

    def last(self, kind: str) -> Dict[str, object]:
        matching = self.of_type(kind)
        assert matching, f"no {kind!r} message among {[m['type'] for m in self.sent]}"
        return matching[-1]

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def clear(self) -> None:
        self.sent.clear()


@dataclass
class ManualTimer:
    when: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    now: float = 0.0
    timers: List[ManualTimer] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [t for t in self.pending() if t.when <= self.now]
        for timer in due:
            self.timers.remove(timer)
            timer.callback()


@dataclass
class Lobby:
    registry: SessionRegistry
    router: BroadcastRouter
    notifications: NotificationQueue
    scheduler: ManualScheduler
    matches: MatchCoordinator
    challenges: ChallengeManager

    def join(self, user_id: object, username: str) -> Session:
        return self.registry.register(Identity(user_id, username), FakeConnection())


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def lobby(scheduler: ManualScheduler) -> Lobby:
    registry = SessionRegistry()
    router = BroadcastRouter(registry)
    notifications = NotificationQueue()
    matches = MatchCoordinator(router, notifications, scheduler, max_depth=4, retention=10.0)
    challenges = ChallengeManager(
        router, notifications, matches, scheduler, max_depth=4, ttl=600.0
    )
    return Lobby(registry, router, notifications, scheduler, matches, challenges)
