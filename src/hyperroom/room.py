"""The room actor: one mailbox, one consumer, all room state behind it.

Connections, inbound frames, timers and finished background work all become
commands on a single ``asyncio.Queue``. Commands are handled one at a time in
arrival order, so the registry, challenges and matches are never touched
concurrently and two racing moves on a match resolve in the order received.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Optional, Set

from pydantic import ValidationError

from . import messages
from .broadcast import BroadcastRouter
from .challenges import ChallengeManager
from .chat import ChatMessage, InMemoryMessageStore, MessageStore
from .config import Settings
from .errors import GameError, InvalidMessage
from .matches import MatchCoordinator
from .messages import (
    AcceptCommand,
    CancelCommand,
    ChallengeCommand,
    ChatCommand,
    DeclineCommand,
    ForfeitCommand,
    MoveCommand,
    NotificationsReadCommand,
    TypingCommand,
    parse_inbound,
)
from .notifications import NotificationQueue
from .sessions import Connection, Identity, Session, SessionRegistry
from .timers import LoopScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


# ---------- Mailbox commands ----------


@dataclass(frozen=True)
class Connect:
    session: Session


@dataclass(frozen=True)
class Disconnect:
    session: Session


@dataclass(frozen=True)
class Inbound:
    session: Session
    payload: Any


@dataclass(frozen=True)
class TimerFired:
    callback: Callable[[], None]


@dataclass(frozen=True)
class Deliver:
    session: Session
    message: messages.Message


@dataclass(frozen=True)
class ChatStored:
    message: ChatMessage


Command = Any


class _MailboxScheduler:
    """Turns timer expiry into a mailbox command instead of a direct call."""

    def __init__(self, inner: Scheduler, submit: Callable[[Command], None]) -> None:
        self._inner = inner
        self._submit = submit

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._inner.call_later(delay, lambda: self._submit(TimerFired(callback)))


# ---------- Room ----------


class Room:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[MessageStore] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store: MessageStore = store or InMemoryMessageStore(self.settings.chat_history)
        self._mailbox: "asyncio.Queue[Command]" = asyncio.Queue()
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._chat_tails: Dict[str, "asyncio.Task[Any]"] = {}
        self._runner: Optional["asyncio.Task[None]"] = None

        timers = _MailboxScheduler(scheduler or LoopScheduler(), self.submit)
        self.registry = SessionRegistry()
        self.router = BroadcastRouter(self.registry)
        self.notifications = NotificationQueue(self.settings.notification_limit)
        self.matches = MatchCoordinator(
            self.router,
            self.notifications,
            timers,
            max_depth=self.settings.max_depth,
            retention=self.settings.game_retention,
        )
        self.challenges = ChallengeManager(
            self.router,
            self.notifications,
            self.matches,
            timers,
            max_depth=self.settings.max_depth,
            ttl=self.settings.challenge_ttl,
        )
        self._handlers: Dict[type, Callable[[Session, Any], None]] = {
            ChallengeCommand: self._on_challenge,
            AcceptCommand: self._on_accept,
            DeclineCommand: self._on_decline,
            CancelCommand: self._on_cancel,
            MoveCommand: self._on_move,
            ForfeitCommand: self._on_forfeit,
            NotificationsReadCommand: self._on_notifications_read,
            ChatCommand: self._on_chat,
            TypingCommand: self._on_typing,
        }

    # ---- public API ----

    def connect(self, identity: Identity, connection: Connection) -> Session:
        """Queue registration of a new connection and return its session."""

        session = Session(identity=identity, connection=connection)
        self.submit(Connect(session))
        return session

    def disconnect(self, session: Session) -> None:
        self.submit(Disconnect(session))

    def receive(self, session: Session, payload: Any) -> None:
        self.submit(Inbound(session, payload))

    def submit(self, command: Command) -> None:
        self._mailbox.put_nowait(command)

    def pump(self) -> int:
        """Handle everything already queued without waiting; returns the count."""

        handled = 0
        while not self._mailbox.empty():
            self._process(self._mailbox.get_nowait())
            handled += 1
        return handled

    async def run(self) -> None:
        while True:
            command = await self._mailbox.get()
            self._process(command)

    async def settle(self) -> None:
        """Process commands and background work until both are idle."""

        while True:
            self.pump()
            pending = [t for t in self._tasks if not t.done()]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                continue
            await asyncio.sleep(0)
            if self._mailbox.empty():
                return

    def start(self) -> None:
        if self._runner is None:
            self._runner = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass
        for task in list(self._tasks):
            task.cancel()

    # ---- dispatch ----

    def _process(self, command: Command) -> None:
        try:
            if isinstance(command, Inbound):
                self._on_inbound(command.session, command.payload)
            elif isinstance(command, Connect):
                self._on_connect(command.session)
            elif isinstance(command, Disconnect):
                self._on_disconnect(command.session)
            elif isinstance(command, TimerFired):
                command.callback()
            elif isinstance(command, Deliver):
                if command.session in self.registry:
                    self.router.to_session(command.session, command.message)
            elif isinstance(command, ChatStored):
                self.router.to_all(messages.chat_message(command.message.to_wire()))
            else:
                raise TypeError(f"Unknown room command {command!r}")
        except Exception:
            logger.exception("Error while handling %s", type(command).__name__)

    def _on_inbound(self, session: Session, payload: Any) -> None:
        if session not in self.registry:
            logger.warning("Dropping message from unregistered session %s", session.session_id)
            return
        try:
            command = parse_inbound(payload)
        except ValidationError as exc:
            logger.warning(
                "Malformed message from %s: %s", session.identity.username, exc.errors()
            )
            self.router.to_session(
                session, messages.game_error(InvalidMessage.default_message, InvalidMessage.code)
            )
            return
        try:
            self._handlers[type(command)](session, command)
        except GameError as exc:
            logger.debug(
                "Rejected %s from %s: %s", command.type, session.identity.username, exc
            )
            self.router.to_session(session, messages.game_error(exc.message, exc.code))

    def _on_connect(self, session: Session) -> None:
        self.registry.add(session)
        user_id = session.user_id
        pending = self.notifications.drain(user_id)
        self.router.to_session(
            session, messages.pending_notifications([n.to_wire() for n in pending])
        )
        self.router.to_session(
            session, messages.outgoing_challenges(self.challenges.outgoing_for(user_id))
        )
        self.router.to_session(
            session, messages.incoming_challenges(self.challenges.incoming_for(user_id))
        )
        for match in self.matches.active_for(user_id):
            symbol = match.symbol_for(user_id)
            self.router.to_session(session, messages.game_started(match.to_wire(), symbol))
        self.router.to_others(
            messages.system_message(f"{session.identity.username} joined the chat"), session
        )
        self._spawn(self._load_history(session))

    def _on_disconnect(self, session: Session) -> None:
        self._chat_tails.pop(session.session_id, None)
        if self.registry.unregister(session):
            self.router.to_all(
                messages.system_message(f"{session.identity.username} left the chat")
            )

    # ---- game commands ----

    def _on_challenge(self, session: Session, command: ChallengeCommand) -> None:
        self.challenges.create(
            session, command.target_user_id, command.size, command.game_name, command.game
        )

    def _on_accept(self, session: Session, command: AcceptCommand) -> None:
        self.challenges.accept(session, command.challenge_id)

    def _on_decline(self, session: Session, command: DeclineCommand) -> None:
        self.challenges.decline(session, command.challenge_id)

    def _on_cancel(self, session: Session, command: CancelCommand) -> None:
        self.challenges.cancel(session, command.challenge_id)

    def _on_move(self, session: Session, command: MoveCommand) -> None:
        self.matches.move(session, command.game_id, command.board_path, command.cell_index)

    def _on_forfeit(self, session: Session, command: ForfeitCommand) -> None:
        self.matches.forfeit(session, command.game_id)

    def _on_notifications_read(self, session: Session, command: NotificationsReadCommand) -> None:
        self.notifications.mark_read(session.user_id)

    # ---- chat ----

    def _on_chat(self, session: Session, command: ChatCommand) -> None:
        text = command.text[: self.settings.chat_max_length]
        previous = self._chat_tails.get(session.session_id)
        task = self._spawn(self._store_chat(session.identity, text, previous))
        self._chat_tails[session.session_id] = task

    def _on_typing(self, session: Session, command: TypingCommand) -> None:
        self.router.to_others(
            messages.typing(command.type, session.identity.username), session
        )

    async def _store_chat(
        self, identity: Identity, text: str, previous: Optional["asyncio.Task[Any]"]
    ) -> None:
        # Lines from one connection are stored in the order they were sent.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        message = await self.store.save(identity, text, time.time())
        self.submit(ChatStored(message))

    async def _load_history(self, session: Session) -> None:
        history = await self.store.recent(self.settings.chat_history)
        self.submit(
            Deliver(session, messages.previous_messages([m.to_wire() for m in history]))
        )

    # ---- background work ----

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background room task failed", exc_info=task.exception())
