"""In-progress nested tic-tac-toe matches between two connected users."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from . import messages
from .board import (
    DRAW,
    X,
    O,
    Board,
    BoardPath,
    Symbol,
    WonMap,
    apply_move,
    board_to_wire,
    create_empty,
    ensure_playable,
    next_active_board,
    other,
    propagate_wins,
    won_to_wire,
)
from .broadcast import BroadcastRouter
from .errors import GameOver, IllegalBoard, NotFound, NotParticipant, NotYourTurn
from .notifications import NotificationKind, NotificationQueue
from .sessions import Identity, Session, UserId
from .timers import Scheduler

logger = logging.getLogger(__name__)


class MatchStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    WON = "won"
    DRAWN = "drawn"
    FORFEITED = "forfeited"


@dataclass
class Match:
    players: Dict[Symbol, Identity]
    depth: int
    game_name: str
    board: Board
    match_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    won: WonMap = field(default_factory=dict)
    # None means the player to move may pick any undecided board.
    active_board: Optional[BoardPath] = None
    current_player: Symbol = X
    status: MatchStatus = MatchStatus.IN_PROGRESS
    winner: Optional[str] = None
    forfeited_by: Optional[Identity] = None
    move_log: List[Dict[str, object]] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def game_over(self) -> bool:
        return self.status is not MatchStatus.IN_PROGRESS

    def symbol_for(self, user_id: UserId) -> Optional[Symbol]:
        for symbol, player in self.players.items():
            if player.user_id == user_id:
                return symbol
        return None

    def winner_name(self) -> Optional[str]:
        if self.winner in (X, O):
            return self.players[self.winner].username
        return None

    def to_wire(self) -> Dict[str, object]:
        state: Dict[str, object] = {
            "gameId": self.match_id,
            "game": "nested-ttt",
            "gameName": self.game_name,
            "size": self.depth,
            "board": board_to_wire(self.board),
            "wonBoards": won_to_wire(self.won),
            "activeBoard": list(self.active_board) if self.active_board is not None else None,
            "currentPlayer": self.current_player,
            "players": {symbol: p.to_wire() for symbol, p in self.players.items()},
            "status": self.status.value,
            "gameOver": self.game_over,
            "winner": self.winner,
            "forfeitedBy": self.forfeited_by.username if self.forfeited_by else None,
            "moveLog": list(self.move_log),
        }
        if self.move_log:
            state["lastMove"] = self.move_log[-1]
        return state


class MatchCoordinator:
    """Sole owner of match state; validates and applies every move."""

    def __init__(
        self,
        router: BroadcastRouter,
        notifications: NotificationQueue,
        scheduler: Scheduler,
        max_depth: int,
        retention: float,
    ) -> None:
        self.router = router
        self.notifications = notifications
        self.scheduler = scheduler
        self.max_depth = max_depth
        self.retention = retention
        self._matches: Dict[str, Match] = {}

    # ---- lookups ----

    def get(self, match_id: str) -> Optional[Match]:
        return self._matches.get(match_id)

    def active_for(self, user_id: UserId) -> List[Match]:
        return [
            m
            for m in self._matches.values()
            if not m.game_over and m.symbol_for(user_id) is not None
        ]

    def __len__(self) -> int:
        return len(self._matches)

    # ---- lifecycle ----

    def create(self, challenger: Identity, opponent: Identity, depth: int, game_name: str) -> Match:
        """Register a new match; the challenger always moves first as X."""

        match = Match(
            players={X: challenger, O: opponent},
            depth=depth,
            game_name=game_name,
            board=create_empty(depth, self.max_depth),
        )
        self._matches[match.match_id] = match
        logger.info(
            "Game %s started: %s (X) vs %s (O), size %d",
            match.match_id,
            challenger.username,
            opponent.username,
            depth,
        )
        return match

    def announce_start(self, match: Match) -> None:
        state = match.to_wire()
        for symbol, player in match.players.items():
            self.router.to_user(player.user_id, messages.game_started(state, symbol))
        self._notify_turn(match)

    def move(
        self, session: Session, match_id: str, path: Sequence[int], cell_index: int
    ) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise NotFound("Game not found")
        if match.game_over:
            raise GameOver()
        symbol = match.symbol_for(session.user_id)
        if symbol is None:
            raise NotParticipant()
        if symbol != match.current_player:
            raise NotYourTurn()

        board_path = tuple(path)
        if len(board_path) != match.depth:
            raise IllegalBoard("Board path must address a playable 3x3 board")
        if match.active_board is not None and board_path != match.active_board:
            raise IllegalBoard()
        ensure_playable(board_path, match.won)
        apply_move(match.board, board_path, cell_index, symbol)

        match.move_log.append(
            {"player": symbol, "boardPath": list(board_path), "cellIndex": cell_index}
        )
        outcome = propagate_wins(match.board, match.won, board_path)
        if outcome is not None:
            self._finish(match, outcome)
            return match

        match.active_board = next_active_board(board_path, cell_index, match.won)
        match.current_player = other(symbol)
        update = messages.game_state_update(match.to_wire())
        for player in match.players.values():
            self.router.to_user(player.user_id, update)
        self._notify_turn(match)
        return match

    def forfeit(self, session: Session, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None or match.game_over:
            raise NotFound("Game not found")
        symbol = match.symbol_for(session.user_id)
        if symbol is None:
            raise NotParticipant()

        del self._matches[match_id]
        match.status = MatchStatus.FORFEITED
        match.winner = other(symbol)
        match.forfeited_by = session.identity
        match.active_board = None
        match.finished_at = time.time()
        logger.info("Game %s forfeited by %s", match_id, session.identity.username)

        self.router.to_all(messages.forfeit_notify(match_id, session.identity))
        opponent = match.players[other(symbol)]
        if not self.router.registry.is_online(opponent.user_id):
            self.notifications.enqueue(
                opponent.user_id,
                NotificationKind.FORFEITED,
                gameId=match_id,
                gameName=match.game_name,
                forfeitedByName=session.identity.username,
            )
        return match

    def cleanup(self, match_id: str) -> None:
        match = self._matches.get(match_id)
        if match is not None and match.game_over:
            del self._matches[match_id]
            logger.debug("Game %s released", match_id)

    # ---- helpers ----

    def _finish(self, match: Match, outcome: str) -> None:
        match.status = MatchStatus.DRAWN if outcome == DRAW else MatchStatus.WON
        match.winner = outcome
        match.active_board = None
        match.finished_at = time.time()
        logger.info("Game %s over: %s", match.match_id, outcome)

        state = match.to_wire()
        for player in match.players.values():
            if not self.router.to_user(player.user_id, messages.game_over(state)):
                self.notifications.enqueue(
                    player.user_id,
                    NotificationKind.GAME_OVER,
                    gameId=match.match_id,
                    gameName=match.game_name,
                    winner=match.winner,
                    winnerName=match.winner_name(),
                )
        self.router.to_all(
            messages.game_over_announce(
                match.match_id,
                match.game_name,
                match.winner,
                match.winner_name(),
                match.players,
            )
        )
        match_id = match.match_id
        self.scheduler.call_later(self.retention, lambda: self.cleanup(match_id))

    def _notify_turn(self, match: Match) -> None:
        mover = match.players[match.current_player]
        if self.router.registry.is_online(mover.user_id):
            return
        opponent = match.players[other(match.current_player)]
        self.notifications.enqueue(
            mover.user_id,
            NotificationKind.YOUR_TURN,
            gameId=match.match_id,
            gameName=match.game_name,
            opponentName=opponent.username,
        )
