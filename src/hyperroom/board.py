"""Core rules for nested tic-tac-toe boards of arbitrary depth.

A depth-0 board is a plain 3x3 grid. A board of depth ``d`` holds nine boards
of depth ``d - 1``. Boards are addressed by a *path*: the child indices walked
from the root, so the root is ``()`` and every playable 3x3 grid sits at a path
whose length equals the total depth.

Which (sub-)boards are decided lives in a separate ``WonMap`` keyed by path.
Decided boards are never back-filled with marks; the map is the authority.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import BoardSettled, CellOccupied, IllegalBoard, InvalidDepth

Symbol = str  # "X" or "O"
BoardPath = Tuple[int, ...]
WonMap = Dict[BoardPath, str]

X: Symbol = "X"
O: Symbol = "O"
DRAW = "draw"
CELLS = 9
MAX_DEPTH = 4

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def other(symbol: Symbol) -> Symbol:
    return O if symbol == X else X


# ---------- Board values ----------


@dataclass
class Leaf:
    """A playable 3x3 grid: ``None`` for empty, otherwise the owning symbol."""

    cells: List[Optional[Symbol]] = field(default_factory=lambda: [None] * CELLS)

    def is_full(self) -> bool:
        return all(c is not None for c in self.cells)


@dataclass
class Branch:
    """Nine sub-boards of equal depth laid out as a 3x3 grid."""

    children: List["Board"]

    def __post_init__(self) -> None:
        if len(self.children) != CELLS:
            raise ValueError(f"A branch needs {CELLS} children")
        if len({board_depth(child) for child in self.children}) != 1:
            raise ValueError("All children of a branch must share one depth")


Board = Union[Leaf, Branch]


def create_empty(depth: int, max_depth: int = MAX_DEPTH) -> Board:
    """Return an empty board with ``9 ** (depth + 1)`` leaf cells."""

    if depth < 0 or depth > max_depth:
        raise InvalidDepth(f"Board size must be between 0 and {max_depth}, got {depth}")
    return _build(depth)


def _build(depth: int) -> Board:
    if depth == 0:
        return Leaf()
    return Branch([_build(depth - 1) for _ in range(CELLS)])


def board_depth(board: Board) -> int:
    depth = 0
    while isinstance(board, Branch):
        board = board.children[0]
        depth += 1
    return depth


def leaf_count(board: Board) -> int:
    if isinstance(board, Leaf):
        return len(board.cells)
    return sum(leaf_count(child) for child in board.children)


def iter_leaves(board: Board, path: BoardPath = ()) -> Iterator[Tuple[BoardPath, Leaf]]:
    if isinstance(board, Leaf):
        yield path, board
        return
    for index, child in enumerate(board.children):
        yield from iter_leaves(child, path + (index,))


def subboard(board: Board, path: Sequence[int]) -> Board:
    node = board
    for index in path:
        if not 0 <= index < CELLS:
            raise IllegalBoard(f"Board index {index} is out of range")
        if isinstance(node, Leaf):
            raise IllegalBoard("Board path is deeper than the board")
        node = node.children[index]
    return node


# ---------- Moves and outcomes ----------


def apply_move(board: Board, path: BoardPath, cell_index: int, symbol: Symbol) -> None:
    """Mark ``cell_index`` of the 3x3 board at ``path``.

    Turn order, the active-board rule and decided boards are the caller's
    business; this only guards the addressing and cell occupancy. Nothing is
    written unless every check passes.
    """

    if not 0 <= cell_index < CELLS:
        raise IllegalBoard(f"Cell index {cell_index} is out of range")
    leaf = subboard(board, path)
    if not isinstance(leaf, Leaf):
        raise IllegalBoard("Board path must address a playable 3x3 board")
    if leaf.cells[cell_index] is not None:
        raise CellOccupied()
    leaf.cells[cell_index] = symbol


def check_outcome(cells: Sequence[Optional[str]]) -> Optional[str]:
    """Winning symbol, ``"draw"`` when all nine slots are settled, else ``None``."""

    for a, b, c in WINNING_LINES:
        v = cells[a]
        if v is not None and v != DRAW and v == cells[b] == cells[c]:
            return v
    if all(c is not None for c in cells):
        return DRAW
    return None


def propagate_wins(board: Board, won: WonMap, leaf_path: BoardPath) -> Optional[str]:
    """Record the outcome of the leaf at ``leaf_path`` and carry it upward.

    Each ancestor is re-evaluated from its children's entries in ``won``.
    The walk stops at the first ancestor still in progress. Returns the
    outcome of the root when it resolves, else ``None``.
    """

    leaf = subboard(board, leaf_path)
    if not isinstance(leaf, Leaf):
        raise IllegalBoard("Board path must address a playable 3x3 board")
    outcome = check_outcome(leaf.cells)
    if outcome is None:
        return None
    won[leaf_path] = outcome

    path = leaf_path
    while path:
        path = path[:-1]
        virtual = [won.get(path + (i,)) for i in range(CELLS)]
        outcome = check_outcome(virtual)
        if outcome is None:
            return None
        won[path] = outcome
    return outcome


def is_settled(path: BoardPath, won: WonMap) -> bool:
    """True when the board at ``path`` or any board containing it is decided."""

    return any(path[:i] in won for i in range(len(path) + 1))


def ensure_playable(path: BoardPath, won: WonMap) -> None:
    if is_settled(path, won):
        raise BoardSettled()


def next_active_board(
    played_path: BoardPath, cell_index: int, won: WonMap
) -> Optional[BoardPath]:
    """The board the opponent is sent to, or ``None`` for a free move.

    Playing cell ``i`` sends the opponent to sibling ``i`` of the board just
    played. A decided target (or a decided ancestor of it) frees the move.
    """

    if not played_path:
        return None
    target = played_path[:-1] + (cell_index,)
    return None if is_settled(target, won) else target


# ---------- Wire helpers ----------


def path_key(path: Sequence[int]) -> str:
    return "-".join(str(i) for i in path)


def board_to_wire(board: Board) -> list:
    if isinstance(board, Leaf):
        return list(board.cells)
    return [board_to_wire(child) for child in board.children]


def won_to_wire(won: WonMap) -> Dict[str, str]:
    return {path_key(path): outcome for path, outcome in sorted(won.items())}
