"""Unit tests for the nested board engine."""

import copy

import pytest

from hyperroom.board import (
    DRAW,
    Branch,
    Leaf,
    apply_move,
    board_depth,
    check_outcome,
    create_empty,
    ensure_playable,
    is_settled,
    iter_leaves,
    leaf_count,
    next_active_board,
    path_key,
    propagate_wins,
    subboard,
    won_to_wire,
)
from hyperroom.errors import BoardSettled, CellOccupied, IllegalBoard, InvalidDepth


@pytest.mark.parametrize("depth", [0, 1, 2, 3, 4])
def test_empty_board_has_all_cells_empty(depth):
    board = create_empty(depth)
    assert board_depth(board) == depth
    assert leaf_count(board) == 9 ** (depth + 1)
    assert all(cell is None for _, leaf in iter_leaves(board) for cell in leaf.cells)


def test_depth_outside_limit_rejected():
    with pytest.raises(InvalidDepth):
        create_empty(5)
    with pytest.raises(InvalidDepth):
        create_empty(-1)
    assert board_depth(create_empty(5, max_depth=5)) == 5


def test_branch_requires_nine_equal_children():
    with pytest.raises(ValueError):
        Branch([Leaf() for _ in range(8)])
    with pytest.raises(ValueError):
        Branch([Leaf() for _ in range(8)] + [create_empty(1)])


@pytest.mark.parametrize("depth", [0, 1, 2])
def test_occupied_cell_rejected_and_board_unchanged(depth):
    board = create_empty(depth)
    path = (4,) * depth
    apply_move(board, path, 7, "X")
    before = copy.deepcopy(board)

    with pytest.raises(CellOccupied):
        apply_move(board, path, 7, "O")

    assert board == before
    assert subboard(board, path).cells[7] == "X"


def test_move_must_address_a_leaf():
    board = create_empty(2)
    with pytest.raises(IllegalBoard):
        apply_move(board, (1,), 0, "X")
    with pytest.raises(IllegalBoard):
        apply_move(board, (1, 2, 3), 0, "X")
    with pytest.raises(IllegalBoard):
        apply_move(board, (9, 0), 0, "X")
    with pytest.raises(IllegalBoard):
        apply_move(board, (0, 0), 9, "X")
    assert board == create_empty(2)


def test_check_outcome_lines_and_draw():
    assert check_outcome(["X", "X", "X", None, None, None, None, None, None]) == "X"
    assert check_outcome(["O", None, None, None, "O", None, None, None, "O"]) == "O"
    assert check_outcome([None, None, "X", None, None, "X", None, None, "X"]) == "X"
    assert check_outcome([None] * 9) is None
    full = ["X", "O", "X", "X", "O", "O", "O", "X", "X"]
    assert check_outcome(full) == DRAW


def test_draw_slots_never_form_a_line():
    cells = [DRAW, DRAW, DRAW, None, None, None, None, None, None]
    assert check_outcome(cells) is None


def test_leaf_win_recorded_without_parent_win():
    board = create_empty(1)
    won = {}
    for cell in (0, 1, 2):
        apply_move(board, (3,), cell, "X")
    assert propagate_wins(board, won, (3,)) is None
    assert won == {(3,): "X"}


def test_unresolved_leaf_records_nothing():
    board = create_empty(1)
    won = {}
    apply_move(board, (0,), 4, "O")
    assert propagate_wins(board, won, (0,)) is None
    assert won == {}


def test_depth_zero_win_resolves_root():
    board = create_empty(0)
    won = {}
    for cell in (2, 4, 6):
        apply_move(board, (), cell, "O")
    assert propagate_wins(board, won, ()) == "O"
    assert won == {(): "O"}


def test_nested_wins_resolve_root():
    board = create_empty(1)
    won = {(0,): "X", (1,): "X"}
    for cell in (0, 4, 8):
        apply_move(board, (2,), cell, "X")
    assert propagate_wins(board, won, (2,)) == "X"
    assert won[()] == "X"


def test_propagation_stops_at_unresolved_level():
    board = create_empty(2)
    won = {(0, 0): "O", (0, 1): "O"}
    for cell in (3, 4, 5):
        apply_move(board, (0, 2), cell, "O")
    assert propagate_wins(board, won, (0, 2)) is None
    # (0,) is won but the root only has one decided child.
    assert won[(0,)] == "O"
    assert () not in won


def test_settled_children_without_line_make_a_draw():
    board = create_empty(1)
    won = {
        (0,): "X", (1,): "O", (2,): "X",
        (3,): "X", (4,): "O", (5,): "O",
        (6,): "O", (7,): "X",
    }
    for cell in (0, 1, 2):
        apply_move(board, (8,), cell, "X")
    assert propagate_wins(board, won, (8,)) == DRAW
    assert won[()] == DRAW


def test_settled_board_is_not_playable_even_with_empty_cells():
    won = {(4,): "X"}
    assert is_settled((4,), won)
    assert is_settled((4, 2), won)
    assert not is_settled((3, 2), won)
    with pytest.raises(BoardSettled):
        ensure_playable((4, 2), won)
    ensure_playable((3, 2), won)


def test_next_active_board_points_to_sibling():
    assert next_active_board((0, 3), 7, {}) == (0, 7)
    assert next_active_board((5,), 1, {}) == (1,)


def test_next_active_board_frees_when_target_settled():
    assert next_active_board((5,), 1, {(1,): "O"}) is None
    assert next_active_board((0, 3), 7, {(0, 7): DRAW}) is None
    assert next_active_board((0, 3), 7, {(0,): "X"}) is None


def test_depth_zero_is_always_unconstrained():
    assert next_active_board((), 4, {}) is None


def test_wire_helpers():
    assert path_key(()) == ""
    assert path_key((0, 4, 2)) == "0-4-2"
    assert won_to_wire({(1,): "X", (): DRAW}) == {"": DRAW, "1": "X"}
