import pytest

from arena.services.games.board import (
    DRAW,
    LINES,
    ONGOING,
    WIN,
    empty_cells,
    evaluate,
    filled_count,
    new_board,
    other_mark,
    winning_cell,
)


def board_from(text):
    return [None if ch == '.' else ch for ch in text]


def test_new_board_is_empty():
    board = new_board()
    assert board == [None] * 9
    assert empty_cells(board) == list(range(9))
    assert filled_count(board) == 0


@pytest.mark.parametrize('line', LINES)
def test_every_line_wins(line):
    board = new_board()
    for cell in line:
        board[cell] = 'O'
    result = evaluate(board)
    assert result.state == WIN
    assert result.mark == 'O'
    assert result.line == line
    assert result.is_terminal


def test_full_board_without_line_is_draw():
    result = evaluate(board_from('XOXXOOOXX'))
    assert result.state == DRAW
    assert result.mark is None
    assert result.is_terminal


def test_win_on_full_board_beats_draw():
    result = evaluate(board_from('XXXOOXXOO'))
    assert result.state == WIN
    assert result.line == (0, 1, 2)


def test_partial_board_is_ongoing():
    result = evaluate(board_from('XO..X...O'))
    assert result.state == ONGOING
    assert not result.is_terminal


def test_evaluate_accepts_tuples():
    assert evaluate(tuple(board_from('X.O.X.O.X'))).state == WIN


def test_winning_cell():
    board = board_from('XX.O.O...')
    assert winning_cell(board, 'X') == 2
    assert winning_cell(board, 'O') == 4
    assert winning_cell(new_board(), 'X') is None


def test_winning_cell_ignores_blocked_lines():
    assert winning_cell(board_from('XXO......'), 'X') is None


def test_other_mark():
    assert other_mark('X') == 'O'
    assert other_mark('O') == 'X'


def test_counts():
    board = board_from('X.O.X....')
    assert filled_count(board) == 3
    assert empty_cells(board) == [1, 3, 5, 6, 7, 8]
