"""3x3 board rules.

A board is a list of 9 cells, each ``None`` or one of ``MARKS``. Nothing in
here keeps state; the match and the opponent controller both lean on it.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

MARKS = ('X', 'O')

LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # cols
    (0, 4, 8), (2, 4, 6),             # diagonals
)

CENTER = 4
CORNERS = (0, 2, 6, 8)

ONGOING = 'ongoing'
WIN = 'win'
DRAW = 'draw'


@dataclass(frozen=True)
class Evaluation:
    state: str
    mark: Optional[str] = None
    line: Tuple[int, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.state != ONGOING


def new_board() -> List[Optional[str]]:
    return [None] * 9


def other_mark(mark: str) -> str:
    return 'O' if mark == 'X' else 'X'


def empty_cells(board: Sequence[Optional[str]]) -> List[int]:
    return [i for i, cell in enumerate(board) if cell is None]


def filled_count(board: Sequence[Optional[str]]) -> int:
    return sum(1 for cell in board if cell is not None)


def evaluate(board: Sequence[Optional[str]]) -> Evaluation:
    """Report a win (with its mark and line), a draw, or an ongoing game."""
    for line in LINES:
        a, b, c = line
        if board[a] is not None and board[a] == board[b] == board[c]:
            return Evaluation(WIN, board[a], line)
    if all(cell is not None for cell in board):
        return Evaluation(DRAW)
    return Evaluation(ONGOING)


def winning_cell(board: Sequence[Optional[str]], mark: str) -> Optional[int]:
    """First empty cell that would complete a line for ``mark``."""
    for line in LINES:
        values = [board[i] for i in line]
        if values.count(mark) == 2 and values.count(None) == 1:
            return line[values.index(None)]
    return None
