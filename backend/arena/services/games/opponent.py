"""Automated opponent controller.

The opponent is handed a verdict (must win / must lose) when it is attached to
a match and steers real play towards it while still looking like a person on
the other side of the board. Strategy is an explicit state per move:

``optimal``
    immediate win, else block, else minimax-best cell (random among ties).
``exploratory``
    a deliberately imperfect move. A must-win opponent only ever explores
    among cells that do not lose; a must-lose opponent misses blocks or plays
    a random non-winning cell.
``committed_blunder``
    must-lose only, played once per session after ``blunder_after`` own
    placements in a round: a plausible-looking move that hands the other side
    a win. Afterwards the opponent goes back to blocking.
``forced_verdict``
    after ``draw_tolerance`` drawn rounds. A must-win opponent sticks to
    minimax-best cells that leave the most losing replies; a must-lose
    opponent stops blocking altogether.

All randomness comes from the session's ``rng`` so a seeded ``random.Random``
makes every decision reproducible.
"""

import random
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from .board import (
    CENTER,
    CORNERS,
    LINES,
    WIN,
    DRAW,
    empty_cells,
    evaluate,
    filled_count,
    other_mark,
    winning_cell,
)

MUST_WIN = 'must_win'
MUST_LOSE = 'must_lose'

OPTIMAL = 'optimal'
EXPLORATORY = 'exploratory'
COMMITTED_BLUNDER = 'committed_blunder'
FORCED_VERDICT = 'forced_verdict'

PLAUSIBLE_CELLS = (CENTER,) + CORNERS

# a round that ends with this many cells filled and no winner counts as drawn
DRAWN_ROUND_MIN_FILLED = 5


def _place(board: Tuple, cell: int, mark: str) -> Tuple:
    return board[:cell] + (mark,) + board[cell + 1:]


@lru_cache(maxsize=None)
def _score(board: Tuple, to_move: str, me: str) -> int:
    """Minimax value of ``board`` for ``me``; faster wins score higher."""
    result = evaluate(board)
    if result.state == WIN:
        weight = 1 + board.count(None)
        return weight if result.mark == me else -weight
    if result.state == DRAW:
        return 0
    scores = [_score(_place(board, cell, to_move), other_mark(to_move), me) for cell in empty_cells(board)]
    return max(scores) if to_move == me else min(scores)


def move_scores(board: Sequence[Optional[str]], me: str) -> Dict[int, int]:
    """Minimax value of every empty cell for ``me``, ``me`` to move."""
    key = tuple(board)
    opp = other_mark(me)
    return {cell: _score(_place(key, cell, me), opp, me) for cell in empty_cells(key)}


def _best_cells(scores: Dict[int, int]) -> List[int]:
    best = max(scores.values())
    return [cell for cell, score in scores.items() if score == best]


def optimal_move(
    board: Sequence[Optional[str]], me: str, rng: random.Random, scores: Optional[Dict[int, int]] = None
) -> Optional[int]:
    """Minimax-best cell for ``me``, ties broken by ``rng``."""
    if scores is None:
        scores = move_scores(board, me)
    if not scores:
        return None
    return rng.choice(_best_cells(scores))


def _completes_line(board: Sequence[Optional[str]], cell: int, mark: str) -> bool:
    result = evaluate(_place(tuple(board), cell, mark))
    return result.state == WIN and result.mark == mark


def _plausible(cells: List[int]) -> List[int]:
    preferred = [c for c in cells if c in PLAUSIBLE_CELLS]
    return preferred or cells


class OpponentSession:
    """Per-match state of one automated opponent."""

    def __init__(
        self,
        verdict: str,
        draw_tolerance: int,
        blunder_after: Optional[int] = None,
        explore_probability: float = 0.1,
        miss_block_probability: float = 0.3,
        miss_play_probability: float = 0.3,
        rng: Optional[random.Random] = None,
        mark: Optional[str] = None,
    ):
        if verdict not in (MUST_WIN, MUST_LOSE):
            raise ValueError(f"unknown verdict {verdict!r}")
        self.verdict = verdict
        self.draw_tolerance = draw_tolerance
        self.blunder_after = blunder_after
        self.explore_probability = explore_probability
        self.miss_block_probability = miss_block_probability
        self.miss_play_probability = miss_play_probability
        self.rng = rng or random.Random()
        self.mark = mark
        self.drawn_rounds = 0
        self.has_blundered = False
        self.mode = OPTIMAL

    @classmethod
    def create(cls, must_win: bool, config, rng: Optional[random.Random] = None) -> 'OpponentSession':
        rng = rng or random.Random()
        if must_win:
            low, high = config['BOT_MUST_WIN_DRAWS']
            return cls(
                MUST_WIN,
                draw_tolerance=rng.randint(low, high),
                explore_probability=config['BOT_EXPLORE_PROBABILITY'],
                rng=rng,
            )
        low, high = config['BOT_MUST_LOSE_DRAWS']
        blunder_low, blunder_high = config['BOT_BLUNDER_AFTER']
        return cls(
            MUST_LOSE,
            draw_tolerance=rng.randint(low, high),
            blunder_after=rng.randint(blunder_low, blunder_high),
            miss_block_probability=config['BOT_MISS_BLOCK_PROBABILITY'],
            miss_play_probability=config['BOT_MISS_PLAY_PROBABILITY'],
            rng=rng,
        )

    @property
    def must_win(self) -> bool:
        return self.verdict == MUST_WIN

    @property
    def forced(self) -> bool:
        return self.drawn_rounds >= self.draw_tolerance

    def note_round_end(self, board: Sequence[Optional[str]]) -> bool:
        """Count ``board`` as a drawn round if nobody won it and it got far enough."""
        if evaluate(board).state == WIN or filled_count(board) < DRAWN_ROUND_MIN_FILLED:
            return False
        self.drawn_rounds += 1
        return True

    def next_move(self, board: Sequence[Optional[str]]) -> Optional[int]:
        if self.mark is None:
            raise RuntimeError('opponent session has no mark assigned')
        empties = empty_cells(board)
        if not empties:
            return None
        me, opp = self.mark, other_mark(self.mark)
        if self.must_win:
            self.mode, cell = self._play_to_win(board, me, opp)
        else:
            self.mode, cell = self._play_to_lose(board, me, opp, empties)
        return cell

    def _play_to_win(self, board, me, opp):
        mode = FORCED_VERDICT if self.forced else OPTIMAL
        win = winning_cell(board, me)
        if win is not None:
            return mode, win
        block = winning_cell(board, opp)
        if block is not None:
            return mode, block

        scores = move_scores(board, me)
        if self.forced:
            return FORCED_VERDICT, self.rng.choice(self._most_traps(board, me, _best_cells(scores)))
        if self.rng.random() < self.explore_probability:
            safe = [cell for cell, score in scores.items() if score >= 0] or _best_cells(scores)
            return EXPLORATORY, self.rng.choice(safe)
        return OPTIMAL, optimal_move(board, me, self.rng, scores)

    def _play_to_lose(self, board, me, opp, empties):
        non_winning = [c for c in empties if not _completes_line(board, c, me)] or empties
        if self.forced:
            return FORCED_VERDICT, self._concede(board, me, opp, non_winning)

        if not self.has_blundered and self.blunder_after is not None and board.count(me) + 1 >= self.blunder_after:
            self.has_blundered = True
            return COMMITTED_BLUNDER, self._blunder(board, me, opp, non_winning)

        threat = winning_cell(board, opp)
        if threat is not None and threat in non_winning:
            if not self.has_blundered and self.rng.random() < self.miss_block_probability:
                others = [c for c in non_winning if c != threat]
                if others:
                    return EXPLORATORY, self.rng.choice(others)
            return OPTIMAL, threat

        if not self.has_blundered and self.rng.random() < self.miss_play_probability:
            return EXPLORATORY, self.rng.choice(non_winning)

        scores = move_scores(board, me)
        best = max(scores[c] for c in non_winning)
        return OPTIMAL, self.rng.choice([c for c in non_winning if scores[c] == best])

    def _blunder(self, board, me, opp, non_winning):
        threat = winning_cell(board, opp)
        if threat is not None:
            leaves_win = [c for c in non_winning if c != threat]
            if leaves_win:
                return self.rng.choice(_plausible(leaves_win))
        # no open threat to ignore: take the positionally worst cell instead
        scores = move_scores(board, me)
        worst = min(scores[c] for c in non_winning)
        return self.rng.choice(_plausible([c for c in non_winning if scores[c] == worst]))

    def _concede(self, board, me, opp, non_winning):
        threat = winning_cell(board, opp)
        if threat is not None:
            leaves_win = [c for c in non_winning if c != threat]
            if leaves_win:
                return self.rng.choice(_plausible(leaves_win))
        scores = move_scores(board, me)
        worst = min(scores[c] for c in non_winning)
        candidates = [c for c in non_winning if scores[c] == worst]
        return self.rng.choice(self._fewest_blocked_lines(board, me, opp, candidates))

    def _most_traps(self, board, me, cells):
        opp = other_mark(me)
        counts = {}
        for cell in cells:
            child = _place(tuple(board), cell, me)
            counts[cell] = sum(
                1 for reply in empty_cells(child)
                if _score(_place(child, reply, opp), me, me) > 0
            )
        most = max(counts.values())
        return [cell for cell in cells if counts[cell] == most]

    @staticmethod
    def _fewest_blocked_lines(board, me, opp, cells):
        # lines the other side can still complete
        open_lines = [line for line in LINES if me not in [board[i] for i in line] and opp in [board[i] for i in line]]
        counts = {cell: sum(1 for line in open_lines if cell in line) for cell in cells}
        fewest = min(counts.values())
        return [cell for cell in cells if counts[cell] == fewest]


def next_move(board: Sequence[Optional[str]], session: OpponentSession) -> Optional[int]:
    return session.next_move(board)
