import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .board import MARKS, DRAW, WIN, empty_cells, evaluate, new_board
from .channels import MATCH_ENDED, MATCH_FOUND, TURN_ADVANCED, ParticipantChannel
from .opponent import OpponentSession
from .scheduler import TimerHandle

WAITING = 'waiting'
READY = 'ready'
PLAYING = 'playing'
FINISHED = 'finished'

# move rejections
NOT_IN_MATCH = 'not_in_match'
NOT_PLAYING = 'not_playing'
NOT_YOUR_TURN = 'not_your_turn'
BAD_POSITION = 'bad_position'
OCCUPIED = 'occupied'

REJECTION_MESSAGES = {
    NOT_IN_MATCH: 'You are not in this match',
    NOT_PLAYING: 'Match not started',
    NOT_YOUR_TURN: 'Not your turn',
    BAD_POSITION: 'Invalid position',
    OCCUPIED: 'Position already taken',
}

# how a match finished
BY_LINE = 'line'
BY_TIMEOUT = 'timeout'
BY_DISCONNECT = 'disconnect'
BY_RESIGN = 'resign'


@dataclass
class Slot:
    participant_id: str
    address: Optional[str]
    mark: str
    is_bot: bool = False
    channel: Optional[ParticipantChannel] = None


@dataclass(frozen=True)
class MoveResult:
    ok: bool
    reason: Optional[str] = None
    cell: Optional[int] = None
    outcome: Optional[str] = None  # continue, draw, win, forfeit
    winner: Optional[str] = None
    line: Tuple[int, ...] = ()

    @property
    def message(self) -> Optional[str]:
        return REJECTION_MESSAGES.get(self.reason) if self.reason else None


@dataclass(frozen=True)
class MatchSummary:
    match_id: str
    wager: int
    winner: Slot
    loser: Slot
    reason: str
    rounds: int
    verdict: Optional[str] = None

    @property
    def had_bot(self) -> bool:
        return self.winner.is_bot or self.loser.is_bot


class Match:
    """One match's lifecycle: waiting -> ready -> playing -> finished.

    Drawn rounds loop back into ``playing`` on a cleared board with the other
    side starting. Every mutation happens under ``lock``; timers carry the
    ``turn_seq`` they were armed for and become no-ops once it moved on.
    """

    def __init__(
        self,
        match_id: str,
        wager: int,
        scheduler,
        first_turn_sec: float = 8.0,
        turn_sec: float = 5.0,
        countdown_sec: float = 5.0,
        think_window: Tuple[float, float] = (0.45, 2.5),
        think_buffer: float = 1.4,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
        on_finished: Optional[Callable[['Match', MatchSummary], None]] = None,
    ):
        self.id = match_id
        self.wager = wager
        self.scheduler = scheduler
        self.first_turn_sec = first_turn_sec
        self.turn_sec = turn_sec
        self.countdown_sec = countdown_sec
        self.think_window = think_window
        self.think_buffer = think_buffer
        self.rng = rng or random.Random()
        self.logger = logger or logging.getLogger(__name__)
        self.on_finished = on_finished

        self.lock = threading.RLock()
        self.slots: List[Slot] = []
        self.board = new_board()
        self.status = WAITING
        self.turn: Optional[str] = None
        self.starting_player: Optional[str] = None
        self.turn_deadline: Optional[float] = None
        self.turn_seq = 0
        self.move_count = 0
        self.is_first_turn = True
        self.round = 0
        self.winner: Optional[str] = None
        self.win_line: Tuple[int, ...] = ()
        self.finish_reason: Optional[str] = None
        self.bot_session: Optional[OpponentSession] = None
        self.created_at = scheduler.now()
        self.starts_at: Optional[float] = None
        self.finished_at: Optional[float] = None

        self.turn_timer: Optional[TimerHandle] = None
        self.bot_timer: Optional[TimerHandle] = None
        self.countdown_timer: Optional[TimerHandle] = None
        self._dropped: List[str] = []

    # ---- roster ----

    def slot(self, participant_id: Optional[str]) -> Optional[Slot]:
        for slot in self.slots:
            if slot.participant_id == participant_id:
                return slot
        return None

    def other(self, participant_id: Optional[str]) -> Optional[Slot]:
        for slot in self.slots:
            if slot.participant_id != participant_id:
                return slot
        return None

    def has(self, participant_id: str) -> bool:
        return self.slot(participant_id) is not None

    @property
    def bot_slot(self) -> Optional[Slot]:
        return next((s for s in self.slots if s.is_bot), None)

    @property
    def is_open(self) -> bool:
        return self.status == WAITING and len(self.slots) == 1

    def add_participant(self, participant_id, address, channel=None, is_bot=False) -> Slot:
        with self.lock:
            if self.status != WAITING or len(self.slots) >= 2:
                raise ValueError(f"match {self.id} is not accepting participants")
            if self.has(participant_id):
                raise ValueError(f"{participant_id} already in match {self.id}")
            slot = Slot(participant_id, address, MARKS[len(self.slots)], is_bot=is_bot, channel=channel)
            self.slots.append(slot)
            if len(self.slots) == 2:
                self.status = READY
                self.turn = self.slots[0 if self.rng.random() < 0.5 else 1].participant_id
                self.starting_player = self.turn
            return slot

    def attach_bot(self, participant_id: str, address: str, session: OpponentSession) -> Slot:
        with self.lock:
            slot = self.add_participant(participant_id, address, is_bot=True)
            session.mark = slot.mark
            self.bot_session = session
            return slot

    def remove_participant(self, participant_id: str) -> bool:
        """Take a participant back out while still waiting for an opponent."""
        with self.lock:
            slot = self.slot(participant_id)
            if self.status != WAITING or slot is None:
                return False
            self.slots.remove(slot)
            return True

    # ---- lifecycle ----

    def start_countdown(self) -> Optional[float]:
        with self.lock:
            if self.status != READY:
                return None
            now = self.scheduler.now()
            self.starts_at = now + self.countdown_sec
            self._broadcast(MATCH_FOUND, lambda slot: {
                'matchId': self.id,
                'mark': slot.mark,
                'wager': self.wager,
                'opponent': {'type': 'player'},
                'startsIn': self.countdown_sec,
                'startAt': self.starts_at,
            })
            self.countdown_timer = self.scheduler.call_later(self.countdown_sec, self.begin, name=f"countdown:{self.id}")
            starts_at = self.starts_at
        self._handle_dropped()
        return starts_at

    def begin(self) -> bool:
        with self.lock:
            if self.status != READY:
                return False
            self.status = PLAYING
            self.round = 1
            self.is_first_turn = True
            self.logger.info(f"[match-start] match={self.id} wager={self.wager} starter={self.slot(self.turn).mark}")
            self._arm_turn()
            self._broadcast_turn(last_move=None)
        self._handle_dropped()
        return True

    def make_move(self, participant_id: str, cell) -> MoveResult:
        with self.lock:
            result = self._apply(participant_id, cell)
        self._handle_dropped()
        return result

    def play_bot_turn(self, seq: int) -> Optional[MoveResult]:
        with self.lock:
            mover = self.slot(self.turn)
            if self.status != PLAYING or seq != self.turn_seq or mover is None or not mover.is_bot or self.bot_session is None:
                return None
            cell = self.bot_session.next_move(self.board)
            if cell is None:
                return None
            self.logger.info(
                f"[bot-move] match={self.id} round={self.round} cell={cell} mode={self.bot_session.mode} "
                f"verdict={self.bot_session.verdict} drawn={self.bot_session.drawn_rounds}"
            )
            result = self._apply(mover.participant_id, cell)
        self._handle_dropped()
        return result

    def handle_timeout(self, seq: int) -> Optional[MoveResult]:
        with self.lock:
            if self.status != PLAYING or seq != self.turn_seq:
                self.logger.debug(f"[timer-abort] match={self.id} seq={seq} current={self.turn_seq} status={self.status}")
                return None
            mover = self.slot(self.turn)
            self.logger.info(f"[turn-timeout] match={self.id} round={self.round} mark={mover.mark} bot={mover.is_bot}")
            if mover.is_bot:
                # the automated side never forfeits on time
                result = self._apply(mover.participant_id, self.rng.choice(empty_cells(self.board)))
            else:
                result = self._forfeit(mover.participant_id, BY_TIMEOUT)
        self._handle_dropped()
        return result

    def forfeit(self, participant_id: str, reason: str) -> Optional[MoveResult]:
        with self.lock:
            if self.status not in (READY, PLAYING) or not self.has(participant_id):
                return None
            result = self._forfeit(participant_id, reason)
        self._handle_dropped()
        return result

    def cancel_timers(self) -> None:
        for handle in (self.turn_timer, self.bot_timer, self.countdown_timer):
            if handle is not None:
                handle.cancel()

    # ---- internals (lock held) ----

    def _validate(self, participant_id, cell) -> Optional[str]:
        if not self.has(participant_id):
            return NOT_IN_MATCH
        if self.status != PLAYING:
            return NOT_PLAYING
        if self.turn != participant_id:
            return NOT_YOUR_TURN
        if isinstance(cell, bool) or not isinstance(cell, int) or not 0 <= cell <= 8:
            return BAD_POSITION
        if self.board[cell] is not None:
            return OCCUPIED
        return None

    def _apply(self, participant_id, cell) -> MoveResult:
        reason = self._validate(participant_id, cell)
        if reason:
            return MoveResult(False, reason=reason)

        mover = self.slot(participant_id)
        self.board[cell] = mover.mark
        self.move_count += 1
        self.is_first_turn = False
        last_move = {'cell': cell, 'mark': mover.mark}

        result = evaluate(self.board)
        if result.state == WIN:
            self._finish(participant_id, BY_LINE, line=result.line, last_move=last_move)
            return MoveResult(True, cell=cell, outcome='win', winner=participant_id, line=result.line)
        if result.state == DRAW:
            self._restart_after_draw(last_move)
            return MoveResult(True, cell=cell, outcome='draw')

        self.turn = self.other(participant_id).participant_id
        self._arm_turn()
        self._broadcast_turn(last_move=last_move)
        return MoveResult(True, cell=cell, outcome='continue')

    def _restart_after_draw(self, last_move) -> None:
        finished_board = list(self.board)
        if self.bot_session is not None:
            self.bot_session.note_round_end(finished_board)
        self.starting_player = self.other(self.starting_player).participant_id
        self.turn = self.starting_player
        self.board = new_board()
        self.move_count = 0
        self.is_first_turn = True
        self.round += 1
        self.logger.info(f"[round-draw] match={self.id} next_round={self.round} starter={self.slot(self.turn).mark}")
        self._arm_turn()
        self._broadcast_turn(last_move=last_move, previous_board=finished_board)

    def _arm_turn(self) -> None:
        for handle in (self.turn_timer, self.bot_timer):
            if handle is not None:
                handle.cancel()
        self.bot_timer = None
        allowance = self.first_turn_sec if self.is_first_turn else self.turn_sec
        self.turn_seq += 1
        self.turn_deadline = self.scheduler.now() + allowance
        self.turn_timer = self.scheduler.call_later(
            allowance, self.handle_timeout, self.turn_seq, name=f"turn:{self.id}:{self.turn_seq}"
        )
        if self.slot(self.turn).is_bot:
            self.bot_timer = self.scheduler.call_later(
                self._think_delay(), self.play_bot_turn, self.turn_seq, name=f"bot:{self.id}:{self.turn_seq}"
            )

    def _think_delay(self) -> float:
        low, high = self.think_window
        time_left = self.turn_deadline - self.scheduler.now()
        max_delay = min(max(0.25, time_left - self.think_buffer), high)
        min_delay = min(low, max_delay)
        return min_delay + self.rng.random() * self.rng.random() * (max_delay - min_delay)

    def _forfeit(self, participant_id, reason) -> MoveResult:
        winner = self.other(participant_id).participant_id
        self._finish(winner, reason)
        return MoveResult(True, outcome='forfeit', winner=winner)

    def _finish(self, winner_id, reason, line=(), last_move=None) -> None:
        self.status = FINISHED
        self.winner = winner_id
        self.win_line = tuple(line)
        self.finish_reason = reason
        self.finished_at = self.scheduler.now()
        self.turn_deadline = None
        self.cancel_timers()
        session, self.bot_session = self.bot_session, None

        winner = self.slot(winner_id)
        loser = self.other(winner_id)
        self.logger.info(
            f"[match-finished] match={self.id} wager={self.wager} winner={winner.mark} reason={reason} "
            f"rounds={self.round} bot_game={winner.is_bot or loser.is_bot}"
        )
        self._broadcast(MATCH_ENDED, lambda slot: {
            'matchId': self.id,
            'board': list(self.board),
            'lastMove': last_move,
            'winnerMark': winner.mark,
            'winningLine': list(self.win_line),
            'result': 'win' if slot is winner else 'loss',
            'reason': reason,
            'message': 'You win!' if slot is winner else 'You lose',
        })
        if self.on_finished is not None:
            summary = MatchSummary(
                match_id=self.id,
                wager=self.wager,
                winner=winner,
                loser=loser,
                reason=reason,
                rounds=self.round,
                verdict=session.verdict if session else None,
            )
            self.on_finished(self, summary)

    def _broadcast_turn(self, last_move, previous_board=None) -> None:
        mover = self.slot(self.turn)
        self._broadcast(TURN_ADVANCED, lambda slot: {
            'matchId': self.id,
            'board': list(self.board),
            'round': self.round,
            'turnMark': mover.mark,
            'yourTurn': slot is mover,
            'turnDeadline': self.turn_deadline,
            'lastMove': last_move,
            'restarted': previous_board is not None,
            'previousBoard': previous_board,
            'message': 'Your move' if slot is mover else "Opponent's move",
        })

    def _broadcast(self, event: str, build: Callable[[Slot], Dict]) -> None:
        for slot in self.slots:
            if slot.channel is None:
                continue
            delivered = slot.channel.notify(event, build(slot))
            if not delivered and slot.channel.closed:
                self._dropped.append(slot.participant_id)

    def _handle_dropped(self) -> None:
        while True:
            with self.lock:
                if not self._dropped:
                    return
                participant_id = self._dropped.pop(0)
            self.forfeit(participant_id, BY_DISCONNECT)

    # ---- views ----

    def snapshot(self) -> Dict:
        mover = self.slot(self.turn) if self.status == PLAYING else None
        winner = self.slot(self.winner)
        return {
            'matchId': self.id,
            'wager': self.wager,
            'status': self.status,
            'board': list(self.board),
            'round': self.round,
            'moveCount': self.move_count,
            'marks': [slot.mark for slot in self.slots],
            'turnMark': mover.mark if mover else None,
            'turnDeadline': self.turn_deadline,
            'startsAt': self.starts_at,
            'winnerMark': winner.mark if winner else None,
            'winningLine': list(self.win_line),
            'finishReason': self.finish_reason,
        }
