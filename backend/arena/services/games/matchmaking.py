import random
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from flask import current_app

from arena import socketio
from .channels import WAITING_FOR_OPPONENT, ParticipantChannel
from .match import BY_DISCONNECT, BY_RESIGN, FINISHED, NOT_IN_MATCH, WAITING, Match, MatchSummary, MoveResult
from .opponent import OpponentSession
from .scheduler import BackgroundScheduler, TimerHandle
from .scripter import OutcomeScripter
from .settlement import SettlementBridge, gateway_from_config
from .stats import BotStats

BOT_NAMES = (
    'player', 'gamer', 'pro', 'master', 'champion',
    'rookie', 'legend', 'ninja', 'wizard', 'knight',
    'dragon', 'phoenix', 'thunder', 'storm', 'shadow',
    'ace', 'bolt', 'cyber', 'flash', 'ghost',
    'hawk', 'iron', 'jet', 'king', 'lion',
)


@dataclass
class PendingEntry:
    participant_id: str
    identity: str
    wager: int
    channel: ParticipantChannel


class MatchRegistry:
    """Live matches plus the participant -> match index.

    ``lock`` guards pairing and bot attachment; individual matches keep
    their own lock for gameplay.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.matches: Dict[str, Match] = {}
        self.by_participant: Dict[str, str] = {}

    def add(self, match: Match) -> None:
        with self.lock:
            self.matches[match.id] = match

    def get(self, match_id: str) -> Optional[Match]:
        return self.matches.get(match_id)

    def for_participant(self, participant_id: str) -> Optional[Match]:
        match_id = self.by_participant.get(participant_id)
        return self.matches.get(match_id) if match_id else None

    def bind(self, participant_id: str, match: Match) -> None:
        with self.lock:
            self.by_participant[participant_id] = match.id

    def release(self, participant_id: str) -> None:
        with self.lock:
            self.by_participant.pop(participant_id, None)

    def open_match(self, wager: int) -> Optional[Match]:
        with self.lock:
            for match in self.matches.values():
                if match.wager == wager and match.is_open:
                    return match
        return None

    def evict(self, match_id: str) -> Optional[Match]:
        with self.lock:
            match = self.matches.pop(match_id, None)
            if match is not None:
                for slot in match.slots:
                    if self.by_participant.get(slot.participant_id) == match_id:
                        del self.by_participant[slot.participant_id]
            return match

    def live(self) -> List[Match]:
        with self.lock:
            return list(self.matches.values())

    def __len__(self):
        return len(self.matches)


class MatchmakingCoordinator:
    """Pairs paying participants and owns every live match.

    A participant either completes a waiting match at the same wager or opens
    a new one. An open match arms a bot-spawn timer; when it fires before a
    second human shows up, a scripted automated opponent takes the seat.
    """

    def __init__(
        self,
        app,
        scheduler,
        scripter: OutcomeScripter,
        settlement: SettlementBridge,
        rng: Optional[random.Random] = None,
        observers: Iterable[Callable[[MatchSummary], None]] = (),
        gateway=None,
        stats: Optional[BotStats] = None,
    ):
        self.app = app
        self.config = app.config
        self.logger = app.logger
        self.scheduler = scheduler
        self.scripter = scripter
        self.settlement = settlement
        self.rng = rng or random.Random()
        self.observers = list(observers)
        self.gateway = gateway
        self.stats = stats
        if stats is not None:
            self.observers.append(stats)
        self.registry = MatchRegistry()
        self.bot_timers: Dict[str, TimerHandle] = {}
        self.pending: Dict[str, PendingEntry] = {}

    # ---- entry / payments ----

    def await_payment(self, invoice_id: str, participant_id: str, identity: str, wager: int, channel) -> None:
        with self.registry.lock:
            self.pending[invoice_id] = PendingEntry(participant_id, identity, wager, channel)
        self.logger.info(f"[payment-pending] invoice={invoice_id} participant={participant_id} wager={wager}")

    def confirm_payment(self, invoice_id: str) -> Optional[Match]:
        with self.registry.lock:
            entry = self.pending.pop(invoice_id, None)
        if entry is None:
            self.logger.warning(f"[payment-unknown] invoice={invoice_id}")
            return None
        self.logger.info(f"[payment-confirmed] invoice={invoice_id} participant={entry.participant_id} wager={entry.wager}")
        return self.on_participant_ready(entry.participant_id, entry.identity, entry.wager, entry.channel)

    def fail_payment(self, invoice_id: str) -> Optional[PendingEntry]:
        with self.registry.lock:
            entry = self.pending.pop(invoice_id, None)
        if entry is not None:
            self.logger.warning(f"[payment-failed] invoice={invoice_id} participant={entry.participant_id}")
        return entry

    def on_participant_ready(self, participant_id: str, identity: str, wager: int, channel) -> Optional[Match]:
        paired = False
        with self.registry.lock:
            current = self.registry.for_participant(participant_id)
            if current is not None and current.status != FINISHED:
                self.logger.warning(f"[join-ignored] participant={participant_id} already in match={current.id}")
                return current
            self.registry.release(participant_id)

            match = self.registry.open_match(wager)
            if match is not None:
                timer = self.bot_timers.pop(match.id, None)
                if timer is not None:
                    timer.cancel()
                match.add_participant(participant_id, identity, channel=channel)
                paired = True
                self.logger.info(f"[match-paired] match={match.id} wager={wager}")
            else:
                match = self._new_match(wager)
                match.add_participant(participant_id, identity, channel=channel)
                self.registry.add(match)
                delay = self.rng.uniform(self.config['BOT_SPAWN_MIN_SEC'], self.config['BOT_SPAWN_MAX_SEC'])
                self.bot_timers[match.id] = self.scheduler.call_later(
                    delay, self._spawn_bot, match.id, name=f"bot-spawn:{match.id}"
                )
                self.logger.info(f"[match-created] match={match.id} wager={wager} bot_spawn_in={delay:.1f}s")
            self.registry.bind(participant_id, match)

        if paired:
            match.start_countdown()
        else:
            delivered = channel.notify(WAITING_FOR_OPPONENT, {
                'matchId': match.id,
                'wager': wager,
                'message': 'Waiting for opponent...',
            })
            if not delivered and channel.closed:
                self.on_disconnect(participant_id)
        return match

    def _new_match(self, wager: int) -> Match:
        config = self.config
        return Match(
            uuid.uuid4().hex,
            wager,
            self.scheduler,
            first_turn_sec=config['FIRST_TURN_SEC'],
            turn_sec=config['TURN_SEC'],
            countdown_sec=config['MATCH_COUNTDOWN_SEC'],
            think_window=(config['BOT_THINK_MIN_SEC'], config['BOT_THINK_MAX_SEC']),
            think_buffer=config['BOT_THINK_BUFFER_SEC'],
            rng=random.Random(self.rng.random()),
            logger=self.logger,
            on_finished=self._on_match_finished,
        )

    def bot_address(self) -> str:
        name = self.rng.choice(BOT_NAMES)
        return f"{name}{self.rng.randint(0, 9999)}@{self.config['ADDRESS_DOMAIN']}"

    def _spawn_bot(self, match_id: str) -> Optional[Match]:
        with self.registry.lock:
            self.bot_timers.pop(match_id, None)
            match = self.registry.get(match_id)
            if match is None or not match.is_open:
                self.logger.debug(f"[bot-spawn-abort] match={match_id}")
                return None
            human = match.slots[0]
            try:
                must_win = self.scripter.decide(human.address, match.wager)
            except Exception:
                self.logger.exception(f"[outcome-error] match={match_id} identity={human.address}")
                must_win = self.rng.random() < 0.5
            session = OpponentSession.create(must_win, self.config, rng=random.Random(self.rng.random()))
            match.attach_bot(f"bot_{uuid.uuid4().hex[:12]}", self.bot_address(), session)
            self.logger.info(
                f"[bot-spawned] match={match_id} wager={match.wager} verdict={session.verdict} "
                f"draw_tolerance={session.draw_tolerance} blunder_after={session.blunder_after}"
            )
        match.start_countdown()
        return match

    # ---- gameplay delegation ----

    def make_move(self, participant_id: str, cell) -> MoveResult:
        match = self.registry.for_participant(participant_id)
        if match is None:
            return MoveResult(False, reason=NOT_IN_MATCH)
        return match.make_move(participant_id, cell)

    def resign(self, participant_id: str) -> Optional[MoveResult]:
        match = self.registry.for_participant(participant_id)
        if match is None:
            return None
        return match.forfeit(participant_id, BY_RESIGN)

    def on_disconnect(self, participant_id: str) -> None:
        with self.registry.lock:
            for invoice_id in [i for i, e in self.pending.items() if e.participant_id == participant_id]:
                del self.pending[invoice_id]
            match = self.registry.for_participant(participant_id)
            if match is None:
                return
            if match.status == WAITING:
                timer = self.bot_timers.pop(match.id, None)
                if timer is not None:
                    timer.cancel()
                match.remove_participant(participant_id)
                self.registry.evict(match.id)
                self.logger.info(f"[match-abandoned] match={match.id} wager={match.wager}")
                return
        match.forfeit(participant_id, BY_DISCONNECT)

    def state(self, match_id: str) -> Optional[Dict]:
        match = self.registry.get(match_id)
        return match.snapshot() if match else None

    # ---- finish ----

    def _on_match_finished(self, match: Match, summary: MatchSummary) -> None:
        for observer in self.observers:
            try:
                observer(summary)
            except Exception:
                self.logger.exception(f"[observer-error] match={match.id} observer={observer!r}")
        self.scheduler.spawn(self.settlement.settle, summary, name=f"settle:{match.id}")
        self.scheduler.call_later(
            self.config['FINISHED_MATCH_TTL_SEC'], self.evict, match.id, name=f"evict:{match.id}"
        )

    def evict(self, match_id: str) -> Optional[Match]:
        match = self.registry.evict(match_id)
        if match is not None:
            match.cancel_timers()
            self.logger.info(f"[match-evicted] match={match_id} live={len(self.registry)}")
        return match


def init_arena(app, scheduler=None, gateway=None, rng=None) -> MatchmakingCoordinator:
    rng = rng or random.Random()
    scheduler = scheduler or BackgroundScheduler(app, socketio)
    gateway = gateway or gateway_from_config(app.config)
    coordinator = MatchmakingCoordinator(
        app,
        scheduler,
        OutcomeScripter.from_config(app.config, rng=random.Random(rng.random())),
        SettlementBridge(gateway, app.config['PAYOUTS'], app.config['PLATFORM_ADDRESS'], logger=app.logger),
        rng=rng,
        gateway=gateway,
        stats=BotStats(),
    )
    app.extensions['arena'] = coordinator
    return coordinator


def coordinator() -> MatchmakingCoordinator:
    return current_app.extensions['arena']
