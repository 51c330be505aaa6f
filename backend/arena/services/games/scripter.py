import random
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Mapping, Optional

from flask import current_app

from arena import db
from arena.models import OutcomeRecord

BOT_WIN = 'W'
BOT_LOSS = 'L'


class OutcomeStore:
    """Get-or-create access to outcome records, serialized per identity."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def locked(self, address: str):
        with self._guard:
            lock = self._locks.setdefault(address, threading.Lock())
        with lock:
            yield

    def get(self, address: str) -> Optional[OutcomeRecord]:
        return db.session.get(OutcomeRecord, address)

    def get_or_create(self, address: str) -> OutcomeRecord:
        record = self.get(address)
        if record is None:
            record = OutcomeRecord(address=address, games_played=0)
            db.session.add(record)
        return record

    def save(self, record: OutcomeRecord) -> None:
        try:
            db.session.add(record)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


def _normalize_script(bucket: str, script) -> str:
    tokens = ''.join(script).upper()
    if not tokens or set(tokens) - {BOT_WIN, BOT_LOSS}:
        raise ValueError(f"outcome script for bucket {bucket!r} must be a non-empty run of W/L, got {script!r}")
    return tokens


class OutcomeScripter:
    """Decides whether the automated opponent must win a given match.

    Each wager maps to a bucket; each bucket has a repeating W/L script and
    every identity walks it with its own cursor. In rematch buckets, an
    identity whose very first match at a wager came out ``L`` gets a forced
    ``W`` on an immediate same-wager rematch, once.
    """

    def __init__(
        self,
        store: OutcomeStore,
        scripts: Mapping[str, Iterable[str]],
        buckets: Mapping[int, str],
        rematch_buckets: Iterable[str] = (),
        rematch_consumes_slot: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.scripts = {name: _normalize_script(name, script) for name, script in scripts.items()}
        self.buckets = {int(wager): bucket for wager, bucket in buckets.items()}
        self.rematch_buckets = set(rematch_buckets)
        self.rematch_consumes_slot = rematch_consumes_slot
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config, store=None, rng=None):
        return cls(
            store or OutcomeStore(),
            scripts=config['OUTCOME_SCRIPTS'],
            buckets=config['WAGER_BUCKETS'],
            rematch_buckets=config.get('REMATCH_BUCKETS', ()),
            rematch_consumes_slot=config.get('REMATCH_CONSUMES_SCRIPT_SLOT', True),
            rng=rng,
        )

    def decide(self, identity: Optional[str], wager: int) -> bool:
        """Return True when the automated opponent must win this match."""
        if not identity:
            must_win = self.rng.random() < 0.5
            current_app.logger.info(f"[outcome] identity=- wager={wager} source=random must_win={must_win}")
            return must_win

        bucket = self.buckets.get(wager)
        script = self.scripts.get(bucket) if bucket else None
        with self.store.locked(identity):
            record = self.store.get_or_create(identity)
            tier = record.tier_for(wager)
            index = None
            if script is None:
                verdict = BOT_WIN if self.rng.random() < 0.5 else BOT_LOSS
                source = 'random'
            else:
                cursor = record.cursor_for(bucket)
                if self._rematch_due(record, tier, wager, bucket):
                    verdict = BOT_WIN
                    source = 'rematch'
                    tier.rematch_granted = True
                    if self.rematch_consumes_slot:
                        cursor.position += 1
                else:
                    index = cursor.position % len(script)
                    verdict = script[index]
                    source = 'script'
                    cursor.position += 1
            tier.games_played += 1
            record.games_played += 1
            record.last_wager = wager
            record.last_verdict = verdict
            self.store.save(record)

        current_app.logger.info(
            f"[outcome] identity={identity} wager={wager} bucket={bucket} source={source} index={index} verdict={verdict}"
        )
        return verdict == BOT_WIN

    def _rematch_due(self, record, tier, wager, bucket) -> bool:
        return (
            bucket in self.rematch_buckets
            and record.last_wager == wager
            and record.last_verdict == BOT_LOSS
            and tier.games_played == 1
            and not tier.rematch_granted
        )
