from arena import db
import time


class OutcomeRecord(db.Model):
    """Scripted-outcome history for one opponent-facing identity."""
    __tablename__ = 'outcome_record'
    address = db.Column(db.String(255), primary_key=True)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    last_wager = db.Column(db.Integer, nullable=True)
    last_verdict = db.Column(db.String(1), nullable=True)  # W / L, from the opponent's side
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time, nullable=False)
    cursors = db.relationship('ScriptCursor', back_populates='record', cascade='all, delete-orphan')
    tiers = db.relationship('TierHistory', back_populates='record', cascade='all, delete-orphan')

    def cursor_for(self, bucket):
        for cursor in self.cursors:
            if cursor.bucket == bucket:
                return cursor
        cursor = ScriptCursor(bucket=bucket, position=0)
        self.cursors.append(cursor)
        return cursor

    def tier_for(self, wager):
        for tier in self.tiers:
            if tier.wager == wager:
                return tier
        tier = TierHistory(wager=wager, games_played=0, rematch_granted=False)
        self.tiers.append(tier)
        return tier

    def to_dict(self):
        return {
            'address': self.address,
            'games_played': self.games_played,
            'last_wager': self.last_wager,
            'last_verdict': self.last_verdict,
            'cursors': {c.bucket: c.position for c in self.cursors},
            'tiers': [t.to_dict() for t in self.tiers],
        }


class ScriptCursor(db.Model):
    __tablename__ = 'script_cursor'
    __table_args__ = (db.UniqueConstraint('address', 'bucket', name='uq_script_cursor_address_bucket'),)
    id = db.Column(db.Integer, primary_key=True)
    address = db.Column(db.String(255), db.ForeignKey('outcome_record.address'), nullable=False, index=True)
    bucket = db.Column(db.String(32), nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)
    record = db.relationship('OutcomeRecord', back_populates='cursors')


class TierHistory(db.Model):
    __tablename__ = 'tier_history'
    __table_args__ = (db.UniqueConstraint('address', 'wager', name='uq_tier_history_address_wager'),)
    id = db.Column(db.Integer, primary_key=True)
    address = db.Column(db.String(255), db.ForeignKey('outcome_record.address'), nullable=False, index=True)
    wager = db.Column(db.Integer, nullable=False)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    rematch_granted = db.Column(db.Boolean, default=False, nullable=False)
    record = db.relationship('OutcomeRecord', back_populates='tiers')

    def to_dict(self):
        return {
            'wager': self.wager,
            'games_played': self.games_played,
            'rematch_granted': self.rematch_granted,
        }
