import threading
from collections import defaultdict

from .match import MatchSummary


class BotStats:
    """Tallies finished matches that had an automated opponent.

    Registered as a finish observer; it only reads the summary.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.total_games = 0
        self.wins = 0
        self.losses = 0
        self.by_reason = defaultdict(int)
        self.by_wager = defaultdict(lambda: {'games': 0, 'wins': 0, 'losses': 0})

    def __call__(self, summary: MatchSummary) -> None:
        if not summary.had_bot:
            return
        won = summary.winner.is_bot
        with self._lock:
            self.total_games += 1
            self.by_reason[summary.reason] += 1
            tier = self.by_wager[summary.wager]
            tier['games'] += 1
            if won:
                self.wins += 1
                tier['wins'] += 1
            else:
                self.losses += 1
                tier['losses'] += 1

    def to_dict(self):
        with self._lock:
            return {
                'totalGames': self.total_games,
                'wins': self.wins,
                'losses': self.losses,
                'winRate': round(self.wins / self.total_games, 3) if self.total_games else 0.0,
                'byReason': dict(self.by_reason),
                'byWager': {str(wager): dict(counts) for wager, counts in sorted(self.by_wager.items())},
            }
