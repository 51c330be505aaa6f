"""Participant notification sinks.

The game core only ever calls ``notify``; delivery is best effort. A channel
reports ``closed`` once the transport has told us the participant is gone.
"""

from typing import Any, Dict

from arena import socketio

MATCH_FOUND = 'matchFound'
TURN_ADVANCED = 'turnAdvanced'
MATCH_ENDED = 'matchEnded'
WAITING_FOR_OPPONENT = 'waitingForOpponent'
PAYOUT_SENT = 'payoutSent'
PAYOUT_FAILED = 'payoutFailed'


class ParticipantChannel:
    closed = False

    def notify(self, event: str, payload: Dict[str, Any]) -> bool:
        raise NotImplementedError


class SocketChannel(ParticipantChannel):
    """Emits to a single Socket.IO session id."""

    def __init__(self, sid: str, namespace: str = '/ws'):
        self.sid = sid
        self.namespace = namespace
        self.closed = False

    def notify(self, event, payload):
        if self.closed:
            return False
        socketio.emit(event, payload, to=self.sid, namespace=self.namespace)
        return True

    def close(self) -> None:
        self.closed = True

    def __repr__(self):
        return f"<SocketChannel sid={self.sid} closed={self.closed}>"
