import os
import sys
import random
import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from arena import create_app, db, socketio
from arena.services.games.channels import ParticipantChannel
from arena.services.games.scheduler import TimerHandle
from arena.services.games.settlement import Invoice, PaymentGateway, PayoutReceipt


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PAYMENTS_REQUIRED = False
    PLATFORM_ADDRESS = 'house@speed.app'
    PAYMENT_GATEWAY_URL = ''


class ManualScheduler:
    """Virtual clock; callbacks only run when a test advances time."""

    def __init__(self, start=1_000_000.0):
        self.clock = start
        self._timers = []
        self._seq = 0

    def now(self):
        return self.clock

    def call_later(self, delay, fn, *args, name='timer'):
        handle = TimerHandle(name, self.clock + max(0.0, float(delay)))
        self._seq += 1
        self._timers.append((handle.due_at, self._seq, handle, fn, args))
        return handle

    def spawn(self, fn, *args, name='task'):
        return self.call_later(0, fn, *args, name=name)

    def pending(self, prefix=''):
        return [t[2] for t in self._timers if t[2].active and t[2].name.startswith(prefix)]

    def advance(self, seconds):
        target = self.clock + seconds
        while True:
            due = [t for t in self._timers if t[2].active and t[0] <= target]
            if not due:
                break
            due_at, _, handle, fn, args = min(due, key=lambda t: (t[0], t[1]))
            self.clock = max(self.clock, due_at)
            handle.fired = True
            fn(*args)
        self.clock = target
        self._timers = [t for t in self._timers if t[2].active]

    def run_pending(self):
        self.advance(0)


class RecordingChannel(ParticipantChannel):
    def __init__(self):
        self.events = []
        self.closed = False

    def notify(self, event, payload):
        if self.closed:
            return False
        self.events.append((event, payload))
        return True

    def named(self, event):
        return [payload for name, payload in self.events if name == event]

    def last(self, event):
        found = self.named(event)
        return found[-1] if found else None


class RecordingGateway(PaymentGateway):
    def __init__(self, fail=False):
        self.fail = fail
        self.invoices = []
        self.payouts = []

    def create_invoice(self, amount, order_id, memo):
        invoice = Invoice(f"inv_{len(self.invoices) + 1}", amount, payment_request=f"lnbc{amount}test")
        self.invoices.append((invoice, order_id, memo))
        return invoice

    def payout(self, destination, amount, memo):
        self.payouts.append((destination, amount, memo))
        if self.fail:
            return PayoutReceipt(False, reason='declined')
        return PayoutReceipt(True, receipt_id=f"po_{len(self.payouts)}")


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def flask_app(scheduler, gateway):
    application = create_app(TestConfig, scheduler=scheduler, gateway=gateway, rng=random.Random(7))
    with application.app_context():
        # Ensure models are imported so tables are created
        import arena.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def arena(flask_app):
    return flask_app.extensions['arena']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
