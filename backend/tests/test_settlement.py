import pytest
import requests

from arena.services.games.match import MatchSummary, Slot
from arena.services.games.settlement import (
    DisabledPaymentGateway,
    HttpPaymentGateway,
    PaymentError,
    SettlementBridge,
    gateway_from_config,
)
from conftest import RecordingChannel, RecordingGateway

PAYOUTS = {300: {'winner': 500, 'platform_fee': 100}}


class FakeResponse:
    def __init__(self, status, body):
        self.status_code = status
        self._body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def summary(winner_is_bot=False, wager=300, channel=None):
    winner = Slot('w', 'winner@speed.app', 'X', is_bot=winner_is_bot, channel=channel)
    loser = Slot('l', 'loser@speed.app', 'O', is_bot=not winner_is_bot)
    return MatchSummary('m1', wager, winner, loser, 'line', rounds=1)


def test_human_winner_and_platform_fee():
    gateway = RecordingGateway()
    channel = RecordingChannel()
    receipts = SettlementBridge(gateway, PAYOUTS, 'house@speed.app').settle(summary(channel=channel))
    assert [p[:2] for p in gateway.payouts] == [('winner@speed.app', 500), ('house@speed.app', 100)]
    assert receipts['winner'].paid and receipts['platform'].paid
    assert channel.last('payoutSent') == {'matchId': 'm1', 'amount': 500, 'currency': 'SATS', 'receiptId': 'po_1'}


def test_bot_winner_only_pays_the_fee():
    gateway = RecordingGateway()
    receipts = SettlementBridge(gateway, PAYOUTS, 'house@speed.app').settle(summary(winner_is_bot=True))
    assert [p[:2] for p in gateway.payouts] == [('house@speed.app', 100)]
    assert 'winner' not in receipts


def test_no_platform_address_skips_fee():
    gateway = RecordingGateway()
    SettlementBridge(gateway, PAYOUTS, '').settle(summary())
    assert len(gateway.payouts) == 1


def test_failure_is_reported_to_winner():
    gateway = RecordingGateway(fail=True)
    channel = RecordingChannel()
    receipts = SettlementBridge(gateway, PAYOUTS, 'house@speed.app').settle(summary(channel=channel))
    assert receipts['winner'].paid is False
    assert receipts['winner'].reason == 'declined'
    assert channel.last('payoutFailed')['amount'] == 500


def test_unknown_wager_pays_nothing():
    gateway = RecordingGateway()
    assert SettlementBridge(gateway, PAYOUTS, 'house@speed.app').settle(summary(wager=7)) == {}
    assert gateway.payouts == []


def test_http_payout_posts_json():
    session = FakeSession(FakeResponse(200, {'id': 'po_9'}))
    gateway = HttpPaymentGateway('https://pay.example/v1/', 'key123', timeout=3, session=session)
    receipt = gateway.payout('winner@speed.app', 500, 'memo')
    assert receipt.paid and receipt.receipt_id == 'po_9'
    call = session.calls[0]
    assert call['url'] == 'https://pay.example/v1/payouts'
    assert call['json'] == {'destination': 'winner@speed.app', 'amount': 500, 'currency': 'SATS', 'memo': 'memo'}
    assert call['headers']['Authorization'] == 'Basic key123'
    assert call['timeout'] == 3


@pytest.mark.parametrize('outcome', [FakeResponse(502, {}), requests.ConnectionError('down')])
def test_http_payout_failure_is_a_receipt(outcome):
    gateway = HttpPaymentGateway('https://pay.example', session=FakeSession(outcome))
    receipt = gateway.payout('winner@speed.app', 500, 'memo')
    assert receipt.paid is False
    assert receipt.reason


def test_http_invoice():
    session = FakeSession(FakeResponse(200, {'id': 'inv_1', 'payment_request': 'lnbc1', 'hosted_invoice_url': 'https://h'}))
    invoice = HttpPaymentGateway('https://pay.example', session=session).create_invoice(300, 'order_1', 'memo')
    assert invoice.invoice_id == 'inv_1'
    assert invoice.payment_request == 'lnbc1'
    assert invoice.hosted_url == 'https://h'
    assert session.calls[0]['url'] == 'https://pay.example/payments'
    assert session.calls[0]['json']['metadata'] == {'order_id': 'order_1'}
    assert 'Authorization' not in session.calls[0]['headers']


def test_http_invoice_without_id_raises():
    session = FakeSession(FakeResponse(200, {}))
    with pytest.raises(PaymentError):
        HttpPaymentGateway('https://pay.example', session=session).create_invoice(300, 'order_1', 'memo')


def test_disabled_gateway():
    gateway = gateway_from_config({'PAYMENT_GATEWAY_URL': ''})
    assert isinstance(gateway, DisabledPaymentGateway)
    assert gateway.payout('a@speed.app', 1, 'memo').paid is False
    with pytest.raises(PaymentError):
        gateway.create_invoice(50, 'order_1', 'memo')
    assert isinstance(gateway_from_config({'PAYMENT_GATEWAY_URL': 'https://pay.example'}), HttpPaymentGateway)
