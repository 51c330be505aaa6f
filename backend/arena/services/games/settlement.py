"""Payment rail: invoices for entry wagers and payouts for finished matches."""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import requests

from .channels import PAYOUT_FAILED, PAYOUT_SENT
from .match import MatchSummary

CURRENCY = 'SATS'
INVOICE_TTL_SEC = 600


class PaymentError(Exception):
    """The gateway could not create an invoice."""


@dataclass(frozen=True)
class Invoice:
    invoice_id: str
    amount: int
    payment_request: Optional[str] = None
    hosted_url: Optional[str] = None


@dataclass(frozen=True)
class PayoutReceipt:
    paid: bool
    receipt_id: Optional[str] = None
    reason: Optional[str] = None


class PaymentGateway:
    def create_invoice(self, amount: int, order_id: str, memo: str) -> Invoice:
        raise NotImplementedError

    def payout(self, destination: str, amount: int, memo: str) -> PayoutReceipt:
        raise NotImplementedError


class HttpPaymentGateway(PaymentGateway):
    """JSON-over-HTTP gateway client. One attempt per call, no retries."""

    def __init__(self, base_url: str, api_key: str = '', timeout: float = 10.0, session=None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict) -> Dict:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Basic {self.api_key}"
        resp = self.session.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def create_invoice(self, amount, order_id, memo):
        payload = {
            'currency': CURRENCY,
            'amount': amount,
            'target_currency': CURRENCY,
            'ttl': INVOICE_TTL_SEC,
            'description': memo,
            'metadata': {'order_id': order_id},
        }
        try:
            data = self._post('/payments', payload)
        except (requests.RequestException, ValueError) as exc:
            raise PaymentError(f"invoice request failed: {exc}") from exc
        invoice_id = data.get('id')
        if not invoice_id:
            raise PaymentError('gateway returned no invoice id')
        hosted_url = data.get('hosted_invoice_url') or data.get('checkout_url')
        payment_request = data.get('payment_request') or data.get('invoice') or hosted_url
        return Invoice(invoice_id, amount, payment_request=payment_request, hosted_url=hosted_url)

    def payout(self, destination, amount, memo):
        payload = {'destination': destination, 'amount': amount, 'currency': CURRENCY, 'memo': memo}
        try:
            data = self._post('/payouts', payload)
        except (requests.RequestException, ValueError) as exc:
            return PayoutReceipt(False, reason=str(exc))
        return PayoutReceipt(True, receipt_id=data.get('id'))


class DisabledPaymentGateway(PaymentGateway):
    """Used when no gateway URL is configured; nothing ever gets paid."""

    reason = 'payment gateway not configured'

    def create_invoice(self, amount, order_id, memo):
        raise PaymentError(self.reason)

    def payout(self, destination, amount, memo):
        return PayoutReceipt(False, reason=self.reason)


def gateway_from_config(config) -> PaymentGateway:
    url = config.get('PAYMENT_GATEWAY_URL')
    if not url:
        return DisabledPaymentGateway()
    return HttpPaymentGateway(url, config.get('PAYMENT_GATEWAY_KEY', ''), timeout=config.get('PAYMENT_TIMEOUT_SEC', 10))


class SettlementBridge:
    """Turns a finished match into payouts.

    A human winner gets the tier's winner amount and the platform address
    gets its fee. When the automated side wins only the fee is paid.
    Failures are reported and logged; the match result never changes.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        payouts: Mapping[int, Mapping[str, int]],
        platform_address: str = '',
        logger: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.payouts = payouts
        self.platform_address = platform_address
        self.logger = logger or logging.getLogger(__name__)

    def settle(self, summary: MatchSummary) -> Dict[str, PayoutReceipt]:
        table = self.payouts.get(summary.wager)
        if table is None:
            self.logger.error(f"[payout-skip] match={summary.match_id} wager={summary.wager} no payout table")
            return {}

        receipts = {}
        winner = summary.winner
        if not winner.is_bot:
            amount = table['winner']
            receipt = self.gateway.payout(winner.address, amount, f"Tic-Tac-Toe win {summary.match_id}")
            receipts['winner'] = receipt
            self._report(summary, winner, amount, receipt)

        fee = table.get('platform_fee', 0)
        if self.platform_address and fee:
            receipt = self.gateway.payout(self.platform_address, fee, f"Platform fee {summary.match_id}")
            receipts['platform'] = receipt
            self._log(summary, 'platform', self.platform_address, fee, receipt)
        return receipts

    def _report(self, summary, slot, amount, receipt) -> None:
        self._log(summary, 'winner', slot.address, amount, receipt)
        if slot.channel is None:
            return
        if receipt.paid:
            slot.channel.notify(PAYOUT_SENT, {
                'matchId': summary.match_id,
                'amount': amount,
                'currency': CURRENCY,
                'receiptId': receipt.receipt_id,
            })
        else:
            slot.channel.notify(PAYOUT_FAILED, {
                'matchId': summary.match_id,
                'amount': amount,
                'currency': CURRENCY,
                'message': 'Payout failed, please contact support',
            })

    def _log(self, summary, role, destination, amount, receipt) -> None:
        if receipt.paid:
            self.logger.info(
                f"[payout-sent] match={summary.match_id} role={role} to={destination} amount={amount} receipt={receipt.receipt_id}"
            )
        else:
            self.logger.error(
                f"[payout-failed] match={summary.match_id} role={role} to={destination} amount={amount} reason={receipt.reason}"
            )
