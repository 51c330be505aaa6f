from flask import Blueprint, jsonify, request, current_app
from arena.services.games.matchmaking import coordinator


payments = Blueprint('payments', __name__)

PAID_EVENTS = ('invoice.paid', 'payment.paid', 'payment.confirmed')
FAILED_EVENTS = ('payment.failed',)


def _invoice_id(event):
    data = event.get('data')
    if not isinstance(data, dict):
        return None
    obj = data.get('object')
    if obj is not None and not isinstance(obj, dict):
        return None
    invoice_id = (obj or {}).get('id') or data.get('id')
    return invoice_id if isinstance(invoice_id, str) else None


@payments.route('/webhook', methods=['POST'])
def webhook():
    event = request.get_json(silent=True)
    if not isinstance(event, dict):
        return jsonify({'error': 'Invalid payload'}), 400
    event_type = event.get('event_type')
    current_app.logger.info(f"[webhook] event={event_type}")

    if event_type not in PAID_EVENTS + FAILED_EVENTS:
        return jsonify({'received': True, 'ignored': event_type}), 200

    invoice_id = _invoice_id(event)
    if not invoice_id:
        return jsonify({'error': 'No invoice id in webhook payload'}), 400

    arena = coordinator()
    if event_type in PAID_EVENTS:
        match = arena.confirm_payment(invoice_id)
        return jsonify({'received': True, 'matched': match is not None}), 200

    entry = arena.fail_payment(invoice_id)
    if entry is not None:
        entry.channel.notify('error', {'message': 'Payment failed. Please try again.'})
    return jsonify({'received': True}), 200
