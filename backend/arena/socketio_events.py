from flask_socketio import emit
from arena import socketio
from arena.services.games.channels import SocketChannel
from arena.services.games.matchmaking import coordinator
from arena.services.games.settlement import PaymentError
from flask import current_app, request
from typing import Dict
import time


_channels: Dict[str, SocketChannel] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _channel_for(sid: str) -> SocketChannel:
    channel = _channels.get(sid)
    if channel is None or channel.closed:
        channel = SocketChannel(sid, namespace=request.namespace)
        _channels[sid] = channel
    return channel


def _normalize_address(raw, domain: str):
    address = (raw or '').strip() if isinstance(raw, str) else ''
    if not address:
        return None
    if '@' not in address:
        address = f"{address}@{domain}"
    return address


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    sid = _get_sid()
    channel = _channels.pop(sid, None)
    if channel is not None:
        channel.close()
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")
    coordinator().on_disconnect(sid)


def handle_join_game(data=None):
    if not isinstance(data, dict):
        emit('error', {'message': 'Invalid payload'})
        return
    config = current_app.config
    wager = data.get('wager')
    if isinstance(wager, bool) or wager not in config['ALLOWED_WAGERS']:
        emit('error', {'message': 'Invalid wager amount'})
        return
    address = _normalize_address(data.get('address'), config['ADDRESS_DOMAIN'])
    if not address:
        emit('error', {'message': 'Address is required'})
        return

    sid = _get_sid()
    arena = coordinator()
    channel = _channel_for(sid)
    current_app.logger.info(f"[join] sid={sid} wager={wager} address={address}")

    if not config['PAYMENTS_REQUIRED']:
        arena.on_participant_ready(sid, address, wager, channel)
        return

    order_id = f"order_{sid}_{int(time.time() * 1000)}"
    try:
        invoice = arena.gateway.create_invoice(wager, order_id, f"Tic-Tac-Toe Game - {wager} SATS")
    except PaymentError as exc:
        current_app.logger.error(f"[invoice-failed] sid={sid} wager={wager} error={exc}")
        emit('error', {'message': 'Could not create payment request'})
        return
    arena.await_payment(invoice.invoice_id, sid, address, wager, channel)
    emit('paymentRequest', {
        'invoiceId': invoice.invoice_id,
        'paymentRequest': invoice.payment_request,
        'hostedInvoiceUrl': invoice.hosted_url,
        'amount': invoice.amount,
        'currency': 'SATS',
    })


def handle_make_move(data=None):
    if not isinstance(data, dict):
        emit('error', {'message': 'Invalid payload'})
        return
    cell = data.get('cell')
    result = coordinator().make_move(_get_sid(), cell)
    if not result.ok:
        emit('error', {'message': result.message, 'reason': result.reason})


def handle_resign(data=None):
    result = coordinator().resign(_get_sid())
    if result is None:
        emit('error', {'message': 'Not in an active match'})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO handlers on '/ws', and on '/' under testing."""
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('joinGame', handle_join_game, namespace=namespace)
        socketio.on_event('makeMove', handle_make_move, namespace=namespace)
        socketio.on_event('resign', handle_resign, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
