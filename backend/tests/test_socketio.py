from arena import socketio


def events(sio_client, name):
    return [pkt['args'][0] for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def connect(flask_app):
    test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client(), namespace='/ws')
    test_client.get_received('/ws')
    return test_client


def test_socket_connect_and_ping(sio_client):
    assert sio_client.is_connected('/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)
    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    assert events(sio_client, 'pong') == [{'t': 1}]


def test_join_validates_input(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('joinGame', {'wager': 42, 'address': 'alice'}, namespace='/ws')
    assert events(sio_client, 'error') == [{'message': 'Invalid wager amount'}]
    sio_client.emit('joinGame', {'wager': 50, 'address': '  '}, namespace='/ws')
    assert events(sio_client, 'error') == [{'message': 'Address is required'}]


def test_join_normalizes_address_and_waits(sio_client, arena):
    sio_client.get_received('/ws')
    sio_client.emit('joinGame', {'wager': 50, 'address': 'alice'}, namespace='/ws')
    waiting = events(sio_client, 'waitingForOpponent')
    assert len(waiting) == 1
    match = arena.registry.get(waiting[0]['matchId'])
    assert match.slots[0].address == 'alice@speed.app'


def test_two_sockets_play(flask_app, sio_client, scheduler):
    sio_client.get_received('/ws')
    other = connect(flask_app)
    sio_client.emit('joinGame', {'wager': 300, 'address': 'alice@speed.app'}, namespace='/ws')
    other.emit('joinGame', {'wager': 300, 'address': 'bob'}, namespace='/ws')
    assert len(events(sio_client, 'matchFound')) == 1
    assert len(events(other, 'matchFound')) == 1

    sio_client.emit('makeMove', {'cell': 4}, namespace='/ws')
    assert events(sio_client, 'error') == [{'message': 'Match not started', 'reason': 'not_playing'}]

    scheduler.advance(5)
    alice_turn = events(sio_client, 'turnAdvanced')[-1]
    bob_events = events(other, 'turnAdvanced')
    mover, waiter = (sio_client, other) if alice_turn['yourTurn'] else (other, sio_client)
    assert bob_events[-1]['yourTurn'] is not alice_turn['yourTurn']

    waiter.emit('makeMove', {'cell': 0}, namespace='/ws')
    assert events(waiter, 'error')[0]['reason'] == 'not_your_turn'
    mover.emit('makeMove', {'cell': 0}, namespace='/ws')
    assert events(waiter, 'turnAdvanced')[-1]['lastMove']['cell'] == 0

    mover.emit('resign', namespace='/ws')
    assert events(waiter, 'matchEnded')[-1]['result'] == 'win'
    if other.is_connected('/ws'):
        other.disconnect(namespace='/ws')


def test_disconnect_forfeits(flask_app, sio_client, scheduler):
    sio_client.get_received('/ws')
    other = connect(flask_app)
    sio_client.emit('joinGame', {'wager': 500, 'address': 'alice'}, namespace='/ws')
    other.emit('joinGame', {'wager': 500, 'address': 'bob'}, namespace='/ws')
    scheduler.advance(5)
    sio_client.get_received('/ws')
    other.disconnect(namespace='/ws')
    ended = events(sio_client, 'matchEnded')
    assert ended[-1]['reason'] == 'disconnect'
    assert ended[-1]['result'] == 'win'


def test_resign_outside_a_match(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('resign', namespace='/ws')
    assert events(sio_client, 'error') == [{'message': 'Not in an active match'}]


def test_payment_request_then_webhook(flask_app, sio_client, client, gateway):
    flask_app.config['PAYMENTS_REQUIRED'] = True
    sio_client.get_received('/ws')
    sio_client.emit('joinGame', {'wager': 1000, 'address': 'alice'}, namespace='/ws')
    request = events(sio_client, 'paymentRequest')
    assert request[0]['invoiceId'] == 'inv_1'
    assert request[0]['amount'] == 1000
    assert gateway.invoices[0][0].amount == 1000

    res = client.post('/api/payments/webhook', json={'event_type': 'invoice.paid', 'data': {'object': {'id': 'inv_1'}}})
    assert res.status_code == 200
    assert len(events(sio_client, 'waitingForOpponent')) == 1


def test_non_object_payloads_get_an_error(sio_client, arena):
    sio_client.get_received('/ws')
    sio_client.emit('joinGame', 'hello', namespace='/ws')
    sio_client.emit('makeMove', [4], namespace='/ws')
    sio_client.emit('joinGame', namespace='/ws')
    sio_client.emit('makeMove', namespace='/ws')
    assert events(sio_client, 'error') == [{'message': 'Invalid payload'}] * 4
    assert len(arena.registry) == 0
    assert sio_client.is_connected('/ws')
