from flask import Blueprint, jsonify, current_app
from arena.services.games.matchmaking import coordinator


games = Blueprint('games', __name__)


@games.route('/payouts', methods=['GET'])
def payouts():
    table = current_app.config['PAYOUTS']
    return jsonify({
        'wagers': current_app.config['ALLOWED_WAGERS'],
        'payouts': {str(wager): table[wager] for wager in current_app.config['ALLOWED_WAGERS'] if wager in table},
        'currency': 'SATS',
    })


@games.route('/<match_id>/state', methods=['GET'])
def match_state(match_id):
    state = coordinator().state(match_id)
    if state is None:
        return jsonify({'error': 'Match not found'}), 404
    return jsonify(state)


@games.route('/stats', methods=['GET'])
def bot_stats():
    return jsonify(coordinator().stats.to_dict())
