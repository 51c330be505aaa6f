from flask import Blueprint, jsonify
from arena.services.games.matchmaking import coordinator

main = Blueprint('main', __name__)

@main.route('/', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'liveMatches': len(coordinator().registry)})
