from flask import Blueprint, jsonify, request
from guessgame.services.games.oracle import decryption_callback, get_request


oracle = Blueprint('oracle', __name__)


@oracle.route('/callback', methods=['POST'])
def callback():
    """Inbound decryption result. Open to any caller; the proof is the only gate."""
    data = request.get_json(silent=True) or {}
    ok = decryption_callback(data.get('request_id'), data.get('cleartexts'), data.get('proof'))
    return jsonify({'ok': ok})


@oracle.route('/requests/<int:request_id>', methods=['GET'])
def get_decryption_request(request_id):
    return jsonify(get_request(request_id))
