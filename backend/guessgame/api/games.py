from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from guessgame.models import Event
from guessgame.services.games import registry
from guessgame.services.games.guesses import submit_guess as svc_submit_guess
from guessgame.services.games.lifecycle import (
    end_game as svc_end_game,
    join_game as svc_join_game,
    start_game as svc_start_game,
)
from guessgame.services.games.payout import claim as svc_claim


games = Blueprint('games', __name__)


@games.route('', methods=['GET'])
def list_games():
    return jsonify(registry.list_games())


@games.route('/next_id', methods=['GET'])
def next_game_id():
    return jsonify({'next_game_id': registry.next_game_id()})


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    data = request.get_json(silent=True) or {}
    game_id = registry.create_game(current_user.address, data.get('max_players'))
    return jsonify({
        'message': 'New game created!',
        'game_id': game_id,
    }), 201


@games.route('/<int:game_id>', methods=['GET'])
def get_game(game_id):
    return jsonify(registry.get_game(game_id))


@games.route('/<int:game_id>/players', methods=['GET'])
def get_players(game_id):
    return jsonify(registry.get_players(game_id))


@games.route('/<int:game_id>/joined/<string:player>', methods=['GET'])
def has_joined(game_id, player):
    return jsonify({'joined': registry.has_joined(game_id, player)})


@games.route('/<int:game_id>/guessed/<string:player>', methods=['GET'])
def has_submitted_guess(game_id, player):
    return jsonify({'guessed': registry.has_submitted_guess(game_id, player)})


@games.route('/<int:game_id>/all_guessed', methods=['GET'])
def all_guessed(game_id):
    return jsonify({'all_guessed': registry.all_guessed(game_id)})


@games.route('/<int:game_id>/guesses/<string:player>/encrypted', methods=['GET'])
def get_encrypted_guess(game_id, player):
    return jsonify({'handle': registry.get_encrypted_guess(game_id, player)})


@games.route('/<int:game_id>/guesses/<string:player>/clear', methods=['GET'])
def get_clear_guess(game_id, player):
    return jsonify({'guess': registry.get_clear_guess(game_id, player)})


@games.route('/<int:game_id>/encrypted_target', methods=['GET'])
def get_encrypted_target(game_id):
    return jsonify({'handle': registry.get_encrypted_target(game_id)})


@games.route('/<int:game_id>/events', methods=['GET'])
def get_events(game_id):
    registry.load_game(game_id)
    events = Event.query.filter_by(game_id=game_id).order_by(Event.id).all()
    return jsonify([e.to_dict() for e in events])


@games.route('/<int:game_id>/join', methods=['POST'])
@login_required
def join_game(game_id):
    data = request.get_json(silent=True) or {}
    svc_join_game(game_id, current_user, data.get('value'))
    return jsonify(registry.get_game(game_id))


@games.route('/<int:game_id>/start', methods=['POST'])
@login_required
def start_game(game_id):
    svc_start_game(game_id)
    return jsonify(registry.get_game(game_id))


@games.route('/<int:game_id>/guess', methods=['POST'])
@login_required
def submit_guess(game_id):
    data = request.get_json(silent=True) or {}
    svc_submit_guess(game_id, current_user.address, data.get('handle'), data.get('proof'))
    return jsonify({'message': 'Guess submitted'})


@games.route('/<int:game_id>/end', methods=['POST'])
@login_required
def end_game(game_id):
    request_id = svc_end_game(game_id)
    payload = registry.get_game(game_id)
    payload['request_id'] = request_id
    return jsonify(payload)


@games.route('/<int:game_id>/claim', methods=['POST'])
@login_required
def claim(game_id):
    amount = svc_claim(game_id, current_user)
    return jsonify({'amount': amount, 'balance': current_user.balance})
