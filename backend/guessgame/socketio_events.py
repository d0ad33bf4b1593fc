from flask_socketio import join_room, leave_room, emit
from guessgame import socketio, db
from guessgame.models import Game


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_game(data):
    """Subscribe this socket to a game's event stream."""
    game_id = (data or {}).get('game_id')
    if game_id is None:
        emit('error', {'message': 'game_id is required'})
        return
    try:
        game = db.session.get(Game, int(game_id))
    except (TypeError, ValueError):
        game = None
    if game is None:
        emit('error', {'message': f'Game {game_id} not found'})
        return
    room = f"game:{game.id}"
    join_room(room)
    emit('joined', {'room': room, 'game': game.to_dict()})


def handle_leave_game(data):
    game_id = (data or {}).get('game_id')
    if game_id is None:
        emit('error', {'message': 'game_id is required'})
        return
    room = f"game:{game_id}"
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_game', handle_join_game, namespace='/ws')
    socketio.on_event('leave_game', handle_leave_game, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_game', handle_join_game, namespace='/')
        socketio.on_event('leave_game', handle_leave_game, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
