from flask import current_app

from guessgame import db
from guessgame.models import Game, EMPTY_HANDLE, FINISHED
from .errors import GameNotFound, InvalidConfig, PhaseViolation
from .ledger import atomic, emit, next_value, peek_value

MIN_PLAYERS = 2
MAX_PLAYERS = 10
GAME_COUNTER = 'game'


def load_game(game_id, for_update: bool = False) -> Game:
    """Fetch a game by id. Mutating operations pass ``for_update`` to re-read and lock the row."""
    try:
        game_id = int(game_id)
    except (TypeError, ValueError):
        raise GameNotFound(f'Game {game_id} not found')
    if for_update:
        game = db.session.get(Game, game_id, populate_existing=True, with_for_update=True)
    else:
        game = db.session.get(Game, game_id)
    if game is None:
        raise GameNotFound(f'Game {game_id} not found')
    return game


def create_game(creator: str, max_players) -> int:
    if isinstance(max_players, bool) or not isinstance(max_players, int) \
            or not MIN_PLAYERS <= max_players <= MAX_PLAYERS:
        raise InvalidConfig(f'max_players must be an integer in [{MIN_PLAYERS}, {MAX_PLAYERS}]')
    with atomic() as events:
        game_id = next_value(GAME_COUNTER)
        game = Game(id=game_id, creator=creator, max_players=max_players)
        db.session.add(game)
        emit(events, game_id, 'GameCreated', creator=creator, max_players=max_players)
    current_app.logger.info(f"[create] game={game_id} creator={creator} max_players={max_players}")
    return game_id


def next_game_id() -> int:
    return peek_value(GAME_COUNTER)


def list_games():
    return [g.to_dict() for g in Game.query.order_by(Game.id).all()]


def get_game(game_id) -> dict:
    return load_game(game_id).to_dict()


def get_players(game_id):
    return [p.address for p in load_game(game_id).players]


def has_joined(game_id, player: str) -> bool:
    return load_game(game_id).seat_of(player) is not None


def has_submitted_guess(game_id, player: str) -> bool:
    seat = load_game(game_id).seat_of(player)
    return bool(seat and seat.has_guessed)


def all_guessed(game_id) -> bool:
    return load_game(game_id).all_guessed


def get_clear_guess(game_id, player: str):
    game = load_game(game_id)
    if game.phase != FINISHED:
        raise PhaseViolation('Guesses are only revealed once the game is finished')
    seat = game.seat_of(player)
    return seat.clear_guess if seat else None


def get_encrypted_guess(game_id, player: str) -> str:
    seat = load_game(game_id).seat_of(player)
    if seat is None or seat.encrypted_guess is None:
        return EMPTY_HANDLE
    return seat.encrypted_guess


def get_encrypted_target(game_id) -> str:
    return load_game(game_id).encrypted_target or EMPTY_HANDLE
