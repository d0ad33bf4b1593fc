from flask import current_app

from guessgame.models import Player, STARTED
from .errors import AlreadyGuessed, InvalidProof, NotAPlayer
from .ledger import atomic, emit
from .phases import require_phase
from .registry import load_game


def submit_guess(game_id, player: str, handle, proof) -> None:
    """Admit an encrypted guess for ``player``.

    The input proof must bind ``handle`` to the player and to this instance,
    and the handle may not already back a guess in any game.
    """
    coprocessor = current_app.extensions['coprocessor']
    with atomic() as events:
        game = load_game(game_id, for_update=True)
        require_phase(game, STARTED)
        seat = game.seat_of(player)
        if seat is None:
            raise NotAPlayer('You are not a player in this game')
        if seat.has_guessed:
            raise AlreadyGuessed('Already guessed in this game')
        if not coprocessor.verify_input(handle, player, proof):
            raise InvalidProof('Input proof does not match ciphertext, submitter or instance')
        if Player.query.filter_by(encrypted_guess=handle).first() is not None:
            raise InvalidProof('Ciphertext is already bound to a guess')
        seat.encrypted_guess = handle
        emit(events, game.id, 'Guessed', player=player)
        current_app.logger.info(f"[guess] game={game.id} player={player}")
