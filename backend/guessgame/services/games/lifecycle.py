from flask import current_app

from guessgame.models import Player, LOBBY, STARTED, DECRYPTION_PENDING, VALUE_MIN, VALUE_MAX
from .errors import AlreadyJoined, GameFull, GuessesIncomplete, InsufficientFee, InsufficientFunds, NotReady
from .ledger import atomic, emit, lock_account
from .oracle import request_decryption
from .phases import advance, require_phase
from .registry import load_game
from .relayer import schedule_delivery


def join_game(game_id, account, value) -> None:
    fee = int(current_app.config['ENTRY_FEE'])
    with atomic() as events:
        account = lock_account(account)
        game = load_game(game_id, for_update=True)
        require_phase(game, LOBBY)
        if game.seat_of(account.address) is not None:
            raise AlreadyJoined('You are already in this game')
        if game.is_full:
            raise GameFull(f'Game {game.id} already has {game.max_players} players')
        if isinstance(value, bool) or not isinstance(value, int) or value != fee:
            raise InsufficientFee(f'Entry fee is exactly {fee}')
        if account.balance < fee:
            raise InsufficientFunds('Balance does not cover the entry fee')
        account.balance -= fee
        game.players.append(Player(address=account.address, seat=game.player_count))
        game.prize_pool += fee
        emit(events, game.id, 'Joined', player=account.address, prize=game.prize_pool)
        current_app.logger.info(f"[join] game={game.id} player={account.address}")


def start_game(game_id) -> None:
    coprocessor = current_app.extensions['coprocessor']
    with atomic() as events:
        game = load_game(game_id, for_update=True)
        require_phase(game, LOBBY)
        if game.player_count != game.max_players:
            raise NotReady(f'Game {game.id} has {game.player_count}/{game.max_players} players')
        game.encrypted_target = coprocessor.random_encrypted(VALUE_MIN, VALUE_MAX)
        advance(game, STARTED)
        emit(events, game.id, 'Started')
        current_app.logger.info(f"[start] game={game.id}")


def end_game(game_id) -> int:
    with atomic() as events:
        game = load_game(game_id, for_update=True)
        require_phase(game, STARTED)
        if not game.all_guessed:
            raise GuessesIncomplete('Every player must submit a guess first')
        handles = [game.encrypted_target] + [p.encrypted_guess for p in game.players]
        request_id = request_decryption(game, handles)
        game.pending_request_id = request_id
        advance(game, DECRYPTION_PENDING)
        emit(events, game.id, 'DecryptionRequested', request_id=request_id)
        current_app.logger.info(f"[end] game={game.id} request={request_id}")
    schedule_delivery(current_app._get_current_object(), request_id)
    return request_id
