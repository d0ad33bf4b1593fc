from flask import current_app

from guessgame.models import FINISHED
from .errors import AlreadyClaimed, InvalidConfig, NotWinner
from .ledger import atomic, emit, lock_account
from .phases import require_phase
from .registry import load_game

TIE_BREAK_POLICIES = ('first_joined', 'last_joined')


def closest_guess(target: int, guesses, policy: str = 'first_joined'):
    """Pick the player whose guess is nearest ``target``.

    ``guesses`` is a sequence of ``(player, value)`` pairs in join order.
    Equal distances go to the earliest joiner under ``first_joined`` and to
    the latest under ``last_joined``.
    """
    if policy not in TIE_BREAK_POLICIES:
        raise InvalidConfig(f'Unknown tie-break policy {policy!r}')
    ordered = list(guesses)
    if policy == 'last_joined':
        ordered.reverse()
    best_player, best_distance = None, None
    for player, value in ordered:
        distance = abs(value - target)
        if best_distance is None or distance < best_distance:
            best_player, best_distance = player, distance
    return best_player


def resolve_winner(game) -> str:
    policy = current_app.config.get('TIE_BREAK', 'first_joined')
    return closest_guess(game.clear_target, [(p.address, p.clear_guess) for p in game.players], policy)


def claim(game_id, account) -> int:
    """Pay the whole prize pool to the winner, once."""
    with atomic() as events:
        account = lock_account(account)
        game = load_game(game_id, for_update=True)
        require_phase(game, FINISHED)
        if account.address != game.winner:
            raise NotWinner('Only the winner may claim')
        if game.prize_claimed:
            raise AlreadyClaimed('Prize already claimed')
        amount = game.prize_pool
        game.prize_claimed = True
        game.prize_pool = 0
        account.balance += amount
        emit(events, game.id, 'Claimed', winner=account.address, amount=amount)
        current_app.logger.info(f"[claim] game={game.id} winner={account.address} amount={amount}")
    return amount
