"""Decryption oracle client.

``request_decryption`` records a pending request and returns immediately;
``decryption_callback`` is the inbound side, callable by anyone at any time.
Trust in a callback comes only from the KMS signature over the cleartexts
and the handles recorded for the request, never from who delivered it.
"""

import json
import time

from flask import current_app

from guessgame import db
from guessgame.fhe.kms import decode_cleartexts
from guessgame.models import DecryptionRequest, DECRYPTION_PENDING, FINISHED
from .errors import InvalidProof, UnknownRequest
from .ledger import atomic, emit, next_value
from .payout import resolve_winner
from .phases import advance
from .registry import load_game

REQUEST_COUNTER = 'decryption_request'


def request_decryption(game, handles) -> int:
    """Register a batched public decryption of ``handles`` for ``game``.

    Must run inside the caller's transaction.
    """
    request_id = next_value(REQUEST_COUNTER)
    current_app.extensions['coprocessor'].allow_public_decryption(handles)
    db.session.add(DecryptionRequest(id=request_id, game_id=game.id, handles=json.dumps(handles)))
    current_app.logger.info(f"[oracle-request] game={game.id} request={request_id} handles={len(handles)}")
    return request_id


def pending_request(request_id) -> DecryptionRequest:
    try:
        request_id = int(request_id)
    except (TypeError, ValueError):
        raise UnknownRequest(f'Unknown decryption request {request_id}')
    request = db.session.get(DecryptionRequest, request_id)
    if request is None or request.status != 'pending':
        raise UnknownRequest(f'No pending decryption request {request_id}')
    return request


def get_request(request_id) -> dict:
    try:
        request = db.session.get(DecryptionRequest, int(request_id))
    except (TypeError, ValueError):
        request = None
    if request is None:
        raise UnknownRequest(f'Unknown decryption request {request_id}')
    return request.to_dict()


def decryption_callback(request_id, cleartexts, proof) -> bool:
    kms = current_app.extensions['kms']
    with atomic() as events:
        request = pending_request(request_id)
        game = load_game(request.game_id, for_update=True)
        if game.phase != DECRYPTION_PENDING or game.pending_request_id != request.id:
            raise UnknownRequest(f'Game {game.id} is not awaiting request {request.id}')

        handles = request.handle_list
        if not kms.verify(request.id, handles, cleartexts, proof):
            current_app.logger.warning(f"[oracle-callback] request={request.id} rejected: bad proof")
            raise InvalidProof('Decryption proof does not validate the cleartexts')
        try:
            values = decode_cleartexts(cleartexts)
        except ValueError as exc:
            raise InvalidProof(f'Malformed cleartexts: {exc}')
        if len(values) != len(handles):
            raise InvalidProof(f'Expected {len(handles)} cleartexts, got {len(values)}')

        revealed = dict(zip(handles, values))
        game.clear_target = revealed[game.encrypted_target]
        for seat in game.players:
            seat.clear_guess = revealed[seat.encrypted_guess]
        game.pending_request_id = None
        request.status = 'fulfilled'
        request.fulfilled_at = time.time()
        advance(game, FINISHED)
        game.winner = resolve_winner(game)

        emit(events, game.id, 'DecryptionCompleted', request_id=request.id, clear_target=game.clear_target)
        emit(events, game.id, 'WinnerDecided', winner=game.winner, prize=game.prize_pool)
        current_app.logger.info(
            f"[oracle-callback] game={game.id} request={request.id} target={game.clear_target} winner={game.winner}"
        )
    return True
