import threading

import pytest
from flask import Flask

from guessgame import db, coprocessor, kms
from guessgame.fhe.coprocessor import Coprocessor
from guessgame.models import Account, Event, Game, DECRYPTION_PENDING, FINISHED, LOBBY, STARTED
from guessgame.services.games import registry
from guessgame.services.games.errors import (
    AlreadyClaimed, GameNotFound, InsufficientFunds, InvalidConfig, InvalidProof, PhaseViolation, UnknownRequest,
)
from guessgame.services.games.guesses import submit_guess
from guessgame.services.games.lifecycle import end_game, join_game, start_game
from guessgame.services.games.oracle import decryption_callback, get_request
from guessgame.services.games.payout import claim, closest_guess
from guessgame.services.games.phases import advance
from guessgame.services.games.relayer import deliver
from conftest import ENTRY_FEE


def guess(game_id, account, value):
    handle, proof = coprocessor.encrypt_input(value, account.address)
    db.session.commit()
    submit_guess(game_id, account.address, handle, proof)
    return handle


def pending_game(players, values, monkeypatch=None, target=None):
    if target is not None:
        monkeypatch.setattr('guessgame.fhe.coprocessor.secrets.randbelow', lambda n: target - 1)
    game_id = registry.create_game(players[0].address, len(players))
    for account in players:
        join_game(game_id, account, ENTRY_FEE)
    start_game(game_id)
    for account, value in zip(players, values):
        guess(game_id, account, value)
    request_id = end_game(game_id)
    return game_id, request_id


def reveal(request_id):
    request = get_request(request_id)
    return kms.fulfil(request_id, request['handles'])


def test_closest_guess_picks_minimal_distance():
    assert closest_guess(50, [('alice', 77), ('bob', 42)]) == 'bob'
    assert closest_guess(1, [('alice', 100), ('bob', 3), ('carol', 2)]) == 'carol'


def test_closest_guess_tie_break_policies():
    guesses = [('alice', 45), ('bob', 55), ('carol', 90)]
    assert closest_guess(50, guesses, 'first_joined') == 'alice'
    assert closest_guess(50, guesses, 'last_joined') == 'bob'
    with pytest.raises(InvalidConfig):
        closest_guess(50, guesses, 'random')


def test_game_ids_are_sequential(accounts):
    alice = accounts['alice']
    assert registry.next_game_id() == 0
    assert registry.create_game(alice.address, 2) == 0
    with pytest.raises(InvalidConfig):
        registry.create_game(alice.address, 1)
    assert registry.create_game(alice.address, 10) == 1
    assert registry.next_game_id() == 2


def test_phases_only_move_forward(accounts):
    game_id = registry.create_game(accounts['alice'].address, 2)
    game = db.session.get(Game, game_id)
    with pytest.raises(PhaseViolation):
        advance(game, DECRYPTION_PENDING)
    with pytest.raises(PhaseViolation):
        advance(game, LOBBY)
    advance(game, STARTED)
    assert game.phase == STARTED
    db.session.rollback()


def test_failed_join_rolls_back(accounts):
    broke = accounts['carol']
    broke.balance = ENTRY_FEE - 1
    db.session.commit()
    game_id = registry.create_game(accounts['alice'].address, 2)
    with pytest.raises(InsufficientFunds):
        join_game(game_id, broke, ENTRY_FEE)
    game = registry.get_game(game_id)
    assert game['player_count'] == 0
    assert game['prize'] == 0
    assert broke.balance == ENTRY_FEE - 1
    assert Event.query.filter_by(game_id=game_id, name='Joined').count() == 0


def test_join_unknown_game(accounts):
    with pytest.raises(GameNotFound):
        join_game(5, accounts['alice'], ENTRY_FEE)


def test_ciphertext_cannot_be_replayed_in_another_game(accounts):
    alice, bob = accounts['alice'], accounts['bob']
    first = registry.create_game(alice.address, 2)
    second = registry.create_game(alice.address, 2)
    for game_id in (first, second):
        join_game(game_id, alice, ENTRY_FEE)
        join_game(game_id, bob, ENTRY_FEE)
        start_game(game_id)
    handle, proof = coprocessor.encrypt_input(33, alice.address)
    db.session.commit()
    submit_guess(first, alice.address, handle, proof)
    with pytest.raises(InvalidProof):
        submit_guess(second, alice.address, handle, proof)
    assert registry.has_submitted_guess(second, alice.address) is False


def test_input_proof_is_bound_to_instance(accounts):
    alice, bob = accounts['alice'], accounts['bob']
    other_app = Flask('elsewhere')
    other_app.config.update(FHE_KEY_SEED='test-fhe-seed', INSTANCE_ID='another-instance')
    foreign = Coprocessor(other_app)

    game_id = registry.create_game(alice.address, 2)
    join_game(game_id, alice, ENTRY_FEE)
    join_game(game_id, bob, ENTRY_FEE)
    start_game(game_id)
    handle, proof = foreign.encrypt_input(40, alice.address)
    db.session.commit()
    with pytest.raises(InvalidProof):
        submit_guess(game_id, alice.address, handle, proof)


def test_target_is_never_revealed_before_callback(accounts):
    alice, bob = accounts['alice'], accounts['bob']
    game_id, request_id = pending_game([alice, bob], [10, 20])
    game = registry.get_game(game_id)
    assert game['phase'] == DECRYPTION_PENDING
    assert game['clear_target'] is None
    assert game['winner'] is None
    with pytest.raises(PhaseViolation):
        registry.get_clear_guess(game_id, alice.address)
    assert get_request(request_id)['status'] == 'pending'


def test_callback_with_another_requests_proof_is_rejected(accounts):
    alice, bob, carol = accounts['alice'], accounts['bob'], accounts['carol']
    game_a, request_a = pending_game([alice, bob], [10, 20])
    game_b, request_b = pending_game([bob, carol], [30, 40])
    cleartexts_b, proof_b = reveal(request_b)
    with pytest.raises(InvalidProof):
        decryption_callback(request_a, cleartexts_b, proof_b)
    assert registry.get_game(game_a)['phase'] == DECRYPTION_PENDING
    assert decryption_callback(request_b, cleartexts_b, proof_b) is True
    assert registry.get_game(game_b)['phase'] == FINISHED


def test_callback_rejects_garbage_request_ids(app_ctx):
    for request_id in (None, 'abc', 12):
        with pytest.raises(UnknownRequest):
            decryption_callback(request_id, '0x00', '0x00')


def test_stuck_request_blocks_game_without_fallback(accounts):
    alice, bob = accounts['alice'], accounts['bob']
    game_id, _ = pending_game([alice, bob], [10, 20])
    with pytest.raises(PhaseViolation):
        end_game(game_id)
    with pytest.raises(PhaseViolation):
        claim(game_id, alice)
    assert registry.get_game(game_id)['phase'] == DECRYPTION_PENDING


def test_winner_claims_exactly_once(accounts, monkeypatch):
    alice, bob, carol = accounts['alice'], accounts['bob'], accounts['carol']
    game_id, request_id = pending_game([alice, bob, carol], [10, 64, 99], monkeypatch, target=60)
    assert decryption_callback(request_id, *reveal(request_id)) is True
    game = registry.get_game(game_id)
    assert game['clear_target'] == 60
    assert game['winner'] == bob.address
    assert registry.get_clear_guess(game_id, carol.address) == 99

    balance_before = bob.balance
    assert claim(game_id, bob) == 3 * ENTRY_FEE
    assert bob.balance == balance_before + 3 * ENTRY_FEE
    with pytest.raises(AlreadyClaimed):
        claim(game_id, bob)
    assert bob.balance == balance_before + 3 * ENTRY_FEE
    assert registry.get_game(game_id)['prize_claimed'] is True


def test_configured_tie_break_applies(app_ctx, accounts, monkeypatch):
    app_ctx.config['TIE_BREAK'] = 'last_joined'
    alice, bob = accounts['alice'], accounts['bob']
    game_id, request_id = pending_game([alice, bob], [45, 55], monkeypatch, target=50)
    decryption_callback(request_id, *reveal(request_id))
    assert registry.get_game(game_id)['winner'] == bob.address


def test_reads_do_not_mutate(accounts):
    alice, bob = accounts['alice'], accounts['bob']
    game_id, _ = pending_game([alice, bob], [10, 20])
    snapshot = registry.get_game(game_id)
    events = Event.query.count()
    for _ in range(3):
        registry.get_players(game_id)
        registry.has_joined(game_id, alice.address)
        registry.all_guessed(game_id)
        registry.get_encrypted_guess(game_id, bob.address)
        registry.get_encrypted_target(game_id)
        registry.next_game_id()
    assert registry.get_game(game_id) == snapshot
    assert Event.query.count() == events


def test_relayer_delivers_pending_request(app_ctx, accounts):
    alice, bob = accounts['alice'], accounts['bob']
    game_id, request_id = pending_game([alice, bob], [10, 20])
    assert deliver(app_ctx, request_id) is True
    assert registry.get_game(game_id)['phase'] == FINISHED
    # Second delivery finds nothing pending
    assert deliver(app_ctx, request_id) is False
    assert deliver(app_ctx, 999) is False


def seed_accounts(*names):
    created = []
    for name in names:
        account = Account(username=name, balance=10 * ENTRY_FEE)
        account.set_password('password')
        db.session.add(account)
        created.append(account)
    db.session.commit()
    return created


def test_join_debits_balance_committed_by_another_session(file_app):
    with file_app.app_context():
        alice, bob = seed_accounts('alice', 'bob')
        first = registry.create_game(alice.address, 2)
        second = registry.create_game(alice.address, 2)
        # Loaded up front, like current_user at the start of a request
        assert alice.balance == 10 * ENTRY_FEE

        with file_app.app_context():
            join_game(first, db.session.get(Account, alice.id), ENTRY_FEE)
        join_game(second, alice, ENTRY_FEE)

        pools = registry.get_game(first)['prize'] + registry.get_game(second)['prize']
        assert pools == 2 * ENTRY_FEE
        assert db.session.get(Account, alice.id).balance == 10 * ENTRY_FEE - pools


def test_claim_credits_balance_committed_by_another_session(file_app, monkeypatch):
    with file_app.app_context():
        alice, bob, carol = seed_accounts('alice', 'bob', 'carol')
        game_id, request_id = pending_game([alice, bob], [10, 64], monkeypatch, target=60)
        decryption_callback(request_id, *reveal(request_id))
        lobby = registry.create_game(carol.address, 2)
        assert bob.balance == 9 * ENTRY_FEE

        with file_app.app_context():
            join_game(lobby, db.session.get(Account, bob.id), ENTRY_FEE)
        assert claim(game_id, bob) == 2 * ENTRY_FEE

        assert db.session.get(Account, bob.id).balance == 8 * ENTRY_FEE + 2 * ENTRY_FEE
        assert registry.get_game(lobby)['prize'] == ENTRY_FEE


def test_prize_is_paid_once_across_sessions(file_app, monkeypatch):
    with file_app.app_context():
        alice, bob = seed_accounts('alice', 'bob')
        game_id, request_id = pending_game([alice, bob], [10, 64], monkeypatch, target=60)
        decryption_callback(request_id, *reveal(request_id))
        game = db.session.get(Game, game_id)
        assert game.prize_claimed is False

        with file_app.app_context():
            assert claim(game_id, db.session.get(Account, bob.id)) == 2 * ENTRY_FEE
        with pytest.raises(AlreadyClaimed):
            claim(game_id, bob)

        assert db.session.get(Account, bob.id).balance == 9 * ENTRY_FEE + 2 * ENTRY_FEE
        assert Event.query.filter_by(game_id=game_id, name='Claimed').count() == 1


def test_concurrent_joins_each_pay_the_fee(file_app):
    with file_app.app_context():
        alice, bob = seed_accounts('alice', 'bob')
        alice_id = alice.id
        games = [registry.create_game(bob.address, 2) for _ in range(2)]

    ready = threading.Barrier(2)
    errors = []

    def worker(game_id):
        try:
            with file_app.app_context():
                account = db.session.get(Account, alice_id)
                assert account.balance == 10 * ENTRY_FEE
                ready.wait(timeout=5)
                join_game(game_id, account, ENTRY_FEE)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(game_id,)) for game_id in games]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    with file_app.app_context():
        assert db.session.get(Account, alice_id).balance == 8 * ENTRY_FEE
        assert sum(registry.get_game(game_id)['prize'] for game_id in games) == 2 * ENTRY_FEE
