from guessgame import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
import json
import secrets
import time

# Placeholder returned for ciphertext slots that were never written
EMPTY_HANDLE = '0x' + '00' * 32

LOBBY = 'lobby'
STARTED = 'started'
DECRYPTION_PENDING = 'decryption_pending'
FINISHED = 'finished'
PHASES = (LOBBY, STARTED, DECRYPTION_PENDING, FINISHED)

# Domain shared by the secret target and every guess
VALUE_MIN = 1
VALUE_MAX = 100


def generate_address():
    """Generate a fresh 20-byte hex identity for an account."""
    while True:
        address = '0x' + secrets.token_hex(20)
        if not Account.query.filter_by(address=address).first():
            return address


class Account(UserMixin, db.Model):
    __tablename__ = 'account'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    address = db.Column(db.String(42), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    balance = db.Column(db.BigInteger, nullable=False, default=0)

    def __init__(self, **kwargs):
        super(Account, self).__init__(**kwargs)
        if not self.address:
            self.address = generate_address()

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'address': self.address,
            'balance': self.balance,
        }


class Counter(db.Model):
    """Named monotonically increasing sequence (game ids, request ids)."""
    __tablename__ = 'counter'
    name = db.Column(db.String(32), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    creator = db.Column(db.String(42), nullable=False)
    max_players = db.Column(db.Integer, nullable=False)
    phase = db.Column(db.String(32), nullable=False, default=LOBBY)
    prize_pool = db.Column(db.BigInteger, nullable=False, default=0)
    encrypted_target = db.Column(db.String(66), nullable=True)
    pending_request_id = db.Column(db.Integer, nullable=True)
    clear_target = db.Column(db.Integer, nullable=True)
    winner = db.Column(db.String(42), nullable=True)
    prize_claimed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    players = db.relationship('Player', back_populates='game', order_by='Player.seat')

    @property
    def player_count(self):
        return len(self.players)

    @property
    def is_full(self):
        return self.player_count >= self.max_players

    @property
    def all_guessed(self):
        return bool(self.players) and all(p.has_guessed for p in self.players)

    def seat_of(self, address):
        for p in self.players:
            if p.address == address:
                return p
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'creator': self.creator,
            'max_players': self.max_players,
            'phase': self.phase,
            'player_count': self.player_count,
            'prize': self.prize_pool,
            'winner': self.winner,
            'prize_claimed': self.prize_claimed,
            'clear_target': self.clear_target,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('game_id', 'address', name='uq_player_game_address'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    address = db.Column(db.String(42), nullable=False)
    seat = db.Column(db.Integer, nullable=False)  # join order
    # A handle can back at most one guess anywhere
    encrypted_guess = db.Column(db.String(66), nullable=True, unique=True)
    clear_guess = db.Column(db.Integer, nullable=True)
    game = db.relationship('Game', back_populates='players')

    @property
    def has_guessed(self):
        return self.encrypted_guess is not None

    def to_dict(self):
        return {
            'address': self.address,
            'seat': self.seat,
            'has_guessed': self.has_guessed,
        }


class Ciphertext(db.Model):
    """A stored encrypted value, addressed by its opaque handle."""
    __tablename__ = 'ciphertext'
    handle = db.Column(db.String(66), primary_key=True)
    nonce = db.Column(db.LargeBinary, nullable=False)
    blob = db.Column(db.LargeBinary, nullable=False)
    # Account allowed to user-decrypt; None for values only the escrow may reveal
    owner = db.Column(db.String(42), nullable=True)
    publicly_decryptable = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)


class DecryptionRequest(db.Model):
    __tablename__ = 'decryption_request'
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    handles = db.Column(db.Text, nullable=False)  # JSON-encoded list, target first
    status = db.Column(db.String(16), nullable=False, default='pending')  # pending, fulfilled
    requested_at = db.Column(db.Float, nullable=False, default=time.time)
    fulfilled_at = db.Column(db.Float, nullable=True)

    @property
    def handle_list(self):
        return json.loads(self.handles)

    def to_dict(self):
        return {
            'request_id': self.id,
            'game_id': self.game_id,
            'handles': self.handle_list,
            'status': self.status,
            'requested_at': self.requested_at,
            'fulfilled_at': self.fulfilled_at,
        }


class Event(db.Model):
    __tablename__ = 'event'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        data = json.loads(self.payload)
        data['event'] = self.name
        return data
