"""Domain errors raised by game services.

Every failure is surfaced to the caller of the failing operation and the
surrounding transaction is rolled back; see ``ledger.atomic``.
"""


class GameError(Exception):
    status_code = 400
    code = 'game_error'

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {'error': self.code, 'message': self.message}


# configuration
class InvalidConfig(GameError):
    code = 'invalid_config'


class GameNotFound(GameError):
    status_code = 404
    code = 'game_not_found'


# phase
class PhaseViolation(GameError):
    status_code = 409
    code = 'phase_violation'


# authorization
class NotAPlayer(GameError):
    status_code = 403
    code = 'not_a_player'


class NotWinner(GameError):
    status_code = 403
    code = 'not_winner'


class AccessDenied(GameError):
    status_code = 403
    code = 'access_denied'


# state
class AlreadyJoined(GameError):
    status_code = 409
    code = 'already_joined'


class GameFull(GameError):
    status_code = 409
    code = 'game_full'


class NotReady(GameError):
    status_code = 409
    code = 'not_ready'


class AlreadyGuessed(GameError):
    status_code = 409
    code = 'already_guessed'


class GuessesIncomplete(GameError):
    status_code = 409
    code = 'guesses_incomplete'


class AlreadyClaimed(GameError):
    status_code = 409
    code = 'already_claimed'


# payment
class InsufficientFee(GameError):
    status_code = 402
    code = 'insufficient_fee'


class InsufficientFunds(GameError):
    status_code = 402
    code = 'insufficient_funds'


# correlation
class UnknownRequest(GameError):
    status_code = 404
    code = 'unknown_request'


class UnknownHandle(GameError):
    status_code = 404
    code = 'unknown_handle'


# cryptographic
class InvalidProof(GameError):
    status_code = 422
    code = 'invalid_proof'
