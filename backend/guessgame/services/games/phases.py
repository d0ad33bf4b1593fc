from guessgame.models import PHASES
from .errors import PhaseViolation


def advance(game, phase: str) -> None:
    """Move ``game`` to ``phase``, which must be the immediate successor."""
    if PHASES.index(phase) != PHASES.index(game.phase) + 1:
        raise PhaseViolation(f'Cannot move game {game.id} from {game.phase} to {phase}')
    game.phase = phase


def require_phase(game, phase: str) -> None:
    if game.phase != phase:
        raise PhaseViolation(f'Game {game.id} is {game.phase}, expected {phase}')
