"""Exceptions raised by the turn and combat layers."""


class IllegalMoveRequested(ValueError):
    """The rules oracle rejected a move. The board is left untouched."""


class PositionReconstructionFailure(RuntimeError):
    """A rebuilt FEN could not be loaded into the rules oracle."""


class EngineUnavailable(RuntimeError):
    """Stockfish is missing, crashed, timed out or cannot search the position."""


class CombatInProgress(RuntimeError):
    """A move was attempted while a combat session is still live."""


class GameOver(RuntimeError):
    """A move was attempted after the game ended."""


class CombatAborted(RuntimeError):
    """The combat engine was torn down before the session produced a verdict."""
