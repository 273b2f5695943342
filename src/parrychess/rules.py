"""Rules oracle: the authoritative chess position, backed by python-chess.

The oracle is treated as a function of a FEN snapshot. After a combat whose
outcome no chess move can express, the coordinator rebuilds a FEN from the
physical board and loads it here wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import chess

from parrychess.errors import IllegalMoveRequested, PositionReconstructionFailure

logger = logging.getLogger(__name__)

# Odd check configurations that combat can legitimately produce: a blocked
# capture passes the turn even when the mover's king stayed in check.
TOLERATED_STATUS = (
    chess.STATUS_OPPOSITE_CHECK
    | chess.STATUS_TOO_MANY_CHECKERS
    | chess.STATUS_IMPOSSIBLE_CHECK
)


@dataclass
class AppliedMove:
    uci: str
    san: str
    promotion: chess.PieceType | None


def game_status(board: chess.Board) -> str:
    if board.is_checkmate():
        return "checkmate"
    if board.is_stalemate():
        return "stalemate"
    if board.is_insufficient_material() or board.can_claim_draw():
        return "draw"
    return "playing"


def game_result(board: chess.Board) -> str | None:
    if board.is_checkmate():
        return "0-1" if board.turn == chess.WHITE else "1-0"
    if board.is_stalemate() or board.is_insufficient_material() or board.can_claim_draw():
        return "1/2-1/2"
    return None


class RulesOracle:
    def __init__(self, fen: str = chess.STARTING_FEN):
        self._board = chess.Board(fen)

    @property
    def board(self) -> chess.Board:
        """A copy of the current position."""
        return self._board.copy()

    @property
    def turn(self) -> chess.Color:
        return self._board.turn

    @property
    def fullmove_number(self) -> int:
        return self._board.fullmove_number

    def moves_from(self, square: chess.Square) -> list[chess.Square]:
        destinations = []
        for move in self._board.legal_moves:
            if move.from_square == square and move.to_square not in destinations:
                destinations.append(move.to_square)
        return destinations

    def legal_moves(self) -> list[chess.Move]:
        return list(self._board.legal_moves)

    def find_move(
        self,
        from_square: chess.Square,
        to_square: chess.Square,
        promotion: chess.PieceType | None = None,
    ) -> chess.Move | None:
        """Match a legal move. Promotions default to a queen."""
        piece = self._board.piece_at(from_square)
        if (
            promotion is None
            and piece is not None
            and piece.piece_type == chess.PAWN
            and chess.square_rank(to_square) in (0, 7)
        ):
            promotion = chess.QUEEN
        move = chess.Move(from_square, to_square, promotion=promotion)
        return move if move in self._board.legal_moves else None

    def apply_move(
        self,
        from_square: chess.Square,
        to_square: chess.Square,
        promotion: chess.PieceType | None = None,
    ) -> AppliedMove:
        move = self.find_move(from_square, to_square, promotion)
        if move is None:
            raise IllegalMoveRequested(
                f"Illegal move: {chess.square_name(from_square)}{chess.square_name(to_square)}"
            )
        applied = AppliedMove(
            uci=move.uci(),
            san=self._board.san(move),
            promotion=move.promotion,
        )
        self._board.push(move)
        return applied

    def is_in_check(self, color: chess.Color) -> bool:
        return self._board.turn == color and self._board.is_check()

    def is_checkmate(self, color: chess.Color) -> bool:
        return self._board.turn == color and self._board.is_checkmate()

    def is_stalemate(self) -> bool:
        return self._board.is_stalemate()

    def is_game_over(self) -> bool:
        return game_status(self._board) != "playing"

    def status(self) -> str:
        return game_status(self._board)

    def result(self) -> str | None:
        return game_result(self._board)

    def serialize(self) -> str:
        return self._board.fen()

    def load_position(self, fen: str) -> None:
        """Replace the position. The move history is discarded."""
        try:
            board = chess.Board(fen)
        except ValueError as e:
            raise PositionReconstructionFailure(f"Invalid FEN: {fen}") from e
        status = board.status() & ~TOLERATED_STATUS
        if status != chess.STATUS_VALID:
            raise PositionReconstructionFailure(f"Illegal position ({int(status):#x}): {fen}")
        self._board = board
        logger.debug("Loaded position %s", fen)
