"""Rebuild an authoritative FEN from the physical board.

Used whenever combat ends without the attacker taking the target square, so
no chess move can describe what happened. Castling rights are recomputed
from the pieces' ``has_moved`` flags because the oracle's own right tracking
is bypassed. The en passant target is always cleared.
"""

import chess

from parrychess.board import BoardModel

# (right symbol, color, king home, rook home)
CASTLING_WINGS = [
    ("K", chess.WHITE, chess.E1, chess.H1),
    ("Q", chess.WHITE, chess.E1, chess.A1),
    ("k", chess.BLACK, chess.E8, chess.H8),
    ("q", chess.BLACK, chess.E8, chess.A8),
]


def castling_rights(board: BoardModel) -> str:
    """Castling field for the board, e.g. ``"KQkq"`` or ``"-"``."""
    rights = ""
    for symbol, color, king_square, rook_square in CASTLING_WINGS:
        king = board.piece_at(king_square)
        rook = board.piece_at(rook_square)
        if (
            king is not None and king.piece_type == chess.KING and king.color == color
            and rook is not None and rook.piece_type == chess.ROOK and rook.color == color
            and not king.has_moved and not rook.has_moved
        ):
            rights += symbol
    return rights or "-"


def to_chess_board(board: BoardModel) -> chess.Board:
    """Piece placement only; turn and counters are left at their defaults."""
    position = chess.Board.empty()
    for piece in board.pieces():
        position.set_piece_at(piece.square, chess.Piece(piece.piece_type, piece.color))
    return position


def placement(board: BoardModel) -> str:
    return to_chess_board(board).board_fen()


def reconstruct_fen(board: BoardModel, next_turn: chess.Color, fullmove_number: int) -> str:
    """Six-field FEN for the board with ``next_turn`` to move.

    ``fullmove_number`` is the oracle's count before the lost turn; it
    advances when Black's turn is the one that lapsed.
    """
    position = to_chess_board(board)
    position.turn = next_turn
    position.set_castling_fen(castling_rights(board))
    position.ep_square = None
    position.halfmove_clock = 0
    position.fullmove_number = fullmove_number + (1 if next_turn == chess.WHITE else 0)
    return position.fen()
