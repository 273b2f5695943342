"""Physical board: the pieces as they stand after combat.

The BoardModel is independent of the rules oracle's position. Combat can
produce outcomes a normal chess move cannot (a failed capture, an attacker
destroyed by a counter), so the two are reconciled by the turn coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass

import chess

from parrychess.combat_data import get_parry_limit, get_posture_limit

BACK_RANK = [
    chess.ROOK, chess.KNIGHT, chess.BISHOP, chess.QUEEN,
    chess.KING, chess.BISHOP, chess.KNIGHT, chess.ROOK,
]


@dataclass(eq=False)
class Piece:
    piece_type: chess.PieceType
    color: chess.Color
    square: chess.Square
    has_moved: bool = False
    posture: int = 0
    posture_max: int = 3
    parries_used: int = 0
    parries_max: int | None = 1     # None: never depleted (kings)

    @classmethod
    def create(cls, piece_type: chess.PieceType, color: chess.Color, square: chess.Square) -> Piece:
        return cls(
            piece_type=piece_type,
            color=color,
            square=square,
            posture_max=get_posture_limit(piece_type),
            parries_max=get_parry_limit(piece_type),
        )

    @property
    def rank(self) -> int:
        return chess.square_rank(self.square)

    @property
    def file(self) -> int:
        return chess.square_file(self.square)

    @property
    def symbol(self) -> str:
        return chess.Piece(self.piece_type, self.color).symbol()

    @property
    def name(self) -> str:
        return chess.piece_name(self.piece_type)

    @property
    def can_parry(self) -> bool:
        return self.parries_max is None or self.parries_used < self.parries_max

    @property
    def parries_remaining(self) -> int | None:
        if self.parries_max is None:
            return None
        return self.parries_max - self.parries_used

    @property
    def posture_broken(self) -> bool:
        return self.posture >= self.posture_max

    def spend_parry(self) -> None:
        if self.parries_max is None:
            return
        self.parries_used = min(self.parries_used + 1, self.parries_max)

    def add_posture(self, amount: int) -> bool:
        """Apply posture damage. Returns True if the piece is now broken."""
        self.posture = min(self.posture + amount, self.posture_max)
        return self.posture_broken

    def __repr__(self) -> str:
        return f"<Piece {self.symbol}@{chess.square_name(self.square)}>"


class BoardModel:
    """Mutable grid of Piece objects, at most one per square."""

    def __init__(self):
        self._pieces: dict[chess.Square, Piece] = {}

    @classmethod
    def starting_position(cls) -> BoardModel:
        board = cls()
        for file, piece_type in enumerate(BACK_RANK):
            board.add(Piece.create(piece_type, chess.WHITE, chess.square(file, 0)))
            board.add(Piece.create(chess.PAWN, chess.WHITE, chess.square(file, 1)))
            board.add(Piece.create(chess.PAWN, chess.BLACK, chess.square(file, 6)))
            board.add(Piece.create(piece_type, chess.BLACK, chess.square(file, 7)))
        return board

    @classmethod
    def from_fen(cls, fen: str) -> BoardModel:
        """Build a board from a FEN, inferring ``has_moved`` flags.

        Pawns off their home rank and kings/rooks off their home squares are
        marked as moved. A rook on its home square whose castling right is
        absent from the FEN is marked as moved too.
        """
        position = chess.Board(fen)
        board = cls()
        for square, chess_piece in position.piece_map().items():
            piece = Piece.create(chess_piece.piece_type, chess_piece.color, square)
            home_rank = 0 if piece.color == chess.WHITE else 7
            if piece.piece_type == chess.PAWN:
                pawn_rank = 1 if piece.color == chess.WHITE else 6
                piece.has_moved = piece.rank != pawn_rank
            elif piece.piece_type == chess.KING:
                piece.has_moved = square != chess.square(4, home_rank)
            elif piece.piece_type == chess.ROOK:
                piece.has_moved = not (
                    piece.rank == home_rank
                    and piece.file in (0, 7)
                    and position.castling_rights & chess.BB_SQUARES[square]
                )
            board.add(piece)
        return board

    def add(self, piece: Piece) -> None:
        if piece.square in self._pieces:
            raise ValueError(f"Square {chess.square_name(piece.square)} is occupied")
        self._pieces[piece.square] = piece

    def piece_at(self, square: chess.Square) -> Piece | None:
        return self._pieces.get(square)

    def pieces(self) -> list[Piece]:
        return list(self._pieces.values())

    def pieces_of(self, color: chess.Color) -> list[Piece]:
        return [p for p in self._pieces.values() if p.color == color]

    def king(self, color: chess.Color) -> Piece | None:
        for piece in self._pieces.values():
            if piece.piece_type == chess.KING and piece.color == color:
                return piece
        return None

    def move(self, piece: Piece, target: chess.Square) -> None:
        """Relocate a piece onto an empty square and mark it as moved."""
        if self._pieces.get(piece.square) is not piece:
            raise ValueError(f"{piece!r} is not on the board")
        if target in self._pieces:
            raise ValueError(f"Square {chess.square_name(target)} is occupied")
        del self._pieces[piece.square]
        piece.square = target
        piece.has_moved = True
        self._pieces[target] = piece

    def remove(self, piece: Piece) -> None:
        if self._pieces.get(piece.square) is piece:
            del self._pieces[piece.square]

    def promote(self, piece: Piece, piece_type: chess.PieceType) -> None:
        piece.piece_type = piece_type
        piece.posture_max = get_posture_limit(piece_type)
        piece.posture = min(piece.posture, piece.posture_max)
        piece.parries_max = get_parry_limit(piece_type)
        if piece.parries_max is not None:
            piece.parries_used = min(piece.parries_used, piece.parries_max)

    def __len__(self) -> int:
        return len(self._pieces)
