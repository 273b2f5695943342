"""Opponent move selection.

Asks the engine for a move within the difficulty's time budget. When the
engine is missing, slow, crashed, or the position is one it cannot search,
falls back to a parry-aware heuristic so the game never stalls.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

import chess

from parrychess.board import BoardModel, Piece
from parrychess.difficulty import DifficultyProfile
from parrychess.engine import EngineProtocol
from parrychess.errors import EngineUnavailable
from parrychess.rules import RulesOracle

logger = logging.getLogger(__name__)

PIECE_VALUES = {
    chess.PAWN: 1, chess.KNIGHT: 3, chess.BISHOP: 3,
    chess.ROOK: 5, chess.QUEEN: 9, chess.KING: 100,
}
CENTER_SQUARES = [chess.D4, chess.E4, chess.D5, chess.E5]
CENTER_BONUS = 3
RANDOM_JITTER = 2.0
ENGINE_TIMEOUT_MARGIN_MS = 5000


@dataclass
class MoveChoice:
    piece: Piece
    target: chess.Square
    promotion: chess.PieceType | None = None
    method: str = "engine"      # "engine" or "fallback"

    @property
    def uci(self) -> str:
        return chess.Move(self.piece.square, self.target, promotion=self.promotion).uci()


def score_move(board: BoardModel, piece: Piece, target: chess.Square, rng: random.Random) -> float:
    """Heuristic value of moving ``piece`` to ``target``, combat odds included."""
    score = 0.0
    victim = board.piece_at(target)
    if victim is not None and victim.color != piece.color:
        base = PIECE_VALUES[victim.piece_type] * 10
        if victim.posture_broken:
            score += base * 3
        elif not victim.can_parry:
            score += base * 2
        else:
            score += base * 0.5
            # Risky to send valuable pieces at a target that can still parry.
            score -= PIECE_VALUES[piece.piece_type] * 2
    if target in CENTER_SQUARES:
        score += CENTER_BONUS
    return score + rng.random() * RANDOM_JITTER


def fallback_move(board: BoardModel, oracle: RulesOracle, rng: random.Random | None = None) -> MoveChoice | None:
    rng = rng or random.Random()
    best: tuple[float, MoveChoice] | None = None
    for piece in board.pieces_of(oracle.turn):
        for target in oracle.moves_from(piece.square):
            score = score_move(board, piece, target, rng)
            if best is None or score > best[0]:
                best = (score, MoveChoice(piece, target, method="fallback"))
    if best is None:
        return None
    choice = best[1]
    move = oracle.find_move(choice.piece.square, choice.target)
    choice.promotion = move.promotion if move else None
    return choice


def _choice_from_uci(board: BoardModel, oracle: RulesOracle, uci: str) -> MoveChoice | None:
    try:
        move = chess.Move.from_uci(uci)
    except (chess.InvalidMoveError, ValueError):
        return None
    piece = board.piece_at(move.from_square)
    if piece is None or piece.color != oracle.turn:
        return None
    if oracle.find_move(move.from_square, move.to_square, move.promotion) is None:
        return None
    return MoveChoice(piece, move.to_square, promotion=move.promotion)


async def select_move(
    board: BoardModel,
    oracle: RulesOracle,
    engine: EngineProtocol | None,
    difficulty: DifficultyProfile,
    rng: random.Random | None = None,
    timeout_margin_ms: int = ENGINE_TIMEOUT_MARGIN_MS,
) -> MoveChoice | None:
    """Pick a move for the side to move. None means no legal move exists."""
    if not oracle.legal_moves():
        return None

    if engine is not None:
        timeout = (difficulty.move_time_ms + timeout_margin_ms) / 1000
        try:
            uci = await asyncio.wait_for(
                engine.best_move(oracle.serialize(), difficulty.move_time_ms, difficulty.skill_level),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Engine timed out after %.1fs, using fallback move", timeout)
        except EngineUnavailable as e:
            logger.warning("Engine unavailable (%s), using fallback move", e)
        else:
            if uci is not None:
                choice = _choice_from_uci(board, oracle, uci)
                if choice is not None:
                    return choice
                logger.warning("Engine move %s does not match the board, using fallback move", uci)

    return fallback_move(board, oracle, rng)
