from __future__ import annotations

import enum
import logging
import random
import uuid
from dataclasses import dataclass, field

import chess

from parrychess.board import BoardModel, Piece
from parrychess.clock import Clock, LoopClock
from parrychess.combat import CombatEngine, CombatResult, DefendingSide, Ruleset, Verdict
from parrychess.difficulty import DEFAULT_DIFFICULTY, DifficultyProfile, get_difficulty
from parrychess.engine import EngineProtocol
from parrychess.errors import (
    CombatInProgress,
    GameOver,
    IllegalMoveRequested,
    PositionReconstructionFailure,
)
from parrychess.opponent import ENGINE_TIMEOUT_MARGIN_MS, select_move
from parrychess.reactions import HumanReactionSource, ReactionSource, SyntheticReactionSource
from parrychess.reconstruction import reconstruct_fen
from parrychess.rules import RulesOracle

logger = logging.getLogger(__name__)


def _color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


class MoveKind(enum.Enum):
    NORMAL = "normal"
    CASTLING = "castling"
    EN_PASSANT = "en_passant"
    PROMOTION = "promotion"


@dataclass
class SpecialMove:
    kind: MoveKind
    rook_from: chess.Square | None = None
    rook_to: chess.Square | None = None
    captured_pawn: chess.Square | None = None


def classify_move(board: BoardModel, piece: Piece, target: chess.Square) -> SpecialMove:
    """Detect castling, promotion and en passant from the physical board."""
    from_file, to_file = piece.file, chess.square_file(target)
    if piece.piece_type == chess.KING and abs(to_file - from_file) == 2:
        kingside = to_file > from_file
        rank = piece.rank
        return SpecialMove(
            MoveKind.CASTLING,
            rook_from=chess.square(7 if kingside else 0, rank),
            rook_to=chess.square(5 if kingside else 3, rank),
        )
    if piece.piece_type == chess.PAWN:
        last_rank = 7 if piece.color == chess.WHITE else 0
        if chess.square_rank(target) == last_rank:
            return SpecialMove(MoveKind.PROMOTION)
        if from_file != to_file and board.piece_at(target) is None:
            # The captured pawn sits beside the mover, on the mover's origin rank.
            return SpecialMove(
                MoveKind.EN_PASSANT, captured_pawn=chess.square(to_file, piece.rank)
            )
    return SpecialMove(MoveKind.NORMAL)


@dataclass
class TurnResult:
    mover: chess.Color
    uci: str
    kind: MoveKind
    fen: str
    status: str
    san: str | None = None          # None when the move was blocked by combat
    verdict: Verdict | None = None
    combat: CombatResult | None = None
    captured: Piece | None = None
    winner: chess.Color | None = None
    result: str | None = None
    reconstruction_failed: bool = False

    @property
    def blocked(self) -> bool:
        return self.verdict is not None and self.verdict is not Verdict.ATTACKER_WINS

    def to_dict(self) -> dict:
        combat = None
        if self.combat is not None:
            combat = {
                "verdict": self.combat.verdict.value,
                "attacker": self.combat.attacker.name,
                "defender": self.combat.defender.name,
                "attacks": [
                    {"name": a.name, "outcome": a.outcome.value, "reaction_ms": a.reaction_ms}
                    for a in self.combat.attacks
                ],
                "posture_broken": self.combat.posture_broken,
            }
        return {
            "mover": _color_name(self.mover),
            "move_uci": self.uci,
            "move_san": self.san,
            "kind": self.kind.value,
            "blocked": self.blocked,
            "combat": combat,
            "captured": self.captured.name if self.captured else None,
            "fen": self.fen,
            "status": self.status,
            "result": self.result,
            "winner": _color_name(self.winner) if self.winner is not None else None,
            "reconstruction_failed": self.reconstruction_failed,
        }


class TurnCoordinator:
    """Settles turns: combat on contested captures, then oracle reconciliation."""

    def __init__(
        self,
        board: BoardModel,
        oracle: RulesOracle,
        combat: CombatEngine,
        synthetic: ReactionSource,
        human: HumanReactionSource | None = None,
        human_color: chess.Color | None = None,
    ):
        self.board = board
        self.oracle = oracle
        self.combat = combat
        self._synthetic = synthetic
        self._human = human
        self.human_color = human_color if human is not None else None
        # Piece types captured, keyed by the capturing side.
        self.captured: dict[chess.Color, list[chess.PieceType]] = {chess.WHITE: [], chess.BLACK: []}

    # --- game status ---

    def king_captured(self, color: chess.Color) -> bool:
        return chess.KING in self.captured[not color]

    def winner(self) -> chess.Color | None:
        if self.king_captured(chess.WHITE):
            return chess.BLACK
        if self.king_captured(chess.BLACK):
            return chess.WHITE
        if self.oracle.status() == "checkmate":
            return not self.oracle.turn
        return None

    def status(self) -> str:
        # A captured king ends the game before any checkmate logic runs.
        if self.king_captured(chess.WHITE) or self.king_captured(chess.BLACK):
            return "king_captured"
        return self.oracle.status()

    def result(self) -> str | None:
        if self.status() == "king_captured":
            return "1-0" if self.winner() == chess.WHITE else "0-1"
        return self.oracle.result()

    def is_game_over(self) -> bool:
        return self.status() != "playing"

    # --- turns ---

    def _reaction_source_for(self, defender: Piece) -> tuple[ReactionSource, DefendingSide]:
        if self._human is not None and defender.color == self.human_color:
            return self._human, DefendingSide.HUMAN
        return self._synthetic, DefendingSide.SYNTHETIC

    def _record_capture(self, victim: Piece) -> None:
        self.captured[not victim.color].append(victim.piece_type)

    async def attempt_move(
        self,
        piece: Piece,
        target: chess.Square,
        promotion: chess.PieceType | None = None,
    ) -> TurnResult:
        if self.combat.active:
            raise CombatInProgress("Combat in progress")
        if self.is_game_over():
            raise GameOver(f"Game is over ({self.status()})")
        if self.board.piece_at(piece.square) is not piece:
            raise IllegalMoveRequested(f"{piece!r} is not on the board")
        if piece.color != self.oracle.turn:
            raise IllegalMoveRequested(f"It is {_color_name(self.oracle.turn)}'s turn")
        move = self.oracle.find_move(piece.square, target, promotion)
        if move is None:
            raise IllegalMoveRequested(
                f"Illegal move: {chess.square_name(piece.square)}{chess.square_name(target)}"
            )

        special = classify_move(self.board, piece, target)
        defender = self.board.piece_at(target)
        if defender is not None and defender.color != piece.color and special.kind is not MoveKind.EN_PASSANT:
            return await self._contested_move(piece, defender, move, special)
        return self._complete_move(piece, move, special)

    async def _contested_move(
        self, attacker: Piece, defender: Piece, move: chess.Move, special: SpecialMove
    ) -> TurnResult:
        source, side = self._reaction_source_for(defender)
        combat = await self.combat.resolve(attacker, defender, source, side)
        if combat.attacker_wins:
            return self._complete_move(attacker, move, special, defender=defender, combat=combat)

        mover = attacker.color
        captured = None
        if combat.defender_wins:
            self.board.remove(attacker)
            self._record_capture(attacker)
            captured = attacker
        # The contested side loses its turn either way.
        failed = not self._reconstruct(next_turn=not mover)
        return self._finish(
            TurnResult(
                mover=mover,
                uci=move.uci(),
                kind=special.kind,
                fen="",
                status="",
                verdict=combat.verdict,
                combat=combat,
                captured=captured,
                reconstruction_failed=failed,
            )
        )

    def _complete_move(
        self,
        piece: Piece,
        move: chess.Move,
        special: SpecialMove,
        defender: Piece | None = None,
        combat: CombatResult | None = None,
    ) -> TurnResult:
        mover = piece.color
        # Oracle first: a rejected move must leave the physical board untouched.
        applied = self.oracle.apply_move(move.from_square, move.to_square, move.promotion)

        captured = None
        if defender is not None:
            self.board.remove(defender)
            captured = defender
        elif special.kind is MoveKind.EN_PASSANT:
            captured = self.board.piece_at(special.captured_pawn)
            if captured is not None:
                self.board.remove(captured)
        self.board.move(piece, move.to_square)
        if special.kind is MoveKind.CASTLING:
            rook = self.board.piece_at(special.rook_from)
            if rook is not None:
                self.board.move(rook, special.rook_to)
        if special.kind is MoveKind.PROMOTION and move.promotion:
            self.board.promote(piece, move.promotion)
        if captured is not None:
            self._record_capture(captured)

        return self._finish(
            TurnResult(
                mover=mover,
                uci=applied.uci,
                san=applied.san,
                kind=special.kind,
                fen="",
                status="",
                verdict=combat.verdict if combat else None,
                combat=combat,
                captured=captured,
            )
        )

    def _reconstruct(self, next_turn: chess.Color) -> bool:
        fen = reconstruct_fen(self.board, next_turn, self.oracle.fullmove_number)
        try:
            self.oracle.load_position(fen)
        except PositionReconstructionFailure:
            logger.error("Position reconstruction failed, keeping previous position", exc_info=True)
            return False
        logger.info("Position rebuilt after combat: %s", fen)
        return True

    def _finish(self, result: TurnResult) -> TurnResult:
        result.fen = self.oracle.serialize()
        result.status = self.status()
        result.result = self.result()
        result.winner = self.winner()
        logger.info(
            "%s %s%s -> %s", _color_name(result.mover), result.uci,
            f" ({result.verdict.value})" if result.verdict else "", result.status,
        )
        return result


@dataclass(eq=False)
class GameSession:
    id: str
    difficulty: DifficultyProfile
    human_color: chess.Color | None
    clock: Clock
    board: BoardModel
    oracle: RulesOracle
    combat: CombatEngine
    human: HumanReactionSource
    synthetic: SyntheticReactionSource
    coordinator: TurnCoordinator
    rng: random.Random = field(default_factory=random.Random)

    def state(self) -> dict:
        c = self.coordinator
        combat = self.combat.session
        return {
            "session_id": self.id,
            "fen": self.oracle.serialize(),
            "turn": _color_name(self.oracle.turn),
            "human_side": _color_name(self.human_color) if self.human_color is not None else None,
            "difficulty": self.difficulty.name,
            "status": c.status(),
            "result": c.result(),
            "in_check": self.oracle.is_in_check(self.oracle.turn),
            "pieces": [
                {
                    "square": chess.square_name(p.square),
                    "type": p.name,
                    "color": _color_name(p.color),
                    "posture": p.posture,
                    "posture_max": p.posture_max,
                    "parries_remaining": p.parries_remaining,
                }
                for p in self.board.pieces()
            ],
            "captured": {
                _color_name(color): [chess.piece_name(t) for t in types]
                for color, types in c.captured.items()
            },
            "combat": combat.snapshot(self.clock.now()) if combat is not None else None,
        }


class GameManager:
    def __init__(
        self,
        engine: EngineProtocol | None = None,
        ruleset: Ruleset = Ruleset.PARRY,
        combo_delay_ms: int = 600,
        timing_multiplier: float = 1.0,
        engine_timeout_margin_ms: int = ENGINE_TIMEOUT_MARGIN_MS,
        think_delay_ms: int = 0,
        clock_factory=LoopClock,
    ):
        self._engine = engine
        self._think_delay = think_delay_ms / 1000
        self._ruleset = ruleset
        self._combo_delay_ms = combo_delay_ms
        self._timing_multiplier = timing_multiplier
        self._engine_timeout_margin_ms = engine_timeout_margin_ms
        self._clock_factory = clock_factory
        self._sessions: dict[str, GameSession] = {}

    def new_game(
        self,
        difficulty: str = DEFAULT_DIFFICULTY,
        human_side: str | None = "white",
        fen: str = chess.STARTING_FEN,
        rng: random.Random | None = None,
    ) -> tuple[str, str, str]:
        """Create a new game session. Returns (session_id, fen, status)."""
        session_id = str(uuid.uuid4())
        rng = rng or random.Random()
        clock = self._clock_factory()
        profile = get_difficulty(difficulty)
        human_color = {"white": chess.WHITE, "black": chess.BLACK}.get(human_side or "")
        board = BoardModel.starting_position() if fen == chess.STARTING_FEN else BoardModel.from_fen(fen)
        oracle = RulesOracle(fen)
        combat = CombatEngine(
            clock,
            ruleset=self._ruleset,
            combo_delay_ms=self._combo_delay_ms,
            timing_multiplier=self._timing_multiplier,
        )
        human = HumanReactionSource(clock)
        synthetic = SyntheticReactionSource.from_difficulty(clock, profile, rng=rng)
        coordinator = TurnCoordinator(board, oracle, combat, synthetic, human, human_color)
        self._sessions[session_id] = GameSession(
            id=session_id,
            difficulty=profile,
            human_color=human_color,
            clock=clock,
            board=board,
            oracle=oracle,
            combat=combat,
            human=human,
            synthetic=synthetic,
            coordinator=coordinator,
            rng=rng,
        )
        return session_id, oracle.serialize(), coordinator.status()

    def get_game(self, session_id: str) -> GameSession | None:
        return self._sessions.get(session_id)

    def _require(self, session_id: str) -> GameSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        return session

    def close_game(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.combat.cancel()

    async def make_move(self, session_id: str, move_uci: str) -> dict:
        """Apply the human's move (combat included) and return the turn result."""
        state = self._require(session_id)
        try:
            move = chess.Move.from_uci(move_uci)
        except (chess.InvalidMoveError, ValueError) as e:
            raise ValueError(f"Invalid move format: {move_uci}") from e

        if state.human_color is not None and state.oracle.turn != state.human_color:
            raise IllegalMoveRequested("Not your turn")
        piece = state.board.piece_at(move.from_square)
        if piece is None:
            raise IllegalMoveRequested(f"Illegal move: {move_uci}")
        result = await state.coordinator.attempt_move(piece, move.to_square, move.promotion)
        return result.to_dict()

    async def opponent_move(self, session_id: str) -> dict:
        """Let the AI play its turn. The human may have to defend."""
        state = self._require(session_id)
        coordinator = state.coordinator
        if state.human_color is not None and state.oracle.turn == state.human_color:
            raise IllegalMoveRequested("It is the human's turn")
        if coordinator.is_game_over():
            raise GameOver(f"Game is over ({coordinator.status()})")
        if state.combat.active:
            raise CombatInProgress("Combat in progress")

        if self._think_delay:
            await state.clock.sleep(self._think_delay)
        choice = await select_move(
            state.board, state.oracle, self._engine, state.difficulty,
            rng=state.rng, timeout_margin_ms=self._engine_timeout_margin_ms,
        )
        if choice is None:
            # No legal move: the oracle must agree the game is over.
            logger.warning("No move for %s (status %s)", _color_name(state.oracle.turn), coordinator.status())
            return {
                "fen": state.oracle.serialize(),
                "status": coordinator.status(),
                "result": coordinator.result(),
                "move_uci": None,
            }
        result = await coordinator.attempt_move(choice.piece, choice.target, choice.promotion)
        data = result.to_dict()
        data["method"] = choice.method
        return data

    def parry(self, session_id: str) -> bool:
        """The human's parry press. False when there is nothing to parry."""
        return self._require(session_id).human.attempt_reaction()
