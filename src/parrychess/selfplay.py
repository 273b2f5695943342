"""AI-vs-AI self-play on a virtual clock.

Both sides pick moves with the opponent selector and defend with synthetic
reactions, so whole games run in a fraction of a second. Used to shake out
board/oracle desyncs across many games.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field

import chess

from parrychess.board import BoardModel
from parrychess.clock import VirtualClock
from parrychess.combat import CombatEngine, Ruleset, Verdict
from parrychess.difficulty import DEFAULT_DIFFICULTY, get_difficulty
from parrychess.engine import EngineProtocol
from parrychess.game import TurnCoordinator
from parrychess.opponent import select_move
from parrychess.reactions import SyntheticReactionSource
from parrychess.rules import RulesOracle

logger = logging.getLogger(__name__)


@dataclass
class SelfPlayStats:
    games_played: int = 0
    white_wins: int = 0
    black_wins: int = 0
    draws: int = 0
    king_captures: int = 0
    checkmates: int = 0
    stalemates: int = 0
    total_moves: int = 0
    combats: int = 0
    counters: int = 0       # defender_wins verdicts
    blocks: int = 0         # defender_survives verdicts
    errors: list[dict] = field(default_factory=list)

    @property
    def average_moves(self) -> float:
        return self.total_moves / self.games_played if self.games_played else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["average_moves"] = round(self.average_moves, 1)
        return data


@dataclass
class GameSummary:
    moves: int
    status: str
    winner: chess.Color | None
    fen: str
    combats: int = 0
    counters: int = 0
    blocks: int = 0
    error: str | None = None


async def play_game(
    difficulty: str = DEFAULT_DIFFICULTY,
    max_moves: int = 200,
    engine: EngineProtocol | None = None,
    rng: random.Random | None = None,
    ruleset: Ruleset = Ruleset.PARRY,
) -> GameSummary:
    rng = rng or random.Random()
    profile = get_difficulty(difficulty)
    clock = VirtualClock()
    board = BoardModel.starting_position()
    oracle = RulesOracle()
    combat = CombatEngine(clock, ruleset=ruleset)
    synthetic = SyntheticReactionSource.from_difficulty(clock, profile, rng=rng)
    coordinator = TurnCoordinator(board, oracle, combat, synthetic)

    summary = GameSummary(moves=0, status="playing", winner=None, fen=oracle.serialize())
    while summary.moves < max_moves and not coordinator.is_game_over():
        choice = await select_move(board, oracle, engine, profile, rng=rng)
        if choice is None:
            summary.error = (
                f"No valid move for {'white' if oracle.turn else 'black'} but game not over"
            )
            break
        result = await clock.drive(
            coordinator.attempt_move(choice.piece, choice.target, choice.promotion)
        )
        summary.moves += 1
        if result.verdict is not None:
            summary.combats += 1
            summary.counters += result.verdict is Verdict.DEFENDER_WINS
            summary.blocks += result.verdict is Verdict.DEFENDER_SURVIVES
        if result.reconstruction_failed:
            summary.error = f"Position reconstruction failed after {result.uci}"
            break

    summary.status = coordinator.status()
    summary.winner = coordinator.winner()
    summary.fen = oracle.serialize()
    return summary


async def play_games(
    count: int = 10,
    difficulty: str = DEFAULT_DIFFICULTY,
    max_moves: int = 200,
    engine: EngineProtocol | None = None,
    seed: int | None = None,
    stop_on_error: bool = True,
    ruleset: Ruleset = Ruleset.PARRY,
) -> SelfPlayStats:
    rng = random.Random(seed)
    stats = SelfPlayStats()
    for game in range(1, count + 1):
        try:
            summary = await play_game(difficulty, max_moves, engine, rng, ruleset)
        except Exception as e:
            logger.exception("Game %d crashed", game)
            stats.errors.append({"game": game, "error": str(e)})
            if stop_on_error:
                break
            continue

        stats.games_played += 1
        stats.total_moves += summary.moves
        stats.combats += summary.combats
        stats.counters += summary.counters
        stats.blocks += summary.blocks
        if summary.error:
            stats.errors.append({"game": game, "move": summary.moves, "error": summary.error})
            if stop_on_error:
                break

        if summary.winner == chess.WHITE:
            stats.white_wins += 1
        elif summary.winner == chess.BLACK:
            stats.black_wins += 1
        else:
            stats.draws += 1
        if summary.status == "king_captured":
            stats.king_captures += 1
        elif summary.status == "checkmate":
            stats.checkmates += 1
        elif summary.status == "stalemate":
            stats.stalemates += 1
        logger.info("Game %d: %s after %d moves", game, summary.status, summary.moves)
    return stats
