import abc
import asyncio
import logging

import chess
import chess.engine

from parrychess.errors import EngineUnavailable

logger = logging.getLogger(__name__)


class EngineProtocol(abc.ABC):
    """Black-box move source. Callers do not care how the move is found."""

    @abc.abstractmethod
    async def best_move(self, fen: str, move_time_ms: int, skill_level: int | None = None) -> str | None:
        """Best move in UCI notation, or None when the side to move has no move."""


class StockfishEngine(EngineProtocol):
    def __init__(self, stockfish_path: str = "stockfish", hash_mb: int = 16):
        self._path = stockfish_path
        self._hash_mb = hash_mb
        self._engine: chess.engine.UciProtocol | None = None
        self._skill_level: int | None = None
        self._lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return self._engine is not None

    async def start(self):
        if self._engine is not None:
            try:
                await self._engine.quit()
            except Exception:
                pass
            self._engine = None
        self._skill_level = None
        _, self._engine = await chess.engine.popen_uci(self._path)
        await self._engine.configure({"Hash": self._hash_mb})

    async def stop(self):
        if self._engine:
            try:
                await self._engine.quit()
            except Exception:
                # Transport may already be closed (e.g., process killed, shutdown race)
                pass
            self._engine = None

    def _validate_board(self, fen: str) -> chess.Board:
        try:
            board = chess.Board(fen)
        except ValueError as e:
            raise EngineUnavailable(f"Invalid FEN: {fen}") from e
        # Combat can leave positions Stockfish must never see (a king en prise,
        # a missing king). The caller falls back to its own heuristic.
        if not board.is_valid():
            raise EngineUnavailable(f"Position not searchable: {fen}")
        return board

    async def _configure_skill(self, skill_level: int | None):
        if skill_level is None or skill_level == self._skill_level:
            return
        await self._engine.configure({"Skill Level": skill_level})
        self._skill_level = skill_level

    async def _play_with_retry(self, board: chess.Board, limit: chess.engine.Limit, skill_level: int | None):
        """Run engine.play with one restart attempt on engine crash."""
        try:
            await self._configure_skill(skill_level)
            return await self._engine.play(board, limit)
        except chess.engine.EngineTerminatedError:
            logger.warning("Stockfish crashed, attempting restart")
            try:
                await self.start()
                await self._configure_skill(skill_level)
            except Exception as e:
                raise EngineUnavailable("Engine restart failed") from e
            try:
                return await self._engine.play(board, limit)
            except chess.engine.EngineTerminatedError as e:
                raise EngineUnavailable("Engine restart failed") from e
        except chess.engine.EngineError as e:
            raise EngineUnavailable(str(e)) from e

    async def best_move(self, fen: str, move_time_ms: int, skill_level: int | None = None) -> str | None:
        if self._engine is None:
            raise EngineUnavailable("Engine not started. Call start() first.")
        board = self._validate_board(fen)
        if board.is_game_over():
            return None
        async with self._lock:
            result = await self._play_with_retry(
                board, chess.engine.Limit(time=move_time_ms / 1000), skill_level
            )
        return result.move.uci() if result.move else None
