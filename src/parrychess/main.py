import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from parrychess.combat import Ruleset
from parrychess.config import Settings
from parrychess.engine import StockfishEngine
from parrychess.errors import CombatAborted, CombatInProgress, GameOver
from parrychess.game import GameManager

logger = logging.getLogger(__name__)

settings = Settings()

# --- Initialization status tracking ---

_init_status: dict[str, dict] = {
    "stockfish": {"state": "pending", "detail": ""},
}


def _set_status(task: str, state: str, detail: str = "") -> None:
    _init_status[task] = {"state": state, "detail": detail}


def _all_done() -> bool:
    return all(t["state"] in ("done", "failed") for t in _init_status.values())


# --- Service instances ---

engine = StockfishEngine(
    stockfish_path=settings.stockfish_path, hash_mb=settings.stockfish_hash_mb
)
games = GameManager(
    engine if settings.engine_enabled else None,
    ruleset=Ruleset(settings.ruleset),
    combo_delay_ms=settings.combo_delay_ms,
    timing_multiplier=settings.timing_multiplier,
    engine_timeout_margin_ms=settings.engine_timeout_margin_ms,
    think_delay_ms=settings.ai_think_delay_ms,
)


# --- Background initialization tasks ---

async def _init_stockfish() -> None:
    if not settings.engine_enabled:
        _set_status("stockfish", "done", "Engine disabled, using fallback moves")
        return
    _set_status("stockfish", "running", "Starting Stockfish engine...")
    try:
        await engine.start()
        _set_status("stockfish", "done", "Stockfish ready")
    except Exception as e:
        logger.error("Stockfish init failed: %s", e)
        _set_status("stockfish", "failed", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Launch init in background
    task = asyncio.create_task(_init_stockfish())
    yield
    # Cleanup
    task.cancel()
    await engine.stop()


app = FastAPI(title="Parry Chess", lifespan=lifespan)


# --- Request/Response models ---

class NewGameRequest(BaseModel):
    difficulty: str = settings.default_difficulty
    human_side: str = settings.human_side


class MoveRequest(BaseModel):
    session_id: str
    move: str


class SessionRequest(BaseModel):
    session_id: str


def _raise_http(e: Exception):
    if isinstance(e, KeyError):
        raise HTTPException(status_code=404, detail="Session not found")
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (CombatInProgress, CombatAborted, GameOver)):
        raise HTTPException(status_code=409, detail=str(e))
    raise e


# --- Endpoints ---

@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/status")
async def status():
    return {
        "ready": _all_done(),
        "tasks": _init_status,
    }


@app.post("/api/game/new")
async def new_game(req: NewGameRequest | None = None):
    req = req or NewGameRequest()
    if req.human_side not in ("white", "black"):
        raise HTTPException(status_code=400, detail=f"Invalid side: {req.human_side}")
    session_id, fen, game_status = games.new_game(
        difficulty=req.difficulty, human_side=req.human_side
    )
    return {"session_id": session_id, "fen": fen, "status": game_status}


@app.get("/api/game/{session_id}")
async def game_state(session_id: str):
    state = games.get_game(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return state.state()


@app.post("/api/game/move")
async def game_move(req: MoveRequest):
    try:
        return await games.make_move(req.session_id, req.move)
    except (KeyError, ValueError, CombatInProgress, CombatAborted, GameOver) as e:
        _raise_http(e)


@app.post("/api/game/opponent")
async def game_opponent(req: SessionRequest):
    try:
        return await games.opponent_move(req.session_id)
    except (KeyError, ValueError, CombatInProgress, CombatAborted, GameOver) as e:
        _raise_http(e)


@app.post("/api/game/parry")
async def game_parry(req: SessionRequest):
    try:
        accepted = games.parry(req.session_id)
    except KeyError as e:
        _raise_http(e)
    return {"accepted": accepted}


@app.delete("/api/game/{session_id}")
async def end_game(session_id: str):
    if games.get_game(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    games.close_game(session_id)
    return {"closed": session_id}
