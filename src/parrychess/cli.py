"""Command line utilities.

Usage:
    python -m parrychess.cli simulate [--games N] [--difficulty NAME]
        [--max-moves N] [--seed N] [--ruleset parry|posture]
        [--stockfish PATH | --no-engine] [--keep-going]
    python -m parrychess.cli profiles

``simulate`` plays AI-vs-AI games on a virtual clock and prints JSON stats.
``profiles`` prints the attack profiles and difficulty presets.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import chess

from parrychess.combat import Ruleset
from parrychess.combat_data import PARRY_LIMITS, PIECE_COMBAT, POSTURE_LIMITS
from parrychess.difficulty import DEFAULT_DIFFICULTY, DIFFICULTIES
from parrychess.engine import StockfishEngine
from parrychess.selfplay import play_games


async def _simulate(args: argparse.Namespace) -> dict:
    engine = None
    if not args.no_engine:
        engine = StockfishEngine(stockfish_path=args.stockfish)
        try:
            await engine.start()
        except (FileNotFoundError, OSError) as e:
            print(f"warning: Stockfish unavailable ({e}), using fallback moves", file=sys.stderr)
            engine = None
    try:
        stats = await play_games(
            count=args.games,
            difficulty=args.difficulty,
            max_moves=args.max_moves,
            engine=engine,
            seed=args.seed,
            stop_on_error=not args.keep_going,
            ruleset=Ruleset(args.ruleset),
        )
    finally:
        if engine is not None:
            await engine.stop()
    return stats.to_dict()


def _profiles() -> dict:
    return {
        "attacks": {
            chess.piece_name(piece_type): {
                "difficulty": profile.difficulty,
                "combo_count": profile.combo_count,
                "posture_limit": POSTURE_LIMITS[piece_type],
                "parry_limit": PARRY_LIMITS[piece_type],
                "attacks": [
                    {
                        "name": a.name,
                        "total_ms": a.total_ms,
                        "perfect_window_ms": a.perfect_window_ms,
                        "normal_window_ms": a.normal_window_ms,
                        "posture_damage": a.posture_damage,
                    }
                    for a in profile.attacks
                ],
            }
            for piece_type, profile in PIECE_COMBAT.items()
        },
        "difficulties": {
            name: {
                "attempt_chance": d.attempt_chance,
                "perfect_chance": d.perfect_chance,
                "skill_level": d.skill_level,
                "move_time_ms": d.move_time_ms,
                "description": d.description,
            }
            for name, d in DIFFICULTIES.items()
        },
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Parry chess utilities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Run AI-vs-AI games and print stats")
    sim.add_argument("--games", type=int, default=10, help="Number of games (default: 10)")
    sim.add_argument(
        "--difficulty", default=DEFAULT_DIFFICULTY, choices=list(DIFFICULTIES),
        help=f"Difficulty for both sides (default: {DEFAULT_DIFFICULTY})",
    )
    sim.add_argument("--max-moves", type=int, default=200, help="Moves before a game is drawn")
    sim.add_argument("--seed", type=int, default=None, help="Random seed")
    sim.add_argument(
        "--ruleset", default=Ruleset.PARRY.value, choices=[r.value for r in Ruleset],
        help="Combat ruleset (default: parry)",
    )
    sim.add_argument("--stockfish", default="stockfish", help="Path to Stockfish binary")
    sim.add_argument("--no-engine", action="store_true", help="Use the fallback heuristic only")
    sim.add_argument("--keep-going", action="store_true", help="Do not stop on the first error")

    sub.add_parser("profiles", help="Print attack profiles and difficulty presets")

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "simulate":
        result = asyncio.run(_simulate(args))
    else:
        result = _profiles()
    json.dump(result, sys.stdout, indent=2)
    print()
    if args.command == "simulate" and result["errors"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
