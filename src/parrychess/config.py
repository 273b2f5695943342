"""Centralized application configuration.

All settings are read from environment variables (or a .env.parrychess
file). Every field has a default, so the app starts with no configuration;
without a Stockfish binary the AI plays from its fallback heuristic.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.parrychess", env_file_encoding="utf-8",
    )

    # Stockfish
    stockfish_path: str = "stockfish"
    stockfish_hash_mb: int = 16
    engine_enabled: bool = True
    engine_timeout_margin_ms: int = 5000

    # Game defaults
    default_difficulty: str = "medium"
    human_side: Literal["white", "black"] = "white"

    # Combat
    ruleset: Literal["parry", "posture"] = "parry"
    timing_multiplier: float = Field(default=1.0, gt=0)
    combo_delay_ms: int = Field(default=600, ge=0)
    ai_think_delay_ms: int = Field(default=500, ge=0)
