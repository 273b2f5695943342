"""Difficulty presets for the AI opponent: parry skill and search strength."""

from dataclasses import dataclass


@dataclass
class DifficultyProfile:
    name: str
    label: str                  # display label e.g. "Hard"
    attempt_chance: float       # chance the AI tries to parry at all
    perfect_chance: float       # when parrying, chance to aim for the perfect window
    skill_level: int            # Stockfish "Skill Level" (0-20)
    move_time_ms: int           # search time budget per move
    description: str = ""


DIFFICULTIES: dict[str, DifficultyProfile] = {
    "easy":   DifficultyProfile("easy",   "Easy",   0.50, 0.10,  1,  200,
                                "Forgiving timing, AI rarely parries perfectly"),
    "medium": DifficultyProfile("medium", "Medium", 0.70, 0.25,  5,  500,
                                "Balanced challenge"),
    "hard":   DifficultyProfile("hard",   "Hard",   0.85, 0.50, 10, 1000,
                                "Tight timing, skilled AI"),
    "expert": DifficultyProfile("expert", "Expert", 0.95, 0.80, 20, 2000,
                                "Hesitation is defeat"),
}

DEFAULT_DIFFICULTY = "medium"


def get_difficulty(name: str) -> DifficultyProfile:
    """Look up a difficulty preset by name, falling back to the default."""
    return DIFFICULTIES.get(name, DIFFICULTIES[DEFAULT_DIFFICULTY])
