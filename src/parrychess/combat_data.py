"""Per-piece attack profiles, posture limits and parry limits.

All durations are in milliseconds. Parry windows are centred on the midpoint
of an attack (telegraph + strike).
"""

from dataclasses import dataclass, replace

import chess


@dataclass(frozen=True)
class Attack:
    name: str
    telegraph_ms: int           # wind-up before the strike
    strike_ms: int              # duration of the strike itself
    perfect_window_ms: int      # counter window, nested in the normal one
    normal_window_ms: int       # block window
    posture_damage: int         # posture dealt to a defender that blocks

    def __post_init__(self):
        if not 0 < self.perfect_window_ms < self.normal_window_ms <= self.total_ms:
            raise ValueError(
                f"{self.name}: windows must satisfy "
                f"0 < perfect < normal <= total ({self.perfect_window_ms}, "
                f"{self.normal_window_ms}, {self.total_ms})"
            )

    @property
    def total_ms(self) -> int:
        return self.telegraph_ms + self.strike_ms

    @property
    def center_ms(self) -> float:
        return self.total_ms / 2

    @property
    def perfect_range(self) -> tuple[float, float]:
        half = self.perfect_window_ms / 2
        return self.center_ms - half, self.center_ms + half

    @property
    def normal_range(self) -> tuple[float, float]:
        half = self.normal_window_ms / 2
        return self.center_ms - half, self.center_ms + half


@dataclass(frozen=True)
class AttackProfile:
    piece_type: chess.PieceType
    difficulty: str             # display label only
    attacks: tuple[Attack, ...]

    @property
    def combo_count(self) -> int:
        return len(self.attacks)

    @property
    def total_ms(self) -> int:
        return sum(a.total_ms for a in self.attacks)


PIECE_COMBAT: dict[chess.PieceType, AttackProfile] = {
    chess.PAWN: AttackProfile(chess.PAWN, "easy", (
        Attack("Strike",            800, 1000, 120, 240, 1),
    )),
    chess.KNIGHT: AttackProfile(chess.KNIGHT, "medium", (
        Attack("Leap Strike",       600, 1300, 110, 220, 1),
        Attack("Follow-up Slash",  1200,  700, 100, 200, 1),
    )),
    chess.BISHOP: AttackProfile(chess.BISHOP, "medium", (
        Attack("Diagonal Slash",    800,  950, 105, 210, 1),
        Attack("Cross Slash",       850,  900, 105, 210, 1),
    )),
    chess.ROOK: AttackProfile(chess.ROOK, "hard", (
        Attack("Heavy Overhead",   1100, 1100, 140, 280, 2),
        Attack("Horizontal Sweep",  950, 1000, 130, 260, 1),
        Attack("Crushing Blow",    1000, 1050, 135, 270, 2),
    )),
    chess.QUEEN: AttackProfile(chess.QUEEN, "very_hard", (
        Attack("Swift Thrust",      500, 1100,  90, 180, 1),
        Attack("Spinning Slash",   1300,  650,  85, 170, 1),
        Attack("Feint Strike",      700, 1000,  80, 160, 1),
        Attack("Final Judgement",   900, 1100, 100, 200, 2),
    )),
    chess.KING: AttackProfile(chess.KING, "medium-hard", (
        Attack("Royal Strike",      850, 1000, 110, 220, 2),
        Attack("Sovereign Slash",   900,  950, 105, 210, 2),
    )),
}

# Posture a piece can absorb before it is broken (posture ruleset).
POSTURE_LIMITS: dict[chess.PieceType, int] = {
    chess.PAWN: 2,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 6,
    chess.KING: 999,
}

# Parries a piece may spend over the whole game. None = never depleted.
PARRY_LIMITS: dict[chess.PieceType, int | None] = {
    chess.PAWN: 1,
    chess.KNIGHT: 2,
    chess.BISHOP: 2,
    chess.ROOK: 2,
    chess.QUEEN: 3,
    chess.KING: None,
}


def get_attack_profile(piece_type: chess.PieceType, timing_multiplier: float = 1.0) -> AttackProfile:
    """Look up the attack profile for a piece type.

    ``timing_multiplier`` widens (>1) or narrows (<1) every parry window.
    Scaled windows are clamped so they still fit inside the attack.
    """
    profile = PIECE_COMBAT[piece_type]
    if timing_multiplier == 1.0:
        return profile
    attacks = []
    for attack in profile.attacks:
        normal = max(2, min(round(attack.normal_window_ms * timing_multiplier), attack.total_ms))
        perfect = max(1, min(round(attack.perfect_window_ms * timing_multiplier), normal - 1))
        attacks.append(replace(attack, perfect_window_ms=perfect, normal_window_ms=normal))
    return replace(profile, attacks=tuple(attacks))


def get_posture_limit(piece_type: chess.PieceType) -> int:
    return POSTURE_LIMITS.get(piece_type, 3)


def get_parry_limit(piece_type: chess.PieceType) -> int | None:
    return PARRY_LIMITS.get(piece_type, 1)
