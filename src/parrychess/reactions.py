"""Reaction sources: who presses "parry" during an attack, and when.

A source is opened once per attack with a ``signal`` callable and reports a
reaction by calling ``signal(timestamp)``. It never classifies the reaction;
the combat engine does that from the timestamp alone.
"""

from __future__ import annotations

import abc
import logging
import random
from dataclasses import dataclass
from typing import Callable

from parrychess.clock import Clock
from parrychess.combat_data import Attack
from parrychess.difficulty import DifficultyProfile

logger = logging.getLogger(__name__)

Signal = Callable[[float], None]


class ReactionSource(abc.ABC):
    """Supplies the defender's reaction for each attack in a combo."""

    @abc.abstractmethod
    def open_attack(self, attack: Attack, started_at: float, signal: Signal) -> None:
        """An attack has started at ``started_at`` (clock seconds)."""

    @abc.abstractmethod
    def close_attack(self) -> None:
        """The attack resolved or the combat was torn down."""


class HumanReactionSource(ReactionSource):
    """Reaction driven by player input (a key press or an API call)."""

    def __init__(self, clock: Clock):
        self._clock = clock
        self._signal: Signal | None = None
        self._started_at: float | None = None
        self.parry_attempted = False
        self.reaction_time: float | None = None

    @property
    def is_open(self) -> bool:
        return self._signal is not None

    def open_attack(self, attack: Attack, started_at: float, signal: Signal) -> None:
        self._signal = signal
        self._started_at = started_at
        self.parry_attempted = False
        self.reaction_time = None

    def close_attack(self) -> None:
        self._signal = None

    def attempt_reaction(self) -> bool:
        """Press parry. Returns False when the press is ignored."""
        if self._signal is None:
            logger.debug("Parry ignored: no attack in progress")
            return False
        if self.parry_attempted:
            logger.debug("Parry ignored: already attempted this attack")
            return False
        self.parry_attempted = True
        now = self._clock.now()
        self.reaction_time = now - self._started_at
        self._signal(now)
        return True


@dataclass
class ReactionPlan:
    attempt: bool
    perfect: bool = False
    offset_ms: float | None = None   # from attack start


class SyntheticReactionSource(ReactionSource):
    """AI defender that aims for a timing bucket chosen by its difficulty."""

    # Perfect attempts land within this fraction of the perfect window.
    PERFECT_SPREAD = 0.3

    def __init__(
        self,
        clock: Clock,
        attempt_chance: float,
        perfect_chance: float,
        rng: random.Random | None = None,
    ):
        if not (0.0 <= attempt_chance <= 1.0 and 0.0 <= perfect_chance <= 1.0):
            raise ValueError("Chances must be within [0, 1]")
        self._clock = clock
        self.attempt_chance = attempt_chance
        self.perfect_chance = perfect_chance
        self._rng = rng or random.Random()
        self._handle = None
        self.last_plan: ReactionPlan | None = None

    @classmethod
    def from_difficulty(
        cls, clock: Clock, profile: DifficultyProfile, rng: random.Random | None = None
    ) -> SyntheticReactionSource:
        return cls(clock, profile.attempt_chance, profile.perfect_chance, rng=rng)

    def plan(self, attack: Attack) -> ReactionPlan:
        rng = self._rng
        if rng.random() >= self.attempt_chance:
            return ReactionPlan(attempt=False)
        center = attack.center_ms
        if rng.random() < self.perfect_chance:
            spread = attack.perfect_window_ms * self.PERFECT_SPREAD
            return ReactionPlan(True, True, center + (rng.random() - 0.5) * spread)
        # Normal block: early or late side, outside the perfect window.
        side = -1 if rng.random() < 0.5 else 1
        inner = attack.perfect_window_ms / 2
        outer = attack.normal_window_ms / 2
        offset = inner + rng.random() * (outer - inner)
        return ReactionPlan(True, False, center + side * offset)

    def open_attack(self, attack: Attack, started_at: float, signal: Signal) -> None:
        self.close_attack()
        plan = self.last_plan = self.plan(attack)
        if not plan.attempt:
            return
        delay = started_at + plan.offset_ms / 1000 - self._clock.now()
        self._handle = self._clock.call_later(delay, self._fire, signal)

    def _fire(self, signal: Signal) -> None:
        self._handle = None
        signal(self._clock.now())

    def close_attack(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
