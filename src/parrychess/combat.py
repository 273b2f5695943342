"""Parry combat: the timed contest that decides every regular capture.

One combat runs the attacker's combo attack by attack. Each attack opens a
reaction window on the defender's reaction source and resolves on the first
of a reaction or the end of the normal window. Resolution is guarded by an
epoch counter and a per-attack flag, so a reaction racing the deadline (or a
timer left over from an earlier attack) takes effect at most once.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from dataclasses import dataclass, field

import chess

from parrychess.board import Piece
from parrychess.clock import Clock
from parrychess.combat_data import Attack, AttackProfile, get_attack_profile
from parrychess.errors import CombatAborted, CombatInProgress
from parrychess.reactions import ReactionSource

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    PERFECT = "perfect"
    NORMAL = "normal"
    MISS = "miss"


class Verdict(enum.Enum):
    ATTACKER_WINS = "attacker_wins"
    DEFENDER_WINS = "defender_wins"
    DEFENDER_SURVIVES = "defender_survives"


class DefendingSide(enum.Enum):
    HUMAN = "human"
    SYNTHETIC = "synthetic"


class Ruleset(enum.Enum):
    PARRY = "parry"         # parry depletion, counter only on an all-perfect combo
    POSTURE = "posture"     # any perfect counters, blocks build posture until it breaks


def _finish_pause(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(None)


def classify_reaction(attack: Attack, reaction_ms: float | None, can_parry: bool = True) -> Outcome:
    """Bucket a reaction by its offset from the attack start. Bounds are inclusive."""
    if reaction_ms is None or not can_parry:
        return Outcome.MISS
    perfect_start, perfect_end = attack.perfect_range
    if perfect_start <= reaction_ms <= perfect_end:
        return Outcome.PERFECT
    normal_start, normal_end = attack.normal_range
    if normal_start <= reaction_ms <= normal_end:
        return Outcome.NORMAL
    return Outcome.MISS


@dataclass
class AttackResult:
    index: int
    name: str
    outcome: Outcome
    reaction_ms: float | None


@dataclass
class CombatResult:
    verdict: Verdict
    attacker: Piece
    defender: Piece
    attacks: list[AttackResult]
    posture_broken: bool = False

    @property
    def attacker_wins(self) -> bool:
        return self.verdict is Verdict.ATTACKER_WINS

    @property
    def defender_wins(self) -> bool:
        return self.verdict is Verdict.DEFENDER_WINS

    @property
    def defender_survives(self) -> bool:
        return self.verdict is Verdict.DEFENDER_SURVIVES


@dataclass(eq=False)
class CombatSession:
    attacker: Piece
    defender: Piece
    defending_side: DefendingSide
    profile: AttackProfile
    reactions: ReactionSource
    started_at: float
    attacker_is_king: bool
    can_defender_parry: bool
    attack_index: int = 0
    perfect_streak: int = 0
    resolved: bool = False
    posture_broken: bool = False
    results: list[AttackResult] = field(default_factory=list)
    epoch: int = 0
    attack_started_at: float | None = None
    attack_resolved: bool = True
    reaction_ms: float | None = None
    _waiter: asyncio.Future | None = field(default=None, repr=False)
    _timer: object = field(default=None, repr=False)

    @property
    def current_attack(self) -> Attack:
        return self.profile.attacks[self.attack_index]

    def snapshot(self, now: float) -> dict:
        attack = self.current_attack
        elapsed = None
        if self.attack_started_at is not None and not self.attack_resolved:
            elapsed = (now - self.attack_started_at) * 1000
        return {
            "attacker": chess.square_name(self.attacker.square),
            "defender": chess.square_name(self.defender.square),
            "defending_side": self.defending_side.value,
            "attack_index": self.attack_index,
            "combo_count": self.profile.combo_count,
            "attack": {
                "name": attack.name,
                "total_ms": attack.total_ms,
                "perfect_window_ms": attack.perfect_window_ms,
                "normal_window_ms": attack.normal_window_ms,
            },
            "elapsed_ms": elapsed,
            "perfect_streak": self.perfect_streak,
            "can_defender_parry": self.can_defender_parry,
            "results": [r.outcome.value for r in self.results],
        }


class CombatEngine:
    """Runs at most one combat session at a time."""

    def __init__(
        self,
        clock: Clock,
        ruleset: Ruleset = Ruleset.PARRY,
        combo_delay_ms: int = 600,
        timing_multiplier: float = 1.0,
    ):
        self._clock = clock
        self.ruleset = ruleset
        self._combo_delay = combo_delay_ms / 1000
        self._timing_multiplier = timing_multiplier
        self._epoch = 0
        self._session: CombatSession | None = None

    @property
    def session(self) -> CombatSession | None:
        return self._session

    @property
    def active(self) -> bool:
        return self._session is not None

    def _defender_can_parry(self, defender: Piece) -> bool:
        if self.ruleset is Ruleset.POSTURE:
            return not defender.posture_broken
        return defender.can_parry

    async def resolve(
        self,
        attacker: Piece,
        defender: Piece,
        reactions: ReactionSource,
        defending_side: DefendingSide = DefendingSide.SYNTHETIC,
    ) -> CombatResult:
        if self._session is not None:
            raise CombatInProgress("A combat session is already running")
        session = CombatSession(
            attacker=attacker,
            defender=defender,
            defending_side=defending_side,
            profile=get_attack_profile(attacker.piece_type, self._timing_multiplier),
            reactions=reactions,
            started_at=self._clock.now(),
            attacker_is_king=attacker.piece_type == chess.KING,
            can_defender_parry=self._defender_can_parry(defender),
        )
        self._session = session
        try:
            verdict = await self._run(session)
        finally:
            self._teardown(session)
        logger.info(
            "Combat %r vs %r: %s (%s)", attacker, defender, verdict.value,
            ", ".join(r.outcome.value for r in session.results),
        )
        return CombatResult(
            verdict=verdict,
            attacker=attacker,
            defender=defender,
            attacks=list(session.results),
            posture_broken=session.posture_broken,
        )

    async def _run(self, session: CombatSession) -> Verdict:
        attacks = session.profile.attacks
        for index, attack in enumerate(attacks):
            session.attack_index = index
            outcome = await self._run_attack(session, attack)
            verdict = self._apply(session, attack, outcome)
            if verdict is not None:
                return verdict
            await self._pause(session)
        raise RuntimeError("Combo ended without a verdict")

    def _new_waiter(self, session: CombatSession) -> asyncio.Future:
        if session.resolved:
            raise CombatAborted("Combat torn down between attacks")
        session._timer = None
        session._waiter = asyncio.get_running_loop().create_future()
        return session._waiter

    async def _pause(self, session: CombatSession) -> None:
        """Combo delay before the next attack. Owned by the session so teardown can stop it."""
        waiter = self._new_waiter(session)
        session._timer = self._clock.call_later(self._combo_delay, _finish_pause, waiter)
        await waiter

    async def _run_attack(self, session: CombatSession, attack: Attack) -> Outcome:
        waiter = self._new_waiter(session)
        self._epoch += 1
        epoch = session.epoch = self._epoch
        session.attack_resolved = False
        session.reaction_ms = None
        started = session.attack_started_at = self._clock.now()
        # Reactions are armed ahead of the deadline, so a reaction due at the
        # last instant of the normal window is seen first.
        session.reactions.open_attack(attack, started, functools.partial(self._on_reaction, epoch))
        if not session.attack_resolved:
            _, normal_end = attack.normal_range
            session._timer = self._clock.call_later(normal_end / 1000, self._on_deadline, epoch)
        return await waiter

    def _is_current(self, epoch: int) -> bool:
        session = self._session
        return session is not None and epoch == self._epoch and not session.attack_resolved

    def _on_reaction(self, epoch: int, timestamp: float) -> None:
        if not self._is_current(epoch):
            logger.debug("Ignoring reaction for a finished attack")
            return
        session = self._session
        session.reaction_ms = (timestamp - session.attack_started_at) * 1000
        self._resolve_attack(epoch)

    def _on_deadline(self, epoch: int) -> None:
        if not self._is_current(epoch):
            logger.debug("Ignoring stale attack deadline")
            return
        self._resolve_attack(epoch)

    def _resolve_attack(self, epoch: int) -> None:
        """Classify the current attack. Only the first call per attack counts."""
        if not self._is_current(epoch):
            return
        session = self._session
        session.attack_resolved = True
        if session._timer is not None:
            session._timer.cancel()
        session.reactions.close_attack()
        attack = session.current_attack
        outcome = classify_reaction(attack, session.reaction_ms, session.can_defender_parry)
        session.results.append(
            AttackResult(session.attack_index, attack.name, outcome, session.reaction_ms)
        )
        logger.debug("Attack %d (%s): %s", session.attack_index + 1, attack.name, outcome.value)
        if not session._waiter.done():
            session._waiter.set_result(outcome)

    def _apply(self, session: CombatSession, attack: Attack, outcome: Outcome) -> Verdict | None:
        """Apply an attack's consequences. Returns the verdict once the combat is decided."""
        if outcome is Outcome.MISS:
            return Verdict.ATTACKER_WINS
        attacker, defender = session.attacker, session.defender
        last = session.attack_index == session.profile.combo_count - 1

        if self.ruleset is Ruleset.POSTURE:
            if outcome is Outcome.PERFECT:
                session.perfect_streak += 1
                return self._counter_attack(session)
            if defender.add_posture(attack.posture_damage):
                session.posture_broken = True
                logger.info("%r posture broken", defender)
                return Verdict.ATTACKER_WINS
            return Verdict.DEFENDER_SURVIVES if last else None

        if outcome is Outcome.PERFECT:
            session.perfect_streak += 1
            attacker.spend_parry()
        else:
            attacker.spend_parry()
            defender.spend_parry()
            defender.add_posture(attack.posture_damage)
            session.can_defender_parry = defender.can_parry
        if not last:
            return None
        if session.perfect_streak == session.profile.combo_count:
            return self._counter_attack(session)
        return Verdict.DEFENDER_SURVIVES

    def _counter_attack(self, session: CombatSession) -> Verdict:
        if session.attacker_is_king:
            # Kings cannot be taken by a counter.
            return Verdict.DEFENDER_SURVIVES
        return Verdict.DEFENDER_WINS

    def _teardown(self, session: CombatSession) -> None:
        if session.resolved:
            return
        session.resolved = True
        session.attack_resolved = True
        if session._timer is not None:
            session._timer.cancel()
        session.reactions.close_attack()
        self._epoch += 1
        if self._session is session:
            self._session = None

    def cancel(self) -> None:
        """Tear down the live session. Its ``resolve`` call raises CombatAborted."""
        session = self._session
        if session is None:
            return
        waiter = session._waiter
        self._teardown(session)
        if waiter is not None and not waiter.done():
            waiter.set_exception(CombatAborted("Combat cancelled"))
        logger.info("Combat %r vs %r cancelled", session.attacker, session.defender)
