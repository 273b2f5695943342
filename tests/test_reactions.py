import random

import chess
import pytest
from parrychess.combat import Outcome, classify_reaction
from parrychess.combat_data import PIECE_COMBAT, get_attack_profile
from parrychess.difficulty import get_difficulty
from parrychess.reactions import HumanReactionSource, SyntheticReactionSource


ATTACKS = [a for profile in PIECE_COMBAT.values() for a in profile.attacks]


# ---------------------------------------------------------------------------
# HumanReactionSource
# ---------------------------------------------------------------------------


class TestHumanReactionSource:
    def test_reaction_signals_current_time(self, clock):
        human = HumanReactionSource(clock)
        attack = get_attack_profile(chess.PAWN).attacks[0]
        received = []
        human.open_attack(attack, clock.now(), received.append)
        assert human.is_open
        clock.advance(0.85)
        assert human.attempt_reaction() is True
        assert received == [pytest.approx(0.85)]
        assert human.parry_attempted
        assert human.reaction_time == pytest.approx(0.85)

    def test_only_one_reaction_per_attack(self, clock):
        human = HumanReactionSource(clock)
        attack = get_attack_profile(chess.PAWN).attacks[0]
        received = []
        human.open_attack(attack, clock.now(), received.append)
        human.attempt_reaction()
        assert human.attempt_reaction() is False
        assert len(received) == 1

    def test_next_attack_rearms(self, clock):
        human = HumanReactionSource(clock)
        first, second = get_attack_profile(chess.KNIGHT).attacks
        received = []
        human.open_attack(first, clock.now(), received.append)
        human.attempt_reaction()
        human.close_attack()
        assert not human.is_open
        clock.advance(2)
        human.open_attack(second, clock.now(), received.append)
        assert not human.parry_attempted
        assert human.reaction_time is None
        assert human.attempt_reaction() is True
        assert len(received) == 2

    def test_press_after_close_is_ignored(self, clock):
        human = HumanReactionSource(clock)
        received = []
        human.open_attack(get_attack_profile(chess.PAWN).attacks[0], clock.now(), received.append)
        human.close_attack()
        assert human.attempt_reaction() is False
        assert received == []


# ---------------------------------------------------------------------------
# SyntheticReactionSource
# ---------------------------------------------------------------------------


class TestSyntheticReactionSource:
    @pytest.mark.parametrize("attempt,perfect", [(-0.1, 0.5), (1.5, 0.5), (0.5, -1), (0.5, 2)])
    def test_chances_are_validated(self, clock, attempt, perfect):
        with pytest.raises(ValueError):
            SyntheticReactionSource(clock, attempt, perfect)

    def test_never_attempts(self, clock):
        source = SyntheticReactionSource(clock, 0.0, 1.0, rng=random.Random(1))
        for attack in ATTACKS:
            assert source.plan(attack).attempt is False

    def test_perfect_plans_land_in_perfect_window(self, clock):
        source = SyntheticReactionSource(clock, 1.0, 1.0, rng=random.Random(7))
        for _ in range(50):
            for attack in ATTACKS:
                plan = source.plan(attack)
                assert plan.attempt and plan.perfect
                spread = attack.perfect_window_ms * SyntheticReactionSource.PERFECT_SPREAD / 2
                assert abs(plan.offset_ms - attack.center_ms) <= spread
                assert classify_reaction(attack, plan.offset_ms) is Outcome.PERFECT

    def test_normal_plans_land_outside_perfect_window(self, clock):
        source = SyntheticReactionSource(clock, 1.0, 0.0, rng=random.Random(11))
        sides = set()
        for _ in range(50):
            for attack in ATTACKS:
                plan = source.plan(attack)
                assert plan.attempt and not plan.perfect
                assert classify_reaction(attack, plan.offset_ms) is Outcome.NORMAL
                sides.add(plan.offset_ms < attack.center_ms)
        assert sides == {True, False}

    def test_attempt_rate_tracks_difficulty(self, clock):
        profile = get_difficulty("easy")
        source = SyntheticReactionSource.from_difficulty(clock, profile, rng=random.Random(3))
        attack = ATTACKS[0]
        attempts = sum(source.plan(attack).attempt for _ in range(2000))
        assert 0.4 < attempts / 2000 < 0.6

    def test_open_attack_schedules_signal(self, clock):
        source = SyntheticReactionSource(clock, 1.0, 1.0, rng=random.Random(5))
        attack = get_attack_profile(chess.ROOK).attacks[0]
        received = []
        source.open_attack(attack, clock.now(), received.append)
        assert clock.pending == 1
        clock.advance(attack.total_ms / 1000)
        assert len(received) == 1
        assert received[0] * 1000 == pytest.approx(source.last_plan.offset_ms)

    def test_close_attack_cancels_signal(self, clock):
        source = SyntheticReactionSource(clock, 1.0, 1.0, rng=random.Random(5))
        received = []
        source.open_attack(get_attack_profile(chess.PAWN).attacks[0], clock.now(), received.append)
        source.close_attack()
        assert clock.pending == 0
        clock.advance(5)
        assert received == []

    def test_no_attempt_schedules_nothing(self, clock):
        source = SyntheticReactionSource(clock, 0.0, 0.0)
        source.open_attack(get_attack_profile(chess.PAWN).attacks[0], clock.now(), lambda t: None)
        assert clock.pending == 0
        assert source.last_plan.attempt is False
