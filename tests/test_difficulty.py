from parrychess.difficulty import (
    DEFAULT_DIFFICULTY,
    DIFFICULTIES,
    DifficultyProfile,
    get_difficulty,
)

ORDER = ["easy", "medium", "hard", "expert"]


def test_all_presets_are_profiles():
    assert list(DIFFICULTIES) == ORDER
    for name, profile in DIFFICULTIES.items():
        assert isinstance(profile, DifficultyProfile)
        assert profile.name == name


def test_default_exists():
    assert DEFAULT_DIFFICULTY in DIFFICULTIES


def test_get_known():
    p = get_difficulty("expert")
    assert p.attempt_chance == 0.95
    assert p.perfect_chance == 0.8
    assert p.skill_level == 20
    assert p.move_time_ms == 2000


def test_get_unknown_returns_default():
    assert get_difficulty("nightmare").name == DEFAULT_DIFFICULTY


def test_presets_get_stronger():
    profiles = [DIFFICULTIES[name] for name in ORDER]
    for weaker, stronger in zip(profiles, profiles[1:]):
        assert weaker.attempt_chance < stronger.attempt_chance
        assert weaker.perfect_chance < stronger.perfect_chance
        assert weaker.skill_level < stronger.skill_level
        assert weaker.move_time_ms < stronger.move_time_ms


def test_chances_are_probabilities():
    for profile in DIFFICULTIES.values():
        assert 0 <= profile.attempt_chance <= 1
        assert 0 <= profile.perfect_chance <= 1
        assert 0 <= profile.skill_level <= 20
