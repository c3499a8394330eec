"""XP award formula, level curve and level tiers."""
import pytest

from engines.leveling import (
    DEFAULT_POLICY,
    XpPolicy,
    award_xp,
    calculate_level,
    difficulty_multiplier,
    level_change,
    level_multiplier,
    level_progress,
    level_summary,
    next_tier_level,
    performance_bonus,
    round_half_up,
    tier_for_level,
    xp_for_level,
    xp_to_next_level,
)


def test_award_combines_difficulty_level_and_performance():
    xp = award_xp(100, "Advanced", 20, 92)

    assert xp.difficulty_multiplier == 2.0
    assert xp.level_multiplier == 1.2
    assert xp.performance_bonus == 25
    assert xp.performance_label == "Excellent"
    assert xp.total_xp == 265
    assert xp.formula == "(100 × 2.0 × 1.2) + 25 = 265"


def test_beginner_pass_at_level_one_earns_base():
    xp = award_xp(100, "Beginner", 1, 70)
    assert xp.total_xp == 100
    assert xp.performance_label == "Pass"


def test_below_pass_threshold_gets_no_bonus():
    bonus, label = performance_bonus(65)
    assert bonus == 0
    assert label == "Keep Trying"


def test_perfect_score_bonus():
    xp = award_xp(100, "Intermediate", 10, 100)
    assert xp.total_xp == 165 + 50


def test_scaled_xp_rounds_half_up():
    assert award_xp(5, "Intermediate", 1, 70).total_xp == 8
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2


def test_score_is_clamped():
    assert award_xp(100, "Beginner", 1, 150).score_percentage == 100
    assert award_xp(100, "Beginner", 1, -5).score_percentage == 0


@pytest.mark.parametrize("difficulty,expected", [
    ("Beginner", 1.0),
    ("intermediate", 1.5),
    ("ADVANCED", 2.0),
    ("Expert", 1.0),
    (None, 1.0),
])
def test_difficulty_multiplier(difficulty, expected):
    assert difficulty_multiplier(difficulty) == expected


@pytest.mark.parametrize("level,expected", [(1, 1.0), (9, 1.0), (10, 1.1), (17, 1.15), (24, 1.2), (29, 1.25), (45, 1.3)])
def test_level_multiplier_bands(level, expected):
    assert level_multiplier(level) == expected


def test_level_curve():
    assert calculate_level(0) == 1
    assert calculate_level(999) == 1
    assert calculate_level(1000) == 2
    assert calculate_level(2500) == 3
    assert xp_for_level(3) == 2000
    assert xp_to_next_level(2500) == 500
    assert level_progress(2500) == 50
    assert level_progress(1999) == 99


def test_custom_policy_changes_level_step():
    policy = XpPolicy(xp_per_level=500)
    assert calculate_level(1200, policy) == 3


def test_tiers():
    assert tier_for_level(1).name == "Safety Novice"
    assert tier_for_level(6).key == "practitioner"
    assert tier_for_level(26).key == "master"
    assert tier_for_level(80).key == "master"
    assert next_tier_level(5) == 6
    assert next_tier_level(26) is None


def test_level_change_never_lowers_level():
    change = level_change(3, 1500)
    assert change.current_level == 3
    assert not change.leveled_up


def test_level_change_reports_tier_upgrade():
    change = level_change(5, 5000)
    assert change.current_level == 6
    assert change.leveled_up
    assert change.tier_upgraded


def test_level_summary():
    summary = level_summary(2500, DEFAULT_POLICY)
    assert summary.level == 3
    assert summary.xp_into_level == 500
    assert summary.xp_for_next_level == 3000
    assert summary.tier_key == "novice"
    assert summary.next_tier_level == 6
