"""XP & Leveling Engine

Converts a lesson outcome into XP and maps cumulative XP onto levels.

    total = round(base × difficulty_mult × level_mult) + performance_bonus
    level = floor(xp / xp_per_level) + 1

All functions are pure over their arguments and an immutable XpPolicy, so
the same inputs always produce the same award.
"""
import math
from dataclasses import dataclass

from core.config import settings
from core.logging import gamification_logger

log = gamification_logger()


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (2.5 → 3, not banker's 2)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True, slots=True)
class PerformanceTier:
    min_score: int
    bonus: int
    label: str


@dataclass(frozen=True, slots=True)
class LevelTier:
    key: str
    name: str
    min_level: int
    max_level: int | None  # None: open-ended top tier


@dataclass(frozen=True, slots=True)
class XpPolicy:
    """Tunable multiplier curves and level step."""
    base_xp: int = 100
    xp_per_level: int = 1000
    difficulty_multipliers: tuple[tuple[str, float], ...] = (
        ("beginner", 1.0),
        ("intermediate", 1.5),
        ("advanced", 2.0),
    )
    # (minimum level, multiplier), highest band first
    level_bands: tuple[tuple[int, float], ...] = (
        (30, 1.3),
        (25, 1.25),
        (20, 1.2),
        (15, 1.15),
        (10, 1.1),
    )
    # highest threshold first; scores are clamped to 0..100 so 100 means perfect
    performance_tiers: tuple[PerformanceTier, ...] = (
        PerformanceTier(100, 50, "Perfect!"),
        PerformanceTier(90, 25, "Excellent"),
        PerformanceTier(80, 10, "Good"),
        PerformanceTier(70, 0, "Pass"),
    )
    fallback_label: str = "Keep Trying"
    level_tiers: tuple[LevelTier, ...] = (
        LevelTier("novice", "Safety Novice", 1, 5),
        LevelTier("practitioner", "Safety Practitioner", 6, 10),
        LevelTier("professional", "Safety Professional", 11, 15),
        LevelTier("expert", "Safety Expert", 16, 20),
        LevelTier("leader", "Safety Leader", 21, 25),
        LevelTier("master", "Safety Master", 26, None),
    )


DEFAULT_POLICY = XpPolicy()


def policy_from_settings() -> XpPolicy:
    return XpPolicy(base_xp=settings.XP_BASE_LESSON, xp_per_level=settings.XP_PER_LEVEL)


@dataclass(frozen=True, slots=True)
class XpBreakdown:
    base_xp: int
    difficulty: str
    difficulty_multiplier: float
    level_multiplier: float
    performance_bonus: int
    performance_label: str
    score_percentage: int
    total_xp: int

    @property
    def formula(self) -> str:
        """Human readable, e.g. "(100 × 2.0 × 1.2) + 25 = 265"."""
        return (
            f"({self.base_xp} × {_fmt_multiplier(self.difficulty_multiplier)} × "
            f"{_fmt_multiplier(self.level_multiplier)}) + {self.performance_bonus} = {self.total_xp}"
        )


@dataclass(frozen=True, slots=True)
class LevelSummary:
    level: int
    total_xp: int
    xp_into_level: int
    xp_for_next_level: int
    xp_to_next_level: int
    progress_percent: int
    tier_key: str
    tier_name: str
    level_multiplier: float
    next_tier_level: int | None


@dataclass(frozen=True, slots=True)
class LevelChange:
    previous_level: int
    current_level: int
    total_xp: int
    tier_upgraded: bool

    @property
    def leveled_up(self) -> bool:
        return self.current_level > self.previous_level


def _fmt_multiplier(value: float) -> str:
    text = f"{value:g}"
    return text if "." in text else f"{text}.0"


def difficulty_multiplier(difficulty: str | None, policy: XpPolicy = DEFAULT_POLICY) -> float:
    """Unknown or missing difficulty counts as the baseline 1.0."""
    key = (difficulty or "").strip().lower()
    for name, mult in policy.difficulty_multipliers:
        if name == key:
            return mult
    return 1.0


def level_multiplier(level: int, policy: XpPolicy = DEFAULT_POLICY) -> float:
    for min_level, mult in policy.level_bands:
        if level >= min_level:
            return mult
    return 1.0


def performance_bonus(score_percentage: int, policy: XpPolicy = DEFAULT_POLICY) -> tuple[int, str]:
    for tier in policy.performance_tiers:
        if score_percentage >= tier.min_score:
            return tier.bonus, tier.label
    return 0, policy.fallback_label


def award_xp(
    base_xp: int,
    lesson_difficulty: str | None,
    user_level: int,
    score_percentage: int,
    policy: XpPolicy = DEFAULT_POLICY,
) -> XpBreakdown:
    """XP for one rewarded lesson pass."""
    score = max(0, min(100, score_percentage))
    diff_mult = difficulty_multiplier(lesson_difficulty, policy)
    lvl_mult = level_multiplier(user_level, policy)
    bonus, label = performance_bonus(score, policy)
    total = round_half_up(base_xp * diff_mult * lvl_mult) + bonus

    return XpBreakdown(
        base_xp=base_xp,
        difficulty=lesson_difficulty or "Beginner",
        difficulty_multiplier=diff_mult,
        level_multiplier=lvl_mult,
        performance_bonus=bonus,
        performance_label=label,
        score_percentage=score,
        total_xp=total,
    )


def calculate_level(xp: int, policy: XpPolicy = DEFAULT_POLICY) -> int:
    return max(0, xp) // policy.xp_per_level + 1


def xp_for_level(level: int, policy: XpPolicy = DEFAULT_POLICY) -> int:
    """Cumulative XP at which `level` starts."""
    return max(0, level - 1) * policy.xp_per_level


def xp_to_next_level(xp: int, policy: XpPolicy = DEFAULT_POLICY) -> int:
    return xp_for_level(calculate_level(xp, policy) + 1, policy) - max(0, xp)


def level_progress(xp: int, policy: XpPolicy = DEFAULT_POLICY) -> int:
    """Percent of the way through the current level, 0..99."""
    into = max(0, xp) - xp_for_level(calculate_level(xp, policy), policy)
    return min(99, into * 100 // policy.xp_per_level)


def tier_for_level(level: int, policy: XpPolicy = DEFAULT_POLICY) -> LevelTier:
    for tier in policy.level_tiers:
        if level >= tier.min_level and (tier.max_level is None or level <= tier.max_level):
            return tier
    return policy.level_tiers[0]


def next_tier_level(level: int, policy: XpPolicy = DEFAULT_POLICY) -> int | None:
    for tier in policy.level_tiers:
        if tier.min_level > level:
            return tier.min_level
    return None


def is_tier_upgrade(previous_level: int, new_level: int, policy: XpPolicy = DEFAULT_POLICY) -> bool:
    return tier_for_level(new_level, policy).key != tier_for_level(previous_level, policy).key


def level_change(previous_level: int, total_xp: int, policy: XpPolicy = DEFAULT_POLICY) -> LevelChange:
    """Compare a stored level against the level implied by total XP.

    The current level never drops below the previous one.
    """
    current = max(previous_level, calculate_level(total_xp, policy))
    change = LevelChange(
        previous_level=previous_level,
        current_level=current,
        total_xp=total_xp,
        tier_upgraded=is_tier_upgrade(previous_level, current, policy),
    )
    if change.leveled_up:
        log.info(
            "level_up",
            previous_level=previous_level,
            new_level=current,
            total_xp=total_xp,
            tier_upgraded=change.tier_upgraded,
        )
    return change


def level_summary(xp: int, policy: XpPolicy = DEFAULT_POLICY) -> LevelSummary:
    level = calculate_level(xp, policy)
    tier = tier_for_level(level, policy)
    start = xp_for_level(level, policy)
    return LevelSummary(
        level=level,
        total_xp=xp,
        xp_into_level=max(0, xp) - start,
        xp_for_next_level=xp_for_level(level + 1, policy),
        xp_to_next_level=xp_to_next_level(xp, policy),
        progress_percent=level_progress(xp, policy),
        tier_key=tier.key,
        tier_name=tier.name,
        level_multiplier=level_multiplier(level, policy),
        next_tier_level=next_tier_level(level, policy),
    )
