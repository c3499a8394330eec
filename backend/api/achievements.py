"""Achievements API

Badge catalog with earned state, grouped by category, and an explicit
re-check endpoint that runs a badge scope outside of lesson submission.
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, fetch_one
from core.errors import DatabaseErrorMapper, raise_error, raise_result
from core.logging import api_logger
from engines.badges import BadgeEvaluator, BadgeScope
from engines.leveling import level_change, policy_from_settings
from engines.store import LearningStore
from core.security import get_current_user_id
from api.learner import BadgeResponse, LevelResponse
from models.users import User

router = APIRouter()
log = api_logger()

_db_mapper = DatabaseErrorMapper("api.achievements")


class BadgeStateResponse(BaseModel):
    badge: BadgeResponse
    family: str | None
    display_order: int
    earned: bool
    awarded_at: datetime | None


class CategoryResponse(BaseModel):
    category: str
    earned: int
    total: int
    badges: list[BadgeStateResponse]


class RecentBadgeResponse(BaseModel):
    badge: BadgeResponse
    awarded_at: datetime


class SummaryResponse(BaseModel):
    earned: int
    total: int
    percent: int
    badge_xp: int
    recent: list[RecentBadgeResponse]


class AchievementsResponse(BaseModel):
    summary: SummaryResponse
    categories: list[CategoryResponse]


class CheckResponse(BaseModel):
    scope: BadgeScope
    new_badges: list[BadgeResponse]
    xp_awarded: int
    failed_badges: list[str]
    scope_failed: bool
    level: LevelResponse


@router.get("", response_model=AchievementsResponse)
async def get_achievements(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    raise_result(await fetch_one(db, User, user_id, "User"))

    evaluator = BadgeEvaluator(LearningStore(db))
    summary = await evaluator.badge_summary(user_id)
    categories = await evaluator.badges_by_category(user_id)

    return AchievementsResponse(
        summary=SummaryResponse(
            earned=summary.earned,
            total=summary.total,
            percent=summary.percent,
            badge_xp=summary.badge_xp,
            recent=[
                RecentBadgeResponse(badge=BadgeResponse.model_validate(r.badge), awarded_at=r.awarded_at)
                for r in summary.recent
            ],
        ),
        categories=[
            CategoryResponse(
                category=c.category,
                earned=c.earned,
                total=c.total,
                badges=[
                    BadgeStateResponse(
                        badge=BadgeResponse.model_validate(v.badge),
                        family=v.family,
                        display_order=v.display_order,
                        earned=v.earned,
                        awarded_at=v.awarded_at,
                    )
                    for v in c.badges
                ],
            )
            for c in categories
        ],
    )


@router.post("/check", response_model=CheckResponse)
async def check_badges(
    scope: BadgeScope = Query(BadgeScope.ALL),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Evaluate one badge scope now and persist any new awards."""
    result = await fetch_one(db, User, user_id, "User")
    raise_result(result)
    previous_level = result.unwrap().level

    store = LearningStore(db)
    try:
        checked = await BadgeEvaluator(store).check_and_award_badges(user_id, scope)
        change = level_change(previous_level, await store.get_user_xp(user_id), policy_from_settings())
        if change.leveled_up:
            await store.raise_level(user_id, change.current_level)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise_error(_db_mapper.map_exception(e))

    log.info("badge_check_requested", user_id=user_id, scope=scope.value, awarded=len(checked.new_badges))
    return CheckResponse(
        scope=scope,
        new_badges=[BadgeResponse.model_validate(b) for b in checked.new_badges],
        xp_awarded=checked.total_xp_awarded,
        failed_badges=checked.failed_badges,
        scope_failed=checked.scope_failed,
        level=LevelResponse(
            previous_level=change.previous_level,
            current_level=change.current_level,
            leveled_up=change.leveled_up,
            tier_upgraded=change.tier_upgraded,
            total_xp=change.total_xp,
        ),
    )
