from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from core.database import Base, GUID

BADGE_CATEGORIES = ("lesson", "course", "program", "accuracy", "difficulty", "streak", "special")
BADGE_TIERS = ("bronze", "silver", "gold", "platinum")


class Badge(Base):
    """Catalog entry with a declarative award rule"""
    __tablename__ = "badges"
    __table_args__ = (
        Index("ix_badges_category_order", "category", "display_order"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    badge_key = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(20), nullable=False)
    family = Column(String(50))  # groups tiers of one progression, e.g. "awakening"
    tier = Column(String(20))
    icon = Column(String(50))
    criteria = Column(JSON, nullable=False)  # {"kind": ..., ...}, see engines.criteria
    xp_bonus = Column(Integer, nullable=False, default=0)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class UserBadge(Base):
    """Award record; at most one per (user, badge), never deleted"""
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id = Column(GUID, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    awarded_at = Column(DateTime, default=datetime.utcnow)

    badge = relationship("Badge", lazy="joined")
