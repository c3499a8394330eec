#!/usr/bin/env python3
"""Seed the badge catalog from data/badges.yaml.

Badges are upserted by badge_key, so the script is safe to re-run after
editing the catalog. Award rules are validated before anything is written;
one invalid rule aborts the whole seed.

Run with: python3 -m scripts.seed_badges [path]
"""
import asyncio
import sys
from pathlib import Path

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_db_session, engine, Base
from core.errors import AppError, Err, Ok, Result, sequence_results, validation_error
from engines.criteria import parse_criteria
from models.badges import BADGE_CATEGORIES, Badge

ROOT_DIR = Path(__file__).parent.parent.parent

BADGE_FIELDS = ("name", "description", "category", "family", "tier", "icon", "criteria", "xp_bonus", "display_order")


def load_catalog(path: Path) -> list[dict]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return data.get("badges", [])


def validate_entry(entry: dict) -> Result[dict, AppError]:
    key = entry.get("badge_key")
    if not key:
        return validation_error("badge_key is required", field="badge_key", origin="seed_badges")
    if entry.get("category") not in BADGE_CATEGORIES:
        return validation_error(
            f"Unknown category for {key}: {entry.get('category')}", field="category", origin="seed_badges"
        )
    return parse_criteria(entry.get("criteria"), key).map(
        lambda criterion: {**entry, "criteria": criterion.model_dump()}
    )


async def upsert_badges(session: AsyncSession, entries: list[dict]) -> tuple[int, int]:
    """Insert new badges and refresh existing ones. Returns (created, updated)."""
    existing = {
        b.badge_key: b for b in (await session.execute(select(Badge))).scalars().all()
    }
    created = updated = 0
    for entry in entries:
        values = {f: entry.get(f) for f in BADGE_FIELDS if f in entry}
        values.setdefault("xp_bonus", 0)
        badge = existing.get(entry["badge_key"])
        if badge is None:
            session.add(Badge(badge_key=entry["badge_key"], **values))
            created += 1
        else:
            for name, value in values.items():
                setattr(badge, name, value)
            updated += 1
    await session.flush()
    return created, updated


async def main(path: Path):
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    match sequence_results([validate_entry(e) for e in load_catalog(path)]):
        case Err(error):
            print(f"Invalid badge catalog: {error.message}")
            sys.exit(1)
        case Ok(entries):
            pass

    print(f"\nSeeding {len(entries)} badges from {path}...")
    async with get_db_session() as session:
        created, updated = await upsert_badges(session, entries)
        await session.commit()
    print(f"\n✓ Badge seeding complete: {created} created, {updated} updated")


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else ROOT_DIR / settings.BADGE_CATALOG_PATH
    asyncio.run(main(target))
