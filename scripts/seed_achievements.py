#!/usr/bin/env python3
"""
Seed the default achievement catalogue.

Usage:
    python scripts/seed_achievements.py

Inserts every catalogue entry whose slug is not present yet, so it can be
re-run after new entries are added. Uses DATABASE_URL from the environment
(or .env) like the application.
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.achievements.models import Achievement
from app.auth import models as auth_models  # noqa: F401
from app.database import SessionLocal, engine

CATALOGUE = [
    # Common
    {
        "slug": "hail-caesar",
        "name": "HAIL, CAESAR!",
        "short_description": "Get 5/5 in a History round",
        "category": "performance",
        "rarity": "common",
        "condition_type": "perfect-in-category",
        "condition_config": {"category": "history", "requiredScore": 5},
    },
    {
        "slug": "addicted",
        "name": "Addicted",
        "short_description": "Play 3 quizzes in a single day",
        "category": "engagement",
        "rarity": "common",
        "condition_type": "play-n-in-window",
        "condition_config": {"count": 3, "timeWindow": "day"},
    },
    {
        "slug": "time-traveller",
        "name": "Time Traveller",
        "short_description": "Complete a quiz from 3+ weeks ago",
        "category": "engagement",
        "rarity": "common",
        "condition_type": "quiz-age-at-completion",
        "condition_config": {"weeksAgo": 3},
    },
    {
        "slug": "deja-vu",
        "name": "Déjà Vu",
        "short_description": "Complete the same quiz twice",
        "category": "engagement",
        "rarity": "common",
        "condition_type": "repeat-same-quiz",
        "condition_config": {"minCompletions": 2},
    },
    # Uncommon
    {
        "slug": "blitzkrieg",
        "name": "Blitzkrieg!",
        "short_description": "Get 5/5 in a History round under 2 minutes",
        "category": "performance",
        "rarity": "uncommon",
        "condition_type": "time-limit",
        "condition_config": {"category": "history", "maxSeconds": 120, "requiredScore": 5},
    },
    {
        "slug": "routine-genius",
        "name": "Routine Genius",
        "short_description": "Play at least once a week for 4 weeks",
        "category": "engagement",
        "rarity": "uncommon",
        "condition_type": "weekly-streak",
        "condition_config": {"weeks": 4},
    },
    {
        "slug": "quiz-enthusiast",
        "name": "Quiz Enthusiast",
        "short_description": "Complete 25 quizzes",
        "category": "engagement",
        "rarity": "uncommon",
        "condition_type": "play-n-total",
        "condition_config": {"count": 25},
    },
    {
        "slug": "perfectionist",
        "name": "Perfectionist",
        "short_description": "Get 5 perfect quiz scores",
        "category": "performance",
        "rarity": "uncommon",
        "condition_type": "perfect-scores-total",
        "condition_config": {"count": 5, "minQuestions": 5},
    },
    # Rare
    {
        "slug": "ace",
        "name": "Ace",
        "short_description": "Get 5/5 in a Sports round",
        "category": "performance",
        "rarity": "rare",
        "is_premium_only": True,
        "condition_type": "perfect-in-category",
        "condition_config": {"category": "sports", "requiredScore": 5},
    },
    {
        "slug": "torchbearer",
        "name": "Torchbearer",
        "short_description": "Take part in the Olympics event round",
        "category": "event",
        "rarity": "rare",
        "is_premium_only": True,
        "season_tag": "olympics-2026",
        "condition_type": "seasonal-tag-match",
        "condition_config": {"eventTag": "olympics-2026"},
    },
    {
        "slug": "all-rounder",
        "name": "All-Rounder",
        "short_description": "Get a perfect round in 4 different categories",
        "category": "performance",
        "rarity": "rare",
        "condition_type": "perfect-multi-category",
        "condition_config": {"minCategories": 4, "requiredScore": 5},
    },
    # Epic and legendary
    {
        "slug": "quiz-veteran",
        "name": "Quiz Veteran",
        "short_description": "Complete 100 quizzes",
        "category": "engagement",
        "rarity": "epic",
        "condition_type": "play-n-total",
        "condition_config": {"count": 100},
    },
    {
        "slug": "iron-quizzer",
        "name": "Iron Quizzer",
        "short_description": "Play every week for 10 weeks",
        "category": "engagement",
        "rarity": "legendary",
        "is_premium_only": True,
        "condition_type": "weekly-streak",
        "condition_config": {"consecutiveWeeks": 10},
    },
    # Premium membership
    {
        "slug": "premium-member",
        "name": "Premium Member",
        "short_description": "Join premium",
        "category": "membership",
        "rarity": "rare",
        "is_premium_only": True,
        "condition_type": "subscription",
        "condition_config": {"tier": "premium"},
    },
]


async def seed() -> int:
    async with SessionLocal() as session:
        result = await session.execute(select(Achievement.slug))
        existing = set(result.scalars().all())

        created = 0
        for entry in CATALOGUE:
            if entry["slug"] in existing:
                continue
            session.add(Achievement(**entry))
            created += 1

        await session.commit()
    await engine.dispose()
    return created


def main():
    print("Seeding achievements...")
    created = asyncio.run(seed())
    print(f"Created {created} achievements ({len(CATALOGUE) - created} already present)")


if __name__ == "__main__":
    main()
