"""
mypts.database.seed — Default Rules, Badges and Hub Seeder
============================================================

Baseline data seeded on first startup so the economy is immediately
usable: the reward rule catalogue, a starter set of badges, and the Hub
singleton row.

Idempotent — only inserts rows that don't already exist.  Rules and
badges edited later by admins are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mypts.config import MyPtsConfig
from mypts.database.engine import get_session
from mypts.database.models import (
    ActivityRewardRule,
    Badge,
    BadgeCategory,
    BadgeRarity,
    MilestoneLevel,
    MyPtsHub,
    RequirementType,
)

logger = logging.getLogger(__name__)

HUB_ID = 1

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


# ---------------------------------------------------------------------------
# Default reward rules
# ---------------------------------------------------------------------------
DEFAULT_RULES: list[dict] = [
    {
        "activity_type": "profile_completion",
        "description": "completing your profile",
        "category": "profile_completion",
        "points_rewarded": 50,
        "cooldown_seconds": 0,
        "max_rewards_per_day": 1,
        "is_enabled": False,
    },
    {
        "activity_type": "platform_join",
        "description": "joining the platform",
        "category": "platform_usage",
        "points_rewarded": 100,
        "cooldown_seconds": 0,
        "max_rewards_per_day": 1,
    },
    {
        "activity_type": "referral",
        "description": "referring a new user",
        "category": "networking",
        "points_rewarded": 100,
        "cooldown_seconds": 0,
        "max_rewards_per_day": 10,
    },
    {
        "activity_type": "daily_login",
        "description": "logging in today",
        "category": "platform_usage",
        "points_rewarded": 10,
        "cooldown_seconds": _DAY,
        "max_rewards_per_day": 1,
    },
    {
        "activity_type": "profile_update",
        "description": "updating your profile",
        "category": "profile_completion",
        "points_rewarded": 5,
        "cooldown_seconds": _HOUR,
        "max_rewards_per_day": 3,
    },
    {
        "activity_type": "social_share",
        "description": "sharing content",
        "category": "engagement",
        "points_rewarded": 15,
        "cooldown_seconds": 30 * _MINUTE,
        "max_rewards_per_day": 5,
    },
    {
        "activity_type": "community_participation",
        "description": "participating in the community",
        "category": "engagement",
        "points_rewarded": 20,
        "cooldown_seconds": 15 * _MINUTE,
        "max_rewards_per_day": 10,
    },
]


# ---------------------------------------------------------------------------
# Default badges
# ---------------------------------------------------------------------------
DEFAULT_BADGES: list[dict] = [
    {
        "name": "First Steps",
        "description": "Earn your first 100 MyPts",
        "category": BadgeCategory.MYPTS,
        "rarity": BadgeRarity.COMMON,
        "requirements": {"type": RequirementType.LIFETIME_EARNED, "threshold": 100},
    },
    {
        "name": "Point Collector",
        "description": "Earn 10,000 MyPts over your lifetime",
        "category": BadgeCategory.MYPTS,
        "rarity": BadgeRarity.UNCOMMON,
        "requirements": {"type": RequirementType.LIFETIME_EARNED, "threshold": 10_000},
    },
    {
        "name": "Achiever",
        "description": "Reach the Achiever milestone",
        "category": BadgeCategory.MYPTS,
        "rarity": BadgeRarity.RARE,
        "requirements": {
            "type": RequirementType.MILESTONE_LEVEL,
            "threshold": 1,
            "condition": MilestoneLevel.ACHIEVER,
        },
    },
    {
        "name": "Social Butterfly",
        "description": "Share content 10 times",
        "category": BadgeCategory.ENGAGEMENT,
        "rarity": BadgeRarity.UNCOMMON,
        "requirements": {
            "type": RequirementType.ACTIVITY_COUNT,
            "threshold": 10,
            "condition": "social_share",
        },
    },
    {
        "name": "Community Pillar",
        "description": "Participate, share and bring friends along",
        "category": BadgeCategory.NETWORKING,
        "rarity": BadgeRarity.EPIC,
        "requirements": {"type": RequirementType.MANUAL, "threshold": 0},
        "activities": [
            {
                "activity_id": "community_participation",
                "name": "Join 5 community discussions",
                "points": 2,
                "is_required": True,
                "criteria": {"type": "count", "threshold": 5},
            },
            {
                "activity_id": "social_share",
                "name": "Share 3 times",
                "points": 1,
                "is_required": True,
                "criteria": {"type": "count", "threshold": 3},
            },
            {
                "activity_id": "referral",
                "name": "Refer a friend",
                "points": 1,
                "is_required": False,
                "criteria": {"type": "count", "threshold": 1},
            },
        ],
        "required_activities_count": 2,
    },
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_rules(session: Session) -> int:
    """Insert missing default rules; returns the number inserted."""
    existing = set(session.scalars(select(ActivityRewardRule.activity_type)).all())
    inserted = 0
    for row in DEFAULT_RULES:
        if row["activity_type"] in existing:
            continue
        session.add(ActivityRewardRule(**row))
        inserted += 1
    return inserted


def seed_badges(session: Session) -> int:
    """Insert missing default badges (matched by name)."""
    existing = set(session.scalars(select(Badge.name)).all())
    inserted = 0
    for row in DEFAULT_BADGES:
        if row["name"] in existing:
            continue
        session.add(Badge(**row))
        inserted += 1
    return inserted


def seed_hub(session: Session, config: MyPtsConfig) -> bool:
    """Create the Hub singleton with the whole initial supply in reserve."""
    if session.get(MyPtsHub, HUB_ID) is not None:
        return False
    session.add(MyPtsHub(
        id=HUB_ID,
        total_supply=config.hub_initial_supply,
        circulating_supply=0,
        reserve_supply=config.hub_initial_supply,
        max_supply=config.hub_max_supply,
        value_per_mypt=config.hub_value_per_mypt,
    ))
    return True


def seed_defaults(engine: Engine, config: MyPtsConfig | None = None) -> None:
    """Seed rules, badges and the Hub row.  Safe to call repeatedly."""
    config = config or MyPtsConfig()
    with get_session(engine) as session:
        rules = seed_rules(session)
        badges = seed_badges(session)
        hub = seed_hub(session, config)

    if rules or badges or hub:
        logger.info(
            "Seeded %d rules, %d badges%s.",
            rules, badges, ", created Hub" if hub else "",
        )
