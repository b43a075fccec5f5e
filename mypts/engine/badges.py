"""
mypts.engine.badges — Badge Requirement Handlers
==================================================

Handler-registry implementation of badge progress.  Each
:class:`~mypts.database.models.RequirementType` maps to a pure handler
that receives the badge's ``requirements`` JSONB and a
:class:`BadgeContext` snapshot and returns a progress percentage.

Decomposable badges (those with an ``activities`` list) are scored from
per-activity completion counters instead, weighted by each activity's
``points``.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from mypts.database.models import RequirementType
from mypts.engine.milestones import level_index

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Badge context passed to every requirement handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeContext:
    """Snapshot of account state after a ledger change.

    Parameters
    ----------
    lifetime_earned : Total points ever credited.
    balance : Current spendable balance.
    milestone_level : Current milestone level name.
    activity_counts : activity_type → rewarded occurrences (all time).
    completed_badges : Number of badges already completed.
    """

    lifetime_earned: int = 0
    balance: int = 0
    milestone_level: str = "Starter"
    activity_counts: dict[str, int] = field(default_factory=dict)
    completed_badges: int = 0


def _percent(value: int, threshold: int) -> int:
    if threshold <= 0:
        return 100
    return min(value * 100 // threshold, 100)


# ---------------------------------------------------------------------------
# Requirement handlers: (requirements, ctx) → progress | None
# ---------------------------------------------------------------------------
def _lifetime_earned(req: dict, ctx: BadgeContext) -> int | None:
    """Config: {"type": "lifetime_earned", "threshold": 10000}"""
    return _percent(ctx.lifetime_earned, int(req.get("threshold", 0)))


def _balance(req: dict, ctx: BadgeContext) -> int | None:
    """Config: {"type": "balance", "threshold": 500}"""
    return _percent(ctx.balance, int(req.get("threshold", 0)))


def _activity_count(req: dict, ctx: BadgeContext) -> int | None:
    """Config: {"type": "activity_count", "threshold": 10, "condition": "social_share"}"""
    activity_type = req.get("condition")
    if not activity_type:
        return None
    return _percent(ctx.activity_counts.get(activity_type, 0), int(req.get("threshold", 0)))


def _milestone_level(req: dict, ctx: BadgeContext) -> int | None:
    """Config: {"type": "milestone_level", "condition": "Achiever"}"""
    target = level_index(req.get("condition", ""))
    if target < 0:
        return None
    current = max(level_index(ctx.milestone_level), 0)
    return _percent(current, target)


def _badge_count(req: dict, ctx: BadgeContext) -> int | None:
    """Config: {"type": "badge_count", "threshold": 5}"""
    return _percent(ctx.completed_badges, int(req.get("threshold", 0)))


def _manual(req: dict, ctx: BadgeContext) -> int | None:
    """Awarded by an admin only."""
    return None


REQUIREMENT_HANDLERS: dict[str, Callable[[dict, BadgeContext], int | None]] = {
    RequirementType.LIFETIME_EARNED: _lifetime_earned,
    RequirementType.BALANCE: _balance,
    RequirementType.ACTIVITY_COUNT: _activity_count,
    RequirementType.MILESTONE_LEVEL: _milestone_level,
    RequirementType.BADGE_COUNT: _badge_count,
    RequirementType.MANUAL: _manual,
}


def requirement_progress(requirements: dict | None, ctx: BadgeContext) -> int | None:
    """Progress (0–100) for a badge's requirements, or ``None`` when the
    badge is not automatically trackable."""
    if not requirements:
        return None
    handler = REQUIREMENT_HANDLERS.get(requirements.get("type", ""))
    if handler is None:
        logger.warning("Unknown badge requirement type: %r", requirements.get("type"))
        return None
    return handler(requirements, ctx)


# ---------------------------------------------------------------------------
# Decomposable badges
# ---------------------------------------------------------------------------
def _activity_done(activity: dict, counts: dict[str, int]) -> bool:
    threshold = int((activity.get("criteria") or {}).get("threshold", 1))
    return counts.get(activity.get("activity_id", ""), 0) >= max(threshold, 1)


def activities_progress(
    activities: list[dict],
    counts: dict[str, int],
    required_count: int | None = None,
) -> int:
    """Weighted completion of a decomposable badge.

    The scoring pool is the required activities (all of them when none is
    flagged required).  Each contributes its ``points`` weight (default 1).
    When *required_count* is set, at least that many activities must also
    be complete before progress may read 100.
    """
    if not activities:
        return 0
    pool = [a for a in activities if a.get("is_required")] or list(activities)
    total = sum(max(int(a.get("points", 1)), 1) for a in pool)
    done = sum(max(int(a.get("points", 1)), 1) for a in pool if _activity_done(a, counts))
    progress = done * 100 // total

    if required_count:
        completed = sum(1 for a in activities if _activity_done(a, counts))
        if completed < required_count:
            progress = min(progress, 99)
    return progress


def badge_progress(
    requirements: dict | None,
    activities: list[dict] | None,
    ctx: BadgeContext,
    activity_counts: dict[str, int] | None = None,
    required_count: int | None = None,
) -> int | None:
    """Progress for any badge: decomposable ones by activities, the rest
    through the requirement registry."""
    if activities:
        return activities_progress(activities, activity_counts or {}, required_count)
    return requirement_progress(requirements, ctx)
