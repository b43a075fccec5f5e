"""
mypts.services.milestone_service — Milestone Tracking
=======================================================

Keeps each profile's :class:`ProfileMilestone` in step with its
``lifetime_earned``.  Runs inside the ledger unit after every credit.
Levels only ever go up: a reversal that lowers ``lifetime_earned`` moves
``current_points`` but keeps the level already reached.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from mypts.database.models import MilestoneHistory, MilestoneLevel, ProfileMilestone
from mypts.engine.milestones import compute_milestone, levels_between
from mypts.services.context import run_unit
from mypts.services.notifications import Notification, milestone_achieved

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


def get_or_create_milestone(
    session: Session, profile_id: str, now: datetime
) -> ProfileMilestone:
    """Fetch or insert the milestone row; new rows start at Starter with a
    Starter history entry."""
    milestone = session.get(ProfileMilestone, profile_id)
    if milestone is None:
        state = compute_milestone(0)
        milestone = ProfileMilestone(
            profile_id=profile_id,
            current_level=MilestoneLevel.STARTER,
            current_points=0,
            next_level=state.next_level,
            next_level_threshold=state.next_threshold,
            progress=state.progress,
            updated_at=now,
        )
        session.add(milestone)
        session.add(MilestoneHistory(
            profile_id=profile_id, level=MilestoneLevel.STARTER, achieved_at=now
        ))
        session.flush()
    return milestone


def update_milestone(
    session: Session,
    outbox: list[Notification],
    profile_id: str,
    points: int,
    now: datetime,
) -> ProfileMilestone:
    """Recompute the milestone for *points* (lifetime earned).

    The stored level is a floor: when *points* drop (credit reversal) the
    level stays and only points and progress follow.  Every level crossed
    gets its own history row; one notification is queued for the highest
    new level.
    """
    milestone = get_or_create_milestone(session, profile_id, now)
    old_level = milestone.current_level
    state = compute_milestone(points, floor_level=old_level)
    milestone.current_points = state.points
    milestone.next_level = state.next_level
    milestone.next_level_threshold = state.next_threshold
    milestone.progress = state.progress
    milestone.updated_at = now

    if state.level != old_level:
        for level in levels_between(old_level, state.level):
            session.add(MilestoneHistory(profile_id=profile_id, level=level, achieved_at=now))
        milestone.current_level = state.level
        outbox.append(milestone_achieved(profile_id, state.level, old_level))
        logger.info("%s reached milestone %s (from %s)", profile_id, state.level, old_level)
    return milestone


def get_profile_milestone(ctx: EconomyContext, profile_id: str) -> ProfileMilestone:
    """Current milestone, lazily created at Starter."""

    def work(session: Session, _outbox) -> ProfileMilestone:
        get_or_create_milestone(session, profile_id, ctx.now())
        session.flush()
        return session.scalar(
            select(ProfileMilestone)
            .where(ProfileMilestone.profile_id == profile_id)
            .options(selectinload(ProfileMilestone.history))
            .execution_options(populate_existing=True)
        )

    return run_unit(ctx, profile_id, work)


def milestone_to_dict(milestone: ProfileMilestone) -> dict:
    return {
        "profile_id": milestone.profile_id,
        "current_level": milestone.current_level,
        "current_points": milestone.current_points,
        "next_level": milestone.next_level,
        "next_level_threshold": milestone.next_level_threshold,
        "progress": milestone.progress,
        "history": [
            {"level": h.level, "achieved_at": h.achieved_at.isoformat()}
            for h in milestone.history
        ],
    }
