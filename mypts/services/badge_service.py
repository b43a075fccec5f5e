"""
mypts.services.badge_service — Badge Progress & Awards
========================================================

Per-profile badge progress lives in ``profile_badges`` and is created
lazily.  Progress is clamped to [0, 100]; a completed record never
changes again.  The first time progress reaches 100 the record is
stamped complete and a notification is queued; that is the only
automatic path to an award.  :func:`award_badge` is the direct path and
is idempotent.

:func:`evaluate_badges` runs inside the ledger unit after every credit
and scores each open badge through the requirement registry in
:mod:`mypts.engine.badges`.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session, object_session, selectinload

from mypts.database.models import (
    Badge,
    BadgeCategory,
    BadgeRarity,
    LeaderboardEntry,
    MyPtsAccount,
    ProfileBadge,
    RequirementType,
    UserActivity,
)
from mypts.engine.badges import BadgeContext, activities_progress, badge_progress
from mypts.errors import NotFound, ValidationError
from mypts.services.context import read_only, run_unit
from mypts.services.notifications import Notification, badge_earned

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_or_create_progress(session: Session, profile_id: str, badge_id: int) -> ProfileBadge:
    record = session.get(ProfileBadge, (profile_id, badge_id))
    if record is None:
        record = ProfileBadge(
            profile_id=profile_id, badge_id=badge_id, progress=0, is_completed=False
        )
        session.add(record)
        session.flush()
    return record


def count_completed(session: Session, profile_id: str) -> int:
    return session.scalar(
        select(func.count()).select_from(ProfileBadge).where(
            ProfileBadge.profile_id == profile_id, ProfileBadge.is_completed.is_(True)
        )
    ) or 0


def activity_counts(session: Session, profile_id: str) -> dict[str, int]:
    """activity_type → rewarded occurrences for one profile."""
    rows = session.execute(
        select(UserActivity.activity_type, func.count())
        .where(UserActivity.profile_id == profile_id)
        .group_by(UserActivity.activity_type)
    ).all()
    return {activity_type: count for activity_type, count in rows}


# ---------------------------------------------------------------------------
# Progress application
# ---------------------------------------------------------------------------
def _complete(
    record: ProfileBadge, badge: Badge, now: datetime, outbox: list[Notification]
) -> None:
    record.progress = 100
    record.is_completed = True
    record.completed_at = now
    session = object_session(record)
    entry = session.get(LeaderboardEntry, record.profile_id) if session is not None else None
    if entry is not None:
        entry.badge_count = (entry.badge_count or 0) + 1
    outbox.append(badge_earned(record.profile_id, badge.id, badge.name))
    logger.info("%s completed badge %r", record.profile_id, badge.name)


def apply_progress(
    record: ProfileBadge,
    badge: Badge,
    progress: int,
    now: datetime,
    outbox: list[Notification],
    *,
    monotonic: bool = False,
) -> ProfileBadge:
    """Set *progress* on an open record; complete it at 100."""
    if record.is_completed:
        return record
    progress = max(0, min(int(progress), 100))
    if monotonic and progress <= record.progress:
        return record
    record.progress = progress
    if progress >= 100:
        _complete(record, badge, now, outbox)
    return record


def _load_badge(session: Session, badge_id: int) -> Badge:
    badge = session.get(Badge, badge_id)
    if badge is None:
        raise NotFound(f"Badge {badge_id} not found")
    return badge


def update_progress(
    ctx: EconomyContext, profile_id: str, badge_id: int, progress: int
) -> ProfileBadge:
    """Set a profile's progress on a badge (clamped to 0–100).

    No-op on completed records.  Reaching 100 completes and notifies.
    """
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        raise ValidationError(f"Progress must be a number, got {progress!r}")

    def work(session: Session, outbox: list[Notification]) -> ProfileBadge:
        badge = _load_badge(session, badge_id)
        record = get_or_create_progress(session, profile_id, badge_id)
        return apply_progress(record, badge, int(progress), ctx.now(), outbox)

    return run_unit(ctx, profile_id, work)


def award_badge(ctx: EconomyContext, profile_id: str, badge_id: int) -> ProfileBadge:
    """Mark a badge complete.  Awarding an already-completed badge returns
    the existing record and sends nothing."""

    def work(session: Session, outbox: list[Notification]) -> ProfileBadge:
        badge = _load_badge(session, badge_id)
        record = get_or_create_progress(session, profile_id, badge_id)
        if not record.is_completed:
            _complete(record, badge, ctx.now(), outbox)
        return record

    return run_unit(ctx, profile_id, work)


def evaluate_badges(
    session: Session,
    outbox: list[Notification],
    account: MyPtsAccount,
    milestone_level: str,
    now: datetime,
) -> list[ProfileBadge]:
    """Score every open badge for *account* and apply any gains.

    Records are only created once a badge shows non-zero progress.  Badges
    completed in one pass feed ``badge_count`` requirements, so scoring
    repeats until a pass completes nothing.  Returns the records completed
    by this call.
    """
    profile_id = account.profile_id
    records = {
        r.badge_id: r
        for r in session.scalars(
            select(ProfileBadge).where(ProfileBadge.profile_id == profile_id)
        ).all()
    }
    ctx = BadgeContext(
        lifetime_earned=account.lifetime_earned,
        balance=account.balance,
        milestone_level=str(milestone_level),
        activity_counts=activity_counts(session, profile_id),
        completed_badges=sum(1 for r in records.values() if r.is_completed),
    )
    open_badges = [
        badge
        for badge in session.scalars(select(Badge).order_by(Badge.id)).all()
        if not (badge.id in records and records[badge.id].is_completed)
    ]

    completed: list[ProfileBadge] = []
    while open_badges:
        newly_completed: list[ProfileBadge] = []
        for badge in open_badges:
            record = records.get(badge.id)
            progress = badge_progress(
                badge.requirements,
                badge.activities,
                ctx,
                activity_counts=record.activity_counts if record is not None else None,
                required_count=badge.required_activities_count,
            )
            if progress is None or (record is None and progress == 0):
                continue
            if record is None:
                record = records[badge.id] = get_or_create_progress(
                    session, profile_id, badge.id
                )
            apply_progress(record, badge, progress, now, outbox, monotonic=True)
            if record.is_completed:
                newly_completed.append(record)
        if not newly_completed:
            break
        completed.extend(newly_completed)
        ctx = replace(ctx, completed_badges=ctx.completed_badges + len(newly_completed))
        done = {r.badge_id for r in newly_completed}
        open_badges = [badge for badge in open_badges if badge.id not in done]
    return completed


# ---------------------------------------------------------------------------
# Decomposable badge activities
# ---------------------------------------------------------------------------
def _bump(record: ProfileBadge, activity_id: str, increment: int) -> None:
    counts = dict(record.activity_counts or {})
    counts[activity_id] = counts.get(activity_id, 0) + increment
    record.activity_counts = counts


def record_badge_activity(
    session: Session, profile_id: str, activity_type: str, increment: int = 1
) -> list[ProfileBadge]:
    """Bump the counter of every open badge activity whose ``activity_id``
    equals *activity_type*.  Progress is re-scored by the next
    :func:`evaluate_badges`."""
    touched: list[ProfileBadge] = []
    for badge in session.scalars(select(Badge).where(Badge.activities.is_not(None))).all():
        if not any(a.get("activity_id") == activity_type for a in badge.activities or []):
            continue
        record = get_or_create_progress(session, profile_id, badge.id)
        if record.is_completed:
            continue
        _bump(record, activity_type, increment)
        touched.append(record)
    return touched


def complete_badge_activity(
    ctx: EconomyContext,
    profile_id: str,
    badge_id: int,
    activity_id: str,
    increment: int = 1,
) -> ProfileBadge:
    """Record progress on one activity of a decomposable badge and
    re-score the badge immediately."""
    if isinstance(increment, bool) or not isinstance(increment, int) or increment <= 0:
        raise ValidationError("increment must be a positive integer")

    def work(session: Session, outbox: list[Notification]) -> ProfileBadge:
        badge = _load_badge(session, badge_id)
        if not any(a.get("activity_id") == activity_id for a in badge.activities or []):
            raise NotFound(f"Badge {badge_id} has no activity {activity_id!r}")
        record = get_or_create_progress(session, profile_id, badge_id)
        if record.is_completed:
            return record
        _bump(record, activity_id, increment)
        progress = activities_progress(
            badge.activities, record.activity_counts, badge.required_activities_count
        )
        return apply_progress(record, badge, progress, ctx.now(), outbox, monotonic=True)

    return run_unit(ctx, profile_id, work)


# ---------------------------------------------------------------------------
# Badge catalogue
# ---------------------------------------------------------------------------
BADGE_FIELDS = frozenset({
    "name", "description", "category", "rarity", "icon",
    "requirements", "activities", "required_activities_count",
})


def _validate_badge_fields(fields: dict) -> None:
    if "name" in fields and (not fields["name"] or not fields["name"].strip()):
        raise ValidationError("Badge name is required")
    if "category" in fields and fields["category"] not in set(BadgeCategory):
        raise ValidationError(f"Unknown badge category {fields['category']!r}")
    if "rarity" in fields and fields["rarity"] not in set(BadgeRarity):
        raise ValidationError(f"Unknown badge rarity {fields['rarity']!r}")
    if "requirements" in fields:
        kind = (fields["requirements"] or {}).get("type")
        if kind not in set(RequirementType):
            raise ValidationError(f"Unknown requirement type {kind!r}")
    for activity in fields.get("activities") or []:
        if not activity.get("activity_id"):
            raise ValidationError("Every badge activity needs an activity_id")


def _name_taken(session: Session, name: str, badge_id: int | None = None) -> bool:
    stmt = select(Badge.id).where(Badge.name == name)
    if badge_id is not None:
        stmt = stmt.where(Badge.id != badge_id)
    return session.scalar(stmt) is not None


def create_badge(
    ctx: EconomyContext,
    *,
    name: str,
    category: str,
    requirements: dict,
    description: str = "",
    rarity: str = BadgeRarity.COMMON,
    icon: str | None = None,
    activities: list[dict] | None = None,
    required_activities_count: int | None = None,
) -> Badge:
    fields = {
        "name": name,
        "description": description,
        "category": category,
        "rarity": rarity,
        "icon": icon,
        "requirements": requirements,
        "activities": activities,
        "required_activities_count": required_activities_count,
    }
    _validate_badge_fields(fields)

    def work(session: Session, _outbox) -> Badge:
        if _name_taken(session, name):
            raise ValidationError(f"Badge {name!r} already exists")
        badge = Badge(**fields)
        session.add(badge)
        session.flush()
        return badge

    badge = run_unit(ctx, None, work)
    logger.info("Created badge %r (#%d)", badge.name, badge.id)
    return badge


def get_badge(ctx: EconomyContext, badge_id: int) -> Badge:
    return read_only(ctx, lambda session: _load_badge(session, badge_id))


def update_badge(ctx: EconomyContext, badge_id: int, **fields) -> Badge:
    """Edit a badge definition.  Completed awards are kept as they are;
    open progress is re-scored on the profile's next credit."""
    unknown = set(fields) - BADGE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown badge fields: {', '.join(sorted(unknown))}")
    _validate_badge_fields(fields)

    def work(session: Session, _outbox) -> Badge:
        badge = _load_badge(session, badge_id)
        if "name" in fields and _name_taken(session, fields["name"], badge_id):
            raise ValidationError(f"Badge {fields['name']!r} already exists")
        for key, value in fields.items():
            setattr(badge, key, value)
        return badge

    badge = run_unit(ctx, None, work)
    logger.info("Updated badge #%d (%s)", badge_id, ", ".join(sorted(fields)) or "no changes")
    return badge


def delete_badge(ctx: EconomyContext, badge_id: int) -> None:
    """Remove a badge nobody has made progress on.

    Raises
    ------
    NotFound
        Unknown badge.
    ValidationError
        Profiles already hold progress or an award for it.
    """

    def work(session: Session, _outbox) -> None:
        badge = _load_badge(session, badge_id)
        holders = session.scalar(
            select(func.count()).select_from(ProfileBadge).where(
                ProfileBadge.badge_id == badge_id
            )
        ) or 0
        if holders:
            raise ValidationError(
                f"Badge {badge.name!r} has progress for {holders} profile(s); "
                "it cannot be deleted"
            )
        session.delete(badge)

    run_unit(ctx, None, work)
    logger.info("Deleted badge #%d", badge_id)


def list_badges(ctx: EconomyContext, category: str | None = None) -> list[Badge]:
    def work(session: Session) -> list[Badge]:
        stmt = select(Badge).order_by(Badge.id)
        if category:
            stmt = stmt.where(Badge.category == category)
        return list(session.scalars(stmt).all())

    return read_only(ctx, work)


def get_profile_badges(
    ctx: EconomyContext, profile_id: str, *, completed_only: bool = False
) -> list[ProfileBadge]:
    def work(session: Session) -> list[ProfileBadge]:
        stmt = (
            select(ProfileBadge)
            .where(ProfileBadge.profile_id == profile_id)
            .options(selectinload(ProfileBadge.badge))
            .order_by(ProfileBadge.badge_id)
        )
        if completed_only:
            stmt = stmt.where(ProfileBadge.is_completed.is_(True))
        return list(session.scalars(stmt).all())

    return read_only(ctx, work)


def badge_to_dict(badge: Badge) -> dict:
    return {
        "id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "category": badge.category,
        "rarity": badge.rarity,
        "icon": badge.icon,
        "requirements": badge.requirements,
        "activities": badge.activities,
        "required_activities_count": badge.required_activities_count,
    }


def profile_badge_to_dict(record: ProfileBadge, badge_name: str | None = None) -> dict:
    return {
        "badge_id": record.badge_id,
        "name": badge_name,
        "progress": record.progress,
        "is_completed": record.is_completed,
        "completed_at": record.completed_at.isoformat() if record.completed_at else None,
        "activity_counts": record.activity_counts or {},
    }
