"""
mypts.services.leaderboard_service — Leaderboard Rebuild & Reads
==================================================================

The leaderboard is a derived snapshot.  :func:`rebuild` reads every
account, ranks them (balance desc, lifetime earned desc, profile id asc),
carries the stored rank into ``previous_rank`` and writes only the rank
columns of existing entries; stats are filled in for new entries alone.
It is safe to run at any time.  Reads never trigger a rebuild.

Between rebuilds, credits refresh the stats columns of an existing
entry (balance, milestone, badge count) but never its rank.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from mypts.database.models import (
    LeaderboardEntry,
    MilestoneLevel,
    MyPtsAccount,
    ProfileBadge,
    ProfileMilestone,
)
from mypts.engine.ranking import RankInput, assign_ranks
from mypts.errors import NotFound, ValidationError
from mypts.services.badge_service import count_completed
from mypts.services.context import read_only, run_unit

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------
def _completed_badge_counts(session: Session) -> dict[str, int]:
    rows = session.execute(
        select(ProfileBadge.profile_id, func.count())
        .where(ProfileBadge.is_completed.is_(True))
        .group_by(ProfileBadge.profile_id)
    ).all()
    return {profile_id: count for profile_id, count in rows}


def rebuild(ctx: EconomyContext) -> int:
    """Recompute all ranks.  Returns the number of ranked accounts."""

    def work(session: Session, _outbox) -> int:
        now = ctx.now()
        accounts = session.execute(
            select(MyPtsAccount.profile_id, MyPtsAccount.balance, MyPtsAccount.lifetime_earned)
        ).all()
        existing = {e.profile_id: e for e in session.scalars(select(LeaderboardEntry)).all()}
        levels = dict(
            session.execute(
                select(ProfileMilestone.profile_id, ProfileMilestone.current_level)
            ).all()
        )
        badges = _completed_badge_counts(session)

        ranked = assign_ranks(
            [RankInput(pid, balance, earned) for pid, balance, earned in accounts],
            previous={pid: entry.rank for pid, entry in existing.items()},
        )

        for row in ranked:
            # Stats are written for new entries only; ledger units keep
            # existing ones current through refresh_entry_stats.
            entry = existing.pop(row.profile_id, None)
            if entry is None:
                entry = LeaderboardEntry(
                    profile_id=row.profile_id,
                    mypts_balance=row.balance,
                    lifetime_earned=row.lifetime_earned,
                    milestone_level=levels.get(row.profile_id, MilestoneLevel.STARTER),
                    badge_count=badges.get(row.profile_id, 0),
                )
                session.add(entry)
            entry.rank = row.rank
            entry.previous_rank = row.previous_rank
            entry.updated_at = now

        if existing:
            session.execute(
                delete(LeaderboardEntry).where(LeaderboardEntry.profile_id.in_(list(existing)))
            )
        return len(ranked)

    count = run_unit(ctx, None, work)
    logger.info("Leaderboard rebuilt: %d entries", count)
    return count


def refresh_entry_stats(session: Session, account: MyPtsAccount, now: datetime) -> None:
    """Update the cached stats of an existing entry.  Rank is untouched;
    profiles without an entry wait for the next rebuild."""
    entry = session.get(LeaderboardEntry, account.profile_id)
    if entry is None:
        return
    milestone = session.get(ProfileMilestone, account.profile_id)
    entry.mypts_balance = account.balance
    entry.lifetime_earned = account.lifetime_earned
    if milestone is not None:
        entry.milestone_level = milestone.current_level
    entry.badge_count = count_completed(session, account.profile_id)
    entry.updated_at = now


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def _limit(ctx: EconomyContext, limit: int | None) -> int:
    limit = ctx.config.leaderboard_default_limit if limit is None else limit
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return limit


def get_top_entries(ctx: EconomyContext, limit: int | None = None) -> list[LeaderboardEntry]:
    limit = _limit(ctx, limit)
    return read_only(ctx, lambda session: list(session.scalars(
        select(LeaderboardEntry).order_by(LeaderboardEntry.rank).limit(limit)
    ).all()))


def get_entries_by_milestone(
    ctx: EconomyContext, level: str, limit: int | None = None
) -> list[LeaderboardEntry]:
    if level not in set(MilestoneLevel):
        raise ValidationError(f"Unknown milestone level {level!r}")
    limit = _limit(ctx, limit)
    return read_only(ctx, lambda session: list(session.scalars(
        select(LeaderboardEntry)
        .where(LeaderboardEntry.milestone_level == level)
        .order_by(LeaderboardEntry.rank)
        .limit(limit)
    ).all()))


def get_profile_rank(ctx: EconomyContext, profile_id: str, window: int = 2) -> dict:
    """A profile's entry plus the entries *window* ranks either side.

    Raises :class:`NotFound` when the profile isn't ranked yet.
    """

    def work(session: Session) -> dict:
        entry = session.get(LeaderboardEntry, profile_id)
        if entry is None:
            raise NotFound(f"Profile {profile_id} is not on the leaderboard")
        around = session.scalars(
            select(LeaderboardEntry)
            .where(
                LeaderboardEntry.rank >= entry.rank - window,
                LeaderboardEntry.rank <= entry.rank + window,
            )
            .order_by(LeaderboardEntry.rank)
        ).all()
        return {
            "entry": entry_to_dict(entry),
            "surrounding": [entry_to_dict(e) for e in around if e.profile_id != profile_id],
        }

    return read_only(ctx, work)


def entry_to_dict(entry: LeaderboardEntry) -> dict:
    return {
        "profile_id": entry.profile_id,
        "rank": entry.rank,
        "previous_rank": entry.previous_rank,
        "rank_change": (
            entry.previous_rank - entry.rank if entry.previous_rank is not None else 0
        ),
        "mypts_balance": entry.mypts_balance,
        "lifetime_earned": entry.lifetime_earned,
        "milestone_level": entry.milestone_level,
        "badge_count": entry.badge_count,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
    }
