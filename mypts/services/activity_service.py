"""
mypts.services.activity_service — Activity Tracking & Reward Rules
====================================================================

``track_activity`` is the front door for every platform event that can
pay out MyPts.  One call is one unit, held under the account's lock:

    rule lookup → cooldown → daily cap → Hub reserve → credit
               → activity record → badge counters → milestone/badges

Business outcomes (disabled rule, cooldown, daily limit, exhausted
reserve) come back on :class:`TrackResult`; they are never raised.  When
the reserve runs dry the whole unit rolls back, so no activity record is
left behind and the cooldown window is not consumed.

Also hosts reward-rule administration and per-profile activity stats.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mypts.clock import as_utc, start_of_day
from mypts.database.models import ActivityRewardRule, TransactionType, UserActivity
from mypts.engine.rules import RewardReason, RuleSnapshot, evaluate_rule
from mypts.errors import NotFound, ReserveExhausted, ValidationError
from mypts.services import badge_service, ledger_service
from mypts.services.context import read_only, run_unit
from mypts.services.notifications import Notification

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackResult:
    awarded: bool
    points_earned: int
    reason: RewardReason
    transaction_id: int | None = None
    activity_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "awarded": self.awarded,
            "points_earned": self.points_earned,
            "reason": self.reason.value,
            "transaction_id": self.transaction_id,
            "activity_id": self.activity_id,
        }


def _not_awarded(reason: RewardReason) -> TrackResult:
    return TrackResult(awarded=False, points_earned=0, reason=reason)


def _snapshot(rule: ActivityRewardRule | None) -> RuleSnapshot | None:
    if rule is None:
        return None
    return RuleSnapshot(
        activity_type=rule.activity_type,
        points_rewarded=rule.points_rewarded,
        cooldown_seconds=rule.cooldown_seconds,
        max_rewards_per_day=rule.max_rewards_per_day,
        is_enabled=rule.is_enabled,
    )


# ---------------------------------------------------------------------------
# track_activity
# ---------------------------------------------------------------------------
def track_activity(
    ctx: EconomyContext,
    profile_id: str,
    activity_type: str,
    metadata: dict | None = None,
) -> TrackResult:
    """Record an activity and pay its reward when the rule allows.

    Raises
    ------
    ValidationError
        Empty profile id or activity type.
    ConcurrencyConflict
        Hub version conflicts outlasted the retry budget.
    """
    ledger_service.validate_profile_id(profile_id)
    if not isinstance(activity_type, str) or not activity_type.strip():
        raise ValidationError("activity_type must be a non-empty string")
    metadata = dict(metadata or {})

    def work(session: Session, outbox: list[Notification]) -> TrackResult:
        now = ctx.now()
        rule = session.scalar(
            select(ActivityRewardRule).where(ActivityRewardRule.activity_type == activity_type)
        )
        journal = (
            UserActivity.profile_id == profile_id,
            UserActivity.activity_type == activity_type,
        )
        last = session.scalar(select(func.max(UserActivity.timestamp)).where(*journal))
        today = session.scalar(
            select(func.count()).select_from(UserActivity).where(
                *journal, UserActivity.timestamp >= start_of_day(now)
            )
        ) or 0

        decision = evaluate_rule(
            _snapshot(rule), now=now, last_rewarded_at=last, rewards_today=today
        )
        if not decision.allowed:
            return _not_awarded(decision.reason)

        record = UserActivity(
            profile_id=profile_id,
            activity_type=activity_type,
            timestamp=now,
            points_earned=decision.points,
            metadata_=metadata or None,
        )
        session.add(record)
        session.flush()
        badge_service.record_badge_activity(session, profile_id, activity_type)

        txn_id = None
        if decision.points > 0:
            txn = ledger_service.apply_credit(
                ctx,
                session,
                outbox,
                profile_id,
                decision.points,
                TransactionType.EARN,
                f"Earned {decision.points} MyPts for {rule.description or activity_type}",
                {
                    **metadata,
                    "source": "activity",
                    "activity_type": activity_type,
                    "activity_id": record.id,
                },
            )
            record.transaction_id = txn_id = txn.id
        else:
            ledger_service.after_credit(
                ctx, session, outbox,
                ledger_service.get_or_create_account(session, profile_id, for_update=True),
            )
        return TrackResult(
            awarded=True,
            points_earned=decision.points,
            reason=RewardReason.AWARDED,
            transaction_id=txn_id,
            activity_id=record.id,
        )

    try:
        result = run_unit(ctx, profile_id, work)
    except ReserveExhausted as exc:
        logger.error(
            "Reserve exhausted: %s/%s wanted %d, reserve holds %d",
            profile_id, activity_type, exc.requested, exc.reserve,
        )
        return _not_awarded(RewardReason.RESERVE_EXHAUSTED)

    if result.awarded:
        logger.info("%s earned %d MyPts for %s", profile_id, result.points_earned, activity_type)
    elif result.reason is RewardReason.DISABLED:
        logger.debug("No enabled rule for %s", activity_type)
    else:
        logger.info("%s not rewarded for %s: %s", profile_id, activity_type, result.reason)
    return result


# ---------------------------------------------------------------------------
# Activity history & statistics
# ---------------------------------------------------------------------------
def get_recent_activities(
    ctx: EconomyContext, profile_id: str, limit: int = 20
) -> list[UserActivity]:
    return read_only(ctx, lambda session: list(session.scalars(
        select(UserActivity)
        .where(UserActivity.profile_id == profile_id)
        .order_by(UserActivity.timestamp.desc(), UserActivity.id.desc())
        .limit(limit)
    ).all()))


def get_activity_statistics(ctx: EconomyContext, profile_id: str, days: int = 7) -> dict:
    """Totals per activity type plus a per-day series for the last *days*."""
    now = ctx.now()
    since = start_of_day(now) - timedelta(days=days - 1)

    def work(session: Session) -> dict:
        per_type = session.execute(
            select(
                UserActivity.activity_type,
                func.count(),
                func.coalesce(func.sum(UserActivity.points_earned), 0),
            )
            .where(UserActivity.profile_id == profile_id)
            .group_by(UserActivity.activity_type)
        ).all()
        recent = session.execute(
            select(UserActivity.timestamp, UserActivity.points_earned).where(
                UserActivity.profile_id == profile_id, UserActivity.timestamp >= since
            )
        ).all()
        return {"per_type": per_type, "recent": recent}

    raw = read_only(ctx, work)

    daily: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "points": 0})
    for offset in range(days):
        daily[(since + timedelta(days=offset)).date().isoformat()]
    for timestamp, points in raw["recent"]:
        bucket = daily[as_utc(timestamp).date().isoformat()]
        bucket["count"] += 1
        bucket["points"] += points

    return {
        "total_activities": sum(count for _, count, _ in raw["per_type"]),
        "total_points": sum(points for _, _, points in raw["per_type"]),
        "by_type": {
            activity_type: {"count": count, "points": points}
            for activity_type, count, points in raw["per_type"]
        },
        "daily": [{"date": day, **daily[day]} for day in sorted(daily)],
    }


def activity_to_dict(activity: UserActivity) -> dict:
    return {
        "id": activity.id,
        "activity_type": activity.activity_type,
        "timestamp": activity.timestamp.isoformat(),
        "points_earned": activity.points_earned,
        "metadata": activity.metadata_ or {},
        "transaction_id": activity.transaction_id,
    }


# ---------------------------------------------------------------------------
# Rule administration
# ---------------------------------------------------------------------------
RULE_FIELDS = (
    "description",
    "category",
    "points_rewarded",
    "cooldown_seconds",
    "max_rewards_per_day",
    "is_enabled",
)


def _validate_rule_fields(fields: dict) -> None:
    unknown = set(fields) - set(RULE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown rule fields: {sorted(unknown)}")
    for key in ("points_rewarded", "cooldown_seconds"):
        value = fields.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValidationError(f"{key} must be a non-negative integer")
    cap = fields.get("max_rewards_per_day")
    if cap is not None and (isinstance(cap, bool) or not isinstance(cap, int) or cap < 1):
        raise ValidationError("max_rewards_per_day must be a positive integer or null")


def list_rules(ctx: EconomyContext, *, enabled_only: bool = False) -> list[ActivityRewardRule]:
    def work(session: Session) -> list[ActivityRewardRule]:
        stmt = select(ActivityRewardRule).order_by(ActivityRewardRule.activity_type)
        if enabled_only:
            stmt = stmt.where(ActivityRewardRule.is_enabled.is_(True))
        return list(session.scalars(stmt).all())

    return read_only(ctx, work)


def get_rule(ctx: EconomyContext, activity_type: str) -> ActivityRewardRule:
    rule = read_only(ctx, lambda session: session.scalar(
        select(ActivityRewardRule).where(ActivityRewardRule.activity_type == activity_type)
    ))
    if rule is None:
        raise NotFound(f"No reward rule for {activity_type!r}")
    return rule


def create_rule(ctx: EconomyContext, activity_type: str, **fields) -> ActivityRewardRule:
    if not activity_type or not activity_type.strip():
        raise ValidationError("activity_type is required")
    if "points_rewarded" not in fields:
        raise ValidationError("points_rewarded is required")
    _validate_rule_fields(fields)

    def work(session: Session, _outbox) -> ActivityRewardRule:
        exists = session.scalar(
            select(ActivityRewardRule.id).where(ActivityRewardRule.activity_type == activity_type)
        )
        if exists is not None:
            raise ValidationError(f"A rule for {activity_type!r} already exists")
        rule = ActivityRewardRule(activity_type=activity_type, **fields)
        session.add(rule)
        session.flush()
        return rule

    rule = run_unit(ctx, None, work)
    logger.info("Created reward rule %s (+%d)", rule.activity_type, rule.points_rewarded)
    return rule


def update_rule(ctx: EconomyContext, activity_type: str, **fields) -> ActivityRewardRule:
    _validate_rule_fields(fields)

    def work(session: Session, _outbox) -> ActivityRewardRule:
        rule = session.scalar(
            select(ActivityRewardRule).where(ActivityRewardRule.activity_type == activity_type)
        )
        if rule is None:
            raise NotFound(f"No reward rule for {activity_type!r}")
        for key, value in fields.items():
            setattr(rule, key, value)
        session.flush()
        return rule

    rule = run_unit(ctx, None, work)
    logger.info("Updated reward rule %s: %s", activity_type, sorted(fields))
    return rule


def rule_to_dict(rule: ActivityRewardRule) -> dict:
    return {
        "activity_type": rule.activity_type,
        "description": rule.description,
        "category": rule.category,
        "points_rewarded": rule.points_rewarded,
        "cooldown_seconds": rule.cooldown_seconds,
        "max_rewards_per_day": rule.max_rewards_per_day,
        "is_enabled": rule.is_enabled,
    }
