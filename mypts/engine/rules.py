"""
mypts.engine.rules — Activity Reward Rule Decision
====================================================

Pure decision function for ``track_activity``: given a rule and the
account's recent activity journal, decide whether a reward is allowed.
No DB I/O in here; the activity service gathers the inputs.

Checks, in order:
  rule missing/disabled → cooldown window → daily cap → allowed

One-time rules (cooldown 0, one per day) go through exactly the same
checks; the daily cap rejects the second award.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from mypts.clock import as_utc


class RewardReason(enum.StrEnum):
    """Outcome of a tracked activity."""
    AWARDED = "AWARDED"
    DISABLED = "DISABLED"
    COOLDOWN = "COOLDOWN"
    DAILY_LIMIT = "DAILY_LIMIT"
    RESERVE_EXHAUSTED = "RESERVE_EXHAUSTED"


@dataclass(frozen=True, slots=True)
class RuleSnapshot:
    """The parts of an ActivityRewardRule the decision needs."""

    activity_type: str
    points_rewarded: int
    cooldown_seconds: int = 0
    max_rewards_per_day: int | None = None
    is_enabled: bool = True


@dataclass(frozen=True, slots=True)
class RuleDecision:
    allowed: bool
    reason: RewardReason
    points: int = 0
    retry_after: timedelta | None = None


def evaluate_rule(
    rule: RuleSnapshot | None,
    *,
    now: datetime,
    last_rewarded_at: datetime | None,
    rewards_today: int,
) -> RuleDecision:
    """Decide whether *rule* may pay out at *now*.

    Parameters
    ----------
    rule:
        The rule for the activity type, or ``None`` if none exists.
    last_rewarded_at:
        Timestamp of the newest rewarded record for this account and
        activity type (any day), or ``None``.
    rewards_today:
        Rewarded records for this account and type since UTC midnight.
    """
    if rule is None or not rule.is_enabled:
        return RuleDecision(False, RewardReason.DISABLED)

    if rule.cooldown_seconds > 0 and last_rewarded_at is not None:
        elapsed = as_utc(now) - as_utc(last_rewarded_at)
        cooldown = timedelta(seconds=rule.cooldown_seconds)
        if elapsed < cooldown:
            return RuleDecision(
                False, RewardReason.COOLDOWN, retry_after=cooldown - elapsed
            )

    if rule.max_rewards_per_day is not None and rewards_today >= rule.max_rewards_per_day:
        return RuleDecision(False, RewardReason.DAILY_LIMIT)

    return RuleDecision(True, RewardReason.AWARDED, points=rule.points_rewarded)
