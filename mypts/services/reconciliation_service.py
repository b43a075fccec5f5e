"""
mypts.services.reconciliation_service — Retroactive Reward Backfill
=====================================================================

Audits the existing population and awards a reward (``platform_join`` by
default) to every profile that should have received it but never did.

Steps:

1. Load all profiles and identity ids from the :class:`ProfileDirectory`.
   Profiles whose owner no longer exists are *orphaned*: logged, skipped.
2. Eligible = valid profiles whose account is missing or holds zero
   balance *and* zero lifetime earnings.
3. Pre-check ``eligible × rule.points_rewarded`` against the Hub reserve.
   If the reserve can't cover all of them, abort before awarding anyone.
4. Award each eligible profile through ``track_activity`` in batches,
   tagged ``is_retroactive``.  Only the per-award account lock is taken.

Re-running is a no-op: rewarded profiles no longer match the zero
predicate.  ``dry_run`` stops after step 3.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from mypts.database.models import ActivityRewardRule, MyPtsAccount, MyPtsHub
from mypts.database.seed import HUB_ID
from mypts.engine.rules import RewardReason
from mypts.errors import MyPtsError
from mypts.services import activity_service
from mypts.services.context import read_only
from mypts.services.profile_directory import ProfileDirectory, SqlProfileDirectory

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_DRY_RUN = "dry_run"
STATUS_RULE_DISABLED = "rule_disabled"
STATUS_RESERVE_INSUFFICIENT = "reserve_insufficient"


@dataclass
class ReconciliationReport:
    activity_type: str
    status: str = STATUS_COMPLETED
    dry_run: bool = False
    total_profiles: int = 0
    orphaned: int = 0
    already_rewarded: int = 0
    eligible: int = 0
    awarded: int = 0
    failed: int = 0
    points_awarded: int = 0
    required_points: int = 0
    reserve_available: int = 0
    orphaned_profile_ids: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    started_at: str | None = None
    finished_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _zero_accounts(session: Session, profile_ids: list[str]) -> set[str]:
    """Ids (among *profile_ids*) that have never earned anything."""
    funded = {
        pid
        for pid, balance, earned in session.execute(
            select(
                MyPtsAccount.profile_id, MyPtsAccount.balance, MyPtsAccount.lifetime_earned
            ).where(MyPtsAccount.profile_id.in_(profile_ids))
        ).all()
        if balance != 0 or earned != 0
    }
    return set(profile_ids) - funded


def _batches(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_reconciliation(
    ctx: EconomyContext,
    activity_type: str = "platform_join",
    *,
    dry_run: bool = False,
    directory: ProfileDirectory | None = None,
) -> ReconciliationReport:
    """Backfill *activity_type* rewards.  See module docstring."""
    directory = directory or SqlProfileDirectory(ctx.engine)
    report = ReconciliationReport(
        activity_type=activity_type, dry_run=dry_run, started_at=ctx.now().isoformat()
    )

    # -- 1. Partition valid vs orphaned -----------------------------------
    profiles = directory.list_profiles()
    identities = directory.list_identity_ids()
    report.total_profiles = len(profiles)

    valid: list[str] = []
    for profile in profiles:
        if profile.owner_id and profile.owner_id in identities:
            valid.append(profile.profile_id)
        else:
            report.orphaned_profile_ids.append(profile.profile_id)
            logger.warning(
                "Skipping orphaned profile %s (owner %s not found)",
                profile.profile_id, profile.owner_id,
            )
    report.orphaned = len(report.orphaned_profile_ids)

    # -- 2. Eligibility + 3. reserve pre-check -----------------------------
    def snapshot(session: Session) -> tuple:
        zero = _zero_accounts(session, valid) if valid else set()
        rule = session.scalar(
            select(ActivityRewardRule).where(ActivityRewardRule.activity_type == activity_type)
        )
        hub = session.get(MyPtsHub, HUB_ID)
        reserve = hub.reserve_supply if hub is not None else ctx.config.hub_initial_supply
        points = rule.points_rewarded if rule is not None and rule.is_enabled else None
        return zero, points, reserve

    zero, points, reserve = read_only(ctx, snapshot)
    eligible = [pid for pid in valid if pid in zero]
    report.eligible = len(eligible)
    report.already_rewarded = len(valid) - len(eligible)
    report.reserve_available = reserve

    if points is None:
        report.status = STATUS_RULE_DISABLED
        report.finished_at = ctx.now().isoformat()
        logger.error("Reconciliation aborted: no enabled rule for %s", activity_type)
        return report

    report.required_points = len(eligible) * points
    if report.required_points > reserve:
        report.status = STATUS_RESERVE_INSUFFICIENT
        report.finished_at = ctx.now().isoformat()
        logger.error(
            "Reconciliation aborted: %d profiles need %d MyPts, reserve holds %d",
            len(eligible), report.required_points, reserve,
        )
        return report

    if dry_run:
        report.status = STATUS_DRY_RUN
        report.finished_at = ctx.now().isoformat()
        logger.info(
            "Reconciliation dry run: would award %d profiles %d MyPts (%d orphaned)",
            len(eligible), report.required_points, report.orphaned,
        )
        return report

    # -- 4. Award in batches ----------------------------------------------
    batch_size = ctx.config.reconciliation_batch_size
    for number, batch in enumerate(_batches(eligible, batch_size), start=1):
        for profile_id in batch:
            try:
                result = activity_service.track_activity(
                    ctx,
                    profile_id,
                    activity_type,
                    {
                        "profile_id": profile_id,
                        "description": f"Retroactive {activity_type} reward",
                        "is_retroactive": True,
                    },
                )
            except MyPtsError as exc:
                report.failed += 1
                report.failures[profile_id] = str(exc)
                logger.warning("Retroactive award failed for %s: %s", profile_id, exc)
                continue

            if result.awarded:
                report.awarded += 1
                report.points_awarded += result.points_earned
            else:
                report.failed += 1
                report.failures[profile_id] = result.reason.value
                if result.reason is RewardReason.RESERVE_EXHAUSTED:
                    logger.error("Reserve ran out mid-run at %s", profile_id)
        logger.info(
            "Reconciliation batch %d done (%d/%d awarded)",
            number, report.awarded, len(eligible),
        )

    report.finished_at = ctx.now().isoformat()
    logger.info(
        "Reconciliation complete for %s: %d awarded (%d MyPts), %d failed, "
        "%d orphaned, %d already rewarded",
        activity_type, report.awarded, report.points_awarded, report.failed,
        report.orphaned, report.already_rewarded,
    )
    return report
