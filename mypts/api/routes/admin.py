"""
mypts.api.routes.admin — Admin endpoints (JWT-protected)
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from mypts.api.deps import ContextDep, get_current_admin
from mypts.database.models import BadgeRarity, TransactionType
from mypts.services import (
    activity_service,
    badge_service,
    hub_service,
    leaderboard_service,
    ledger_service,
    reconciliation_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class LedgerEntry(BaseModel):
    profile_id: str = Field(min_length=1)
    amount: int
    type: str | None = None
    description: str = ""
    metadata: dict = Field(default_factory=dict)
    reference_id: str | None = None


class Reversal(BaseModel):
    reason: str = Field(min_length=1)


class BadgeCreate(BaseModel):
    name: str
    category: str
    requirements: dict
    description: str = ""
    rarity: str = BadgeRarity.COMMON
    icon: str | None = None
    activities: list[dict] | None = None
    required_activities_count: int | None = None


class BadgeUpdate(BaseModel):
    name: str | None = None
    category: str | None = None
    requirements: dict | None = None
    description: str | None = None
    rarity: str | None = None
    icon: str | None = None
    activities: list[dict] | None = None
    required_activities_count: int | None = None


class BadgeAward(BaseModel):
    profile_id: str = Field(min_length=1)


class BadgeProgress(BaseModel):
    profile_id: str = Field(min_length=1)
    progress: int


class BadgeActivityProgress(BaseModel):
    profile_id: str = Field(min_length=1)
    increment: int = 1


class RuleCreate(BaseModel):
    activity_type: str = Field(min_length=1)
    points_rewarded: int
    description: str = ""
    category: str = "platform_usage"
    cooldown_seconds: int = 0
    max_rewards_per_day: int | None = None
    is_enabled: bool = True


class RuleUpdate(BaseModel):
    description: str | None = None
    category: str | None = None
    points_rewarded: int | None = None
    cooldown_seconds: int | None = None
    max_rewards_per_day: int | None = None
    is_enabled: bool | None = None


class ReconciliationRun(BaseModel):
    activity_type: str = "platform_join"
    dry_run: bool = False


class SupplyChange(BaseModel):
    amount: int
    reason: str = Field(min_length=1)


class MaxSupplyChange(BaseModel):
    max_supply: int | None = None
    reason: str = Field(min_length=1)


class SupplyReconcile(BaseModel):
    reason: str = Field(min_length=1)


class ValueChange(BaseModel):
    value_per_mypt: float
    reason: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
@router.post("/credit", status_code=201)
def credit(body: LedgerEntry, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    txn = ledger_service.credit(
        ctx,
        body.profile_id,
        body.amount,
        body.type or TransactionType.ADJUSTMENT,
        body.description,
        {**body.metadata, "source": "admin", "admin_id": admin.get("sub")},
        reference_id=body.reference_id,
    )
    return ledger_service.transaction_to_dict(txn)


@router.post("/debit", status_code=201)
def debit(body: LedgerEntry, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    txn = ledger_service.debit(
        ctx,
        body.profile_id,
        body.amount,
        body.type or TransactionType.ADJUSTMENT,
        body.description,
        {**body.metadata, "source": "admin", "admin_id": admin.get("sub")},
        reference_id=body.reference_id,
    )
    return ledger_service.transaction_to_dict(txn)


@router.post("/transactions/{transaction_id}/reverse", status_code=201)
def reverse_transaction(
    transaction_id: int,
    body: Reversal,
    ctx: ContextDep,
    admin: dict = Depends(get_current_admin),
):
    txn = ledger_service.reverse(ctx, transaction_id, body.reason, admin_id=admin.get("sub"))
    return ledger_service.transaction_to_dict(txn)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
@router.post("/badges", status_code=201)
def create_badge(body: BadgeCreate, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    badge = badge_service.create_badge(ctx, **body.model_dump())
    return badge_service.badge_to_dict(badge)


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: int, body: BadgeUpdate, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    badge = badge_service.update_badge(ctx, badge_id, **body.model_dump(exclude_unset=True))
    return badge_service.badge_to_dict(badge)


@router.delete("/badges/{badge_id}", status_code=204)
def delete_badge(badge_id: int, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    badge_service.delete_badge(ctx, badge_id)


@router.post("/badges/{badge_id}/award")
def award_badge(
    badge_id: int, body: BadgeAward, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    record = badge_service.award_badge(ctx, body.profile_id, badge_id)
    return badge_service.profile_badge_to_dict(record)


@router.put("/badges/{badge_id}/progress")
def set_badge_progress(
    badge_id: int, body: BadgeProgress, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    record = badge_service.update_progress(ctx, body.profile_id, badge_id, body.progress)
    return badge_service.profile_badge_to_dict(record)


@router.post("/badges/{badge_id}/activities/{activity_id}")
def complete_badge_activity(
    badge_id: int,
    activity_id: str,
    body: BadgeActivityProgress,
    ctx: ContextDep,
    admin: dict = Depends(get_current_admin),
):
    record = badge_service.complete_badge_activity(
        ctx, body.profile_id, badge_id, activity_id, body.increment
    )
    return badge_service.profile_badge_to_dict(record)


# ---------------------------------------------------------------------------
# Reward rules
# ---------------------------------------------------------------------------
@router.get("/rules")
def list_rules(ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    return {"rules": [activity_service.rule_to_dict(r) for r in activity_service.list_rules(ctx)]}


@router.post("/rules", status_code=201)
def create_rule(body: RuleCreate, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    fields = body.model_dump()
    rule = activity_service.create_rule(ctx, fields.pop("activity_type"), **fields)
    return activity_service.rule_to_dict(rule)


@router.patch("/rules/{activity_type}")
def update_rule(
    activity_type: str, body: RuleUpdate, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    rule = activity_service.update_rule(ctx, activity_type, **body.model_dump(exclude_unset=True))
    return activity_service.rule_to_dict(rule)


# ---------------------------------------------------------------------------
# Leaderboard & reconciliation
# ---------------------------------------------------------------------------
@router.post("/leaderboard/rebuild")
def rebuild_leaderboard(ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    return {"ranked": leaderboard_service.rebuild(ctx)}


@router.post("/reconciliation")
def run_reconciliation(
    body: ReconciliationRun, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    report = reconciliation_service.run_reconciliation(
        ctx, body.activity_type, dry_run=body.dry_run
    )
    return report.to_dict()


# ---------------------------------------------------------------------------
# Hub supply
# ---------------------------------------------------------------------------
@router.post("/hub/issue")
def issue_supply(body: SupplyChange, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    return hub_service.issue(ctx, body.amount, body.reason, admin_id=admin.get("sub"))


@router.post("/hub/burn")
def burn_supply(body: SupplyChange, ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    return hub_service.burn(ctx, body.amount, body.reason, admin_id=admin.get("sub"))


@router.put("/hub/max-supply")
def set_max_supply(
    body: MaxSupplyChange, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    return hub_service.adjust_max_supply(
        ctx, body.max_supply, body.reason, admin_id=admin.get("sub")
    )


@router.put("/hub/value")
def set_value_per_mypt(
    body: ValueChange, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    return hub_service.update_value_per_mypt(
        ctx, body.value_per_mypt, body.reason, admin_id=admin.get("sub")
    )


@router.get("/hub/verify")
def verify_supply(ctx: ContextDep, admin: dict = Depends(get_current_admin)):
    return hub_service.verify_consistency(ctx)


@router.post("/hub/reconcile")
def reconcile_supply(
    body: SupplyReconcile, ctx: ContextDep, admin: dict = Depends(get_current_admin)
):
    return hub_service.reconcile_supply(ctx, body.reason, admin_id=admin.get("sub"))


@router.get("/hub/logs")
def hub_logs(
    ctx: ContextDep,
    admin: dict = Depends(get_current_admin),
    action: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    logs = hub_service.get_logs(ctx, action, limit, offset)
    return {
        "logs": [
            {
                "id": log.id,
                "action": log.action,
                "amount": log.amount,
                "reason": log.reason,
                "admin_id": log.admin_id,
                "transaction_id": log.transaction_id,
                "reserve_supply_after": log.reserve_supply_after,
                "circulating_supply_after": log.circulating_supply_after,
                "total_supply_after": log.total_supply_after,
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log in logs
        ]
    }
