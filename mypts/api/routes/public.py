"""
mypts.api.routes.public — Read-only public endpoints
======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from mypts.api.deps import ContextDep
from mypts.services import (
    activity_service,
    badge_service,
    hub_service,
    leaderboard_service,
    ledger_service,
    milestone_service,
)

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(ctx: ContextDep, limit: int | None = Query(None, ge=1, le=1000)):
    entries = leaderboard_service.get_top_entries(ctx, limit)
    return {"entries": [leaderboard_service.entry_to_dict(e) for e in entries]}


@router.get("/leaderboard/milestone/{level}")
def get_leaderboard_by_milestone(
    level: str, ctx: ContextDep, limit: int | None = Query(None, ge=1, le=1000)
):
    entries = leaderboard_service.get_entries_by_milestone(ctx, level, limit)
    return {"level": level, "entries": [leaderboard_service.entry_to_dict(e) for e in entries]}


# ---------------------------------------------------------------------------
# Per-profile views
# ---------------------------------------------------------------------------
@router.get("/profiles/{profile_id}/rank")
def get_profile_rank(profile_id: str, ctx: ContextDep):
    return leaderboard_service.get_profile_rank(ctx, profile_id)


@router.get("/profiles/{profile_id}/balance")
def get_balance(profile_id: str, ctx: ContextDep):
    hub = hub_service.get_hub_state(ctx)
    balance = ledger_service.get_balance(ctx, profile_id)
    return {
        "profile_id": profile_id,
        "balance": balance,
        "value": round(balance * hub["value_per_mypt"], 4),
    }


@router.get("/profiles/{profile_id}/account")
def get_account(profile_id: str, ctx: ContextDep):
    account = ledger_service.get_account(ctx, profile_id)
    return {
        "profile_id": account.profile_id,
        "balance": account.balance,
        "lifetime_earned": account.lifetime_earned,
        "lifetime_spent": account.lifetime_spent,
        "last_transaction_at": (
            account.last_transaction_at.isoformat() if account.last_transaction_at else None
        ),
    }


@router.get("/profiles/{profile_id}/transactions")
def get_transactions(
    profile_id: str,
    ctx: ContextDep,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    type: str | None = None,
):
    txns = ledger_service.get_transactions(
        ctx, profile_id, limit=limit, offset=offset, txn_type=type
    )
    return {"transactions": [ledger_service.transaction_to_dict(t) for t in txns]}


@router.get("/profiles/{profile_id}/milestone")
def get_milestone(profile_id: str, ctx: ContextDep):
    milestone = milestone_service.get_profile_milestone(ctx, profile_id)
    return milestone_service.milestone_to_dict(milestone)


@router.get("/profiles/{profile_id}/badges")
def get_profile_badges(profile_id: str, ctx: ContextDep, completed_only: bool = False):
    records = badge_service.get_profile_badges(ctx, profile_id, completed_only=completed_only)
    return {
        "badges": [badge_service.profile_badge_to_dict(r, r.badge.name) for r in records]
    }


@router.get("/profiles/{profile_id}/activities")
def get_activities(profile_id: str, ctx: ContextDep, limit: int = Query(20, ge=1, le=200)):
    activities = activity_service.get_recent_activities(ctx, profile_id, limit)
    return {"activities": [activity_service.activity_to_dict(a) for a in activities]}


@router.get("/profiles/{profile_id}/activities/stats")
def get_activity_stats(profile_id: str, ctx: ContextDep):
    return activity_service.get_activity_statistics(ctx, profile_id)


# ---------------------------------------------------------------------------
# Catalogues
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(ctx: ContextDep, category: str | None = None):
    return {"badges": [badge_service.badge_to_dict(b) for b in badge_service.list_badges(ctx, category)]}


@router.get("/badges/{badge_id}")
def get_badge(badge_id: int, ctx: ContextDep):
    return badge_service.badge_to_dict(badge_service.get_badge(ctx, badge_id))


@router.get("/rules")
def list_rules(ctx: ContextDep):
    rules = activity_service.list_rules(ctx, enabled_only=True)
    return {"rules": [activity_service.rule_to_dict(r) for r in rules]}


@router.get("/hub")
def get_hub(ctx: ContextDep):
    return hub_service.get_hub_state(ctx)
