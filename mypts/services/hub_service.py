"""
mypts.services.hub_service — Central Supply Bookkeeping
=========================================================

The Hub is a single versioned row holding the economy's supply:

    total_supply = circulating_supply + reserve_supply

Every credit moves points reserve → circulation, every debit moves them
back.  ``circulating_supply`` therefore always equals the sum of account
balances; :func:`verify_consistency` checks that and only *reports*
drift.  Correcting drift is the explicit admin action
:func:`reconcile_supply`.

Each movement writes a :class:`~mypts.database.models.MyPtsHubLog` row
with before/after snapshots.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mypts.database.models import HubAction, MyPtsAccount, MyPtsHub, MyPtsHubLog
from mypts.database.seed import HUB_ID
from mypts.errors import ReserveExhausted, ValidationError
from mypts.services.context import read_only, run_unit

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session-level primitives (used inside ledger units)
# ---------------------------------------------------------------------------
def get_hub(ctx: EconomyContext, session: Session) -> MyPtsHub:
    """Load the Hub row, creating it from config on first use."""
    hub = session.get(MyPtsHub, HUB_ID)
    if hub is None:
        cfg = ctx.config
        hub = MyPtsHub(
            id=HUB_ID,
            total_supply=cfg.hub_initial_supply,
            circulating_supply=0,
            reserve_supply=cfg.hub_initial_supply,
            max_supply=cfg.hub_max_supply,
            value_per_mypt=cfg.hub_value_per_mypt,
        )
        session.add(hub)
        session.flush()
        logger.info("Hub initialised with %d MyPts in reserve", cfg.hub_initial_supply)
    return hub


def _snapshot(hub: MyPtsHub) -> tuple[int, int, int]:
    return hub.total_supply, hub.circulating_supply, hub.reserve_supply


def _log(
    session: Session,
    hub: MyPtsHub,
    before: tuple[int, int, int],
    action: HubAction,
    amount: int,
    reason: str,
    *,
    admin_id: str | None = None,
    metadata: dict | None = None,
    now=None,
) -> MyPtsHubLog:
    entry = MyPtsHubLog(
        action=action,
        amount=amount,
        reason=reason,
        admin_id=admin_id,
        metadata_=metadata,
        total_supply_before=before[0],
        circulating_supply_before=before[1],
        reserve_supply_before=before[2],
        total_supply_after=hub.total_supply,
        circulating_supply_after=hub.circulating_supply,
        reserve_supply_after=hub.reserve_supply,
    )
    if now is not None:
        entry.created_at = now
        hub.last_adjustment = now
    session.add(entry)
    session.flush()
    return entry


def _require_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Amount must be a positive integer, got {amount!r}")
    return amount


def move_to_circulation(
    ctx: EconomyContext,
    session: Session,
    amount: int,
    reason: str,
    *,
    metadata: dict | None = None,
) -> MyPtsHubLog:
    """Reserve → circulation.  Raises :class:`ReserveExhausted` before
    touching anything when the reserve is short."""
    _require_positive(amount)
    hub = get_hub(ctx, session)
    if hub.reserve_supply < amount:
        raise ReserveExhausted(amount, hub.reserve_supply)
    before = _snapshot(hub)
    hub.reserve_supply -= amount
    hub.circulating_supply += amount
    return _log(
        session, hub, before, HubAction.RESERVE_TO_CIRCULATION, amount, reason,
        metadata=metadata, now=ctx.now(),
    )


def move_to_reserve(
    ctx: EconomyContext,
    session: Session,
    amount: int,
    reason: str,
    *,
    metadata: dict | None = None,
) -> MyPtsHubLog:
    """Circulation → reserve."""
    _require_positive(amount)
    hub = get_hub(ctx, session)
    if hub.circulating_supply < amount:
        logger.error(
            "Circulating supply %d below returned amount %d, supply drift",
            hub.circulating_supply, amount,
        )
        raise ValidationError("Circulating supply is smaller than the returned amount")
    before = _snapshot(hub)
    hub.circulating_supply -= amount
    hub.reserve_supply += amount
    return _log(
        session, hub, before, HubAction.CIRCULATION_TO_RESERVE, amount, reason,
        metadata=metadata, now=ctx.now(),
    )


def calculate_actual_circulating_supply(session: Session) -> int:
    """Sum of every account balance."""
    return int(session.scalar(select(func.coalesce(func.sum(MyPtsAccount.balance), 0))) or 0)


def hub_to_dict(hub: MyPtsHub) -> dict:
    return {
        "total_supply": hub.total_supply,
        "circulating_supply": hub.circulating_supply,
        "reserve_supply": hub.reserve_supply,
        "max_supply": hub.max_supply,
        "value_per_mypt": hub.value_per_mypt,
        "last_adjustment": hub.last_adjustment.isoformat() if hub.last_adjustment else None,
        "version": hub.version,
    }


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------
def get_hub_state(ctx: EconomyContext) -> dict:
    """Current supply figures (creates the Hub row if missing)."""
    return run_unit(ctx, None, lambda session, _outbox: hub_to_dict(get_hub(ctx, session)))


def issue(ctx: EconomyContext, amount: int, reason: str, admin_id: str | None = None) -> dict:
    """Mint new supply into the reserve, respecting ``max_supply``."""
    _require_positive(amount)

    def work(session: Session, _outbox) -> dict:
        hub = get_hub(ctx, session)
        if hub.max_supply is not None and hub.total_supply + amount > hub.max_supply:
            raise ValidationError(
                f"Issuing {amount} would exceed max supply {hub.max_supply}"
            )
        before = _snapshot(hub)
        hub.total_supply += amount
        hub.reserve_supply += amount
        _log(session, hub, before, HubAction.ISSUE, amount, reason,
             admin_id=admin_id, now=ctx.now())
        return hub_to_dict(hub)

    result = run_unit(ctx, None, work)
    logger.info("Issued %d MyPts into reserve (%s)", amount, reason)
    return result


def burn(ctx: EconomyContext, amount: int, reason: str, admin_id: str | None = None) -> dict:
    """Destroy supply held in the reserve.  Circulating points are never burned."""
    _require_positive(amount)

    def work(session: Session, _outbox) -> dict:
        hub = get_hub(ctx, session)
        if hub.reserve_supply < amount:
            raise ReserveExhausted(amount, hub.reserve_supply)
        before = _snapshot(hub)
        hub.total_supply -= amount
        hub.reserve_supply -= amount
        _log(session, hub, before, HubAction.BURN, amount, reason,
             admin_id=admin_id, now=ctx.now())
        return hub_to_dict(hub)

    result = run_unit(ctx, None, work)
    logger.info("Burned %d MyPts from reserve (%s)", amount, reason)
    return result


def adjust_max_supply(
    ctx: EconomyContext, new_max: int | None, reason: str, admin_id: str | None = None
) -> dict:
    """Set (or clear with ``None``) the supply ceiling."""
    if new_max is not None:
        _require_positive(new_max)

    def work(session: Session, _outbox) -> dict:
        hub = get_hub(ctx, session)
        if new_max is not None and new_max < hub.total_supply:
            raise ValidationError(
                f"Max supply {new_max} is below current total supply {hub.total_supply}"
            )
        before = _snapshot(hub)
        old = hub.max_supply
        hub.max_supply = new_max
        _log(session, hub, before, HubAction.ADJUST_MAX_SUPPLY, new_max or 0, reason,
             admin_id=admin_id, metadata={"previous_max_supply": old}, now=ctx.now())
        return hub_to_dict(hub)

    return run_unit(ctx, None, work)


def update_value_per_mypt(
    ctx: EconomyContext, value: float, reason: str, admin_id: str | None = None
) -> dict:
    """Reprice MyPts.  Supply is untouched; the log row carries the old and
    new price in its metadata."""
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value <= 0
    ):
        raise ValidationError(f"Value per MyPt must be a positive number, got {value!r}")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reprice MyPts")

    def work(session: Session, _outbox) -> dict:
        hub = get_hub(ctx, session)
        before = _snapshot(hub)
        old = hub.value_per_mypt
        hub.value_per_mypt = float(value)
        _log(session, hub, before, HubAction.UPDATE_VALUE, 0, reason,
             admin_id=admin_id,
             metadata={"previous_value_per_mypt": old, "value_per_mypt": float(value)},
             now=ctx.now())
        return hub_to_dict(hub)

    result = run_unit(ctx, None, work)
    logger.info("MyPt value set to %s (%s)", value, reason)
    return result


def verify_consistency(ctx: EconomyContext) -> dict:
    """Compare the Hub's circulating supply with the sum of balances.

    Never corrects anything; drift is logged at WARNING for operators.
    """

    def work(session: Session) -> dict:
        hub = session.get(MyPtsHub, HUB_ID)
        actual = calculate_actual_circulating_supply(session)
        recorded = hub.circulating_supply if hub is not None else 0
        return {
            "consistent": actual == recorded and (
                hub is None or hub.total_supply == hub.circulating_supply + hub.reserve_supply
            ),
            "recorded_circulating_supply": recorded,
            "actual_circulating_supply": actual,
            "difference": actual - recorded,
        }

    report = read_only(ctx, work)
    if report["consistent"]:
        logger.info("Supply consistent: %d MyPts in circulation", report["actual_circulating_supply"])
    else:
        logger.warning(
            "Supply drift: hub says %d in circulation, balances sum to %d (diff %+d)",
            report["recorded_circulating_supply"],
            report["actual_circulating_supply"],
            report["difference"],
        )
    return report


def reconcile_supply(ctx: EconomyContext, reason: str, admin_id: str | None = None) -> dict:
    """Admin-only: align circulating supply with the sum of balances by
    moving the difference between circulation and reserve.  Total supply
    is unchanged."""

    def work(session: Session, _outbox) -> dict:
        hub = get_hub(ctx, session)
        actual = calculate_actual_circulating_supply(session)
        diff = actual - hub.circulating_supply
        if diff == 0:
            return {"adjusted": False, "difference": 0, **hub_to_dict(hub)}
        if diff > hub.reserve_supply:
            raise ReserveExhausted(diff, hub.reserve_supply)
        before = _snapshot(hub)
        hub.circulating_supply += diff
        hub.reserve_supply -= diff
        _log(session, hub, before, HubAction.RECONCILE, abs(diff), reason,
             admin_id=admin_id, metadata={"difference": diff}, now=ctx.now())
        return {"adjusted": True, "difference": diff, **hub_to_dict(hub)}

    result = run_unit(ctx, None, work)
    if result["adjusted"]:
        logger.warning("Supply reconciled by %+d MyPts (%s)", result["difference"], reason)
    return result


def get_logs(
    ctx: EconomyContext,
    action: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[MyPtsHubLog]:
    """Newest-first supply log."""

    def work(session: Session) -> list[MyPtsHubLog]:
        stmt = select(MyPtsHubLog).order_by(MyPtsHubLog.id.desc()).limit(limit).offset(offset)
        if action:
            stmt = stmt.where(MyPtsHubLog.action == action)
        return list(session.scalars(stmt).all())

    return read_only(ctx, work)
