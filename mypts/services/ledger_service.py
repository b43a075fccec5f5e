"""
mypts.services.ledger_service — Accounts & Append-Only Transactions
=====================================================================

Credits, debits and reversals against MyPts accounts.  Each public
operation is one DB transaction that updates the account, moves supply
through the Hub and appends exactly one :class:`MyPtsTransaction`:

    balance = lifetime_earned − lifetime_spent,   balance ≥ 0

Completed transactions are never edited.  A correction is a new
``adjustment`` entry pointing at the original via
``reverses_transaction_id`` (unique, so each entry reverses at most once).

After every credit, inside the same transaction, the milestone and badge
engines re-evaluate the account and the cached leaderboard row is
refreshed (rank untouched).  Notifications go out after commit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from mypts.database.models import (
    MyPtsAccount,
    MyPtsTransaction,
    TransactionStatus,
    TransactionType,
)
from mypts.errors import InsufficientBalance, NotFound, ValidationError
from mypts.services import badge_service, hub_service, leaderboard_service, milestone_service
from mypts.services.context import read_only, run_unit
from mypts.services.notifications import Notification, reward_issued

if TYPE_CHECKING:
    from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)

CREDIT_TYPES = frozenset({TransactionType.EARN, TransactionType.ADJUSTMENT})
DEBIT_TYPES = frozenset({TransactionType.SPEND, TransactionType.ADJUSTMENT})


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def validate_amount(amount) -> int:
    """Amounts are positive integers; bools and floats are rejected."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Amount must be a positive integer, got {amount!r}")
    return amount


def validate_profile_id(profile_id) -> str:
    if not isinstance(profile_id, str) or not profile_id.strip():
        raise ValidationError("profile_id must be a non-empty string")
    return profile_id


def _coerce_type(value, allowed: frozenset) -> TransactionType:
    try:
        txn_type = TransactionType(value)
    except ValueError:
        raise ValidationError(f"Unknown transaction type {value!r}") from None
    if txn_type not in allowed:
        raise ValidationError(f"Transaction type {txn_type} not allowed here")
    return txn_type


# ---------------------------------------------------------------------------
# Account access
# ---------------------------------------------------------------------------
def get_or_create_account(
    session: Session, profile_id: str, *, for_update: bool = False
) -> MyPtsAccount:
    """Fetch or insert the account row, optionally row-locked."""
    account = session.get(MyPtsAccount, profile_id, with_for_update=for_update or None)
    if account is None:
        account = MyPtsAccount(
            profile_id=profile_id, balance=0, lifetime_earned=0, lifetime_spent=0
        )
        session.add(account)
        session.flush()
    return account


def get_account(ctx: EconomyContext, profile_id: str) -> MyPtsAccount:
    """Load an account.  Raises :class:`NotFound` when the profile never
    transacted."""
    account = read_only(ctx, lambda session: session.get(MyPtsAccount, profile_id))
    if account is None:
        raise NotFound(f"No MyPts account for profile {profile_id}")
    return account


def get_balance(ctx: EconomyContext, profile_id: str) -> int:
    """Balance, 0 for profiles without an account."""
    account = read_only(ctx, lambda session: session.get(MyPtsAccount, profile_id))
    return account.balance if account is not None else 0


def get_transactions(
    ctx: EconomyContext,
    profile_id: str,
    *,
    limit: int = 50,
    offset: int = 0,
    txn_type: str | None = None,
) -> list[MyPtsTransaction]:
    """Newest-first transaction history for one account."""

    def work(session: Session) -> list[MyPtsTransaction]:
        stmt = (
            select(MyPtsTransaction)
            .where(MyPtsTransaction.profile_id == profile_id)
            .order_by(MyPtsTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        if txn_type:
            stmt = stmt.where(MyPtsTransaction.type == txn_type)
        return list(session.scalars(stmt).all())

    return read_only(ctx, work)


def transaction_to_dict(txn: MyPtsTransaction) -> dict:
    return {
        "id": txn.id,
        "profile_id": txn.profile_id,
        "type": txn.type,
        "amount": txn.amount,
        "resulting_balance": txn.resulting_balance,
        "description": txn.description,
        "status": txn.status,
        "metadata": txn.metadata_ or {},
        "reference_id": txn.reference_id,
        "reverses_transaction_id": txn.reverses_transaction_id,
        "hub_log_id": txn.hub_log_id,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }


# ---------------------------------------------------------------------------
# Session-level ledger primitives
# ---------------------------------------------------------------------------
def _append(
    session: Session,
    account: MyPtsAccount,
    txn_type: TransactionType,
    signed_amount: int,
    description: str,
    metadata: dict | None,
    *,
    hub_log=None,
    reference_id: str | None = None,
    reverses: int | None = None,
    now=None,
) -> MyPtsTransaction:
    txn = MyPtsTransaction(
        profile_id=account.profile_id,
        type=txn_type,
        amount=signed_amount,
        resulting_balance=account.balance,
        description=description,
        status=TransactionStatus.COMPLETED,
        metadata_=metadata or None,
        reference_id=reference_id,
        reverses_transaction_id=reverses,
        hub_log_id=hub_log.id if hub_log is not None else None,
    )
    if now is not None:
        txn.created_at = now
    session.add(txn)
    session.flush()
    if hub_log is not None:
        hub_log.transaction_id = txn.id
    return txn


def after_credit(
    ctx: EconomyContext,
    session: Session,
    outbox: list[Notification],
    account: MyPtsAccount,
) -> None:
    """Milestone + badge recomputation and leaderboard stats refresh."""
    now = ctx.now()
    milestone = milestone_service.update_milestone(
        session, outbox, account.profile_id, account.lifetime_earned, now
    )
    badge_service.evaluate_badges(
        session, outbox, account, milestone.current_level, now
    )
    leaderboard_service.refresh_entry_stats(session, account, now)


def apply_credit(
    ctx: EconomyContext,
    session: Session,
    outbox: list[Notification],
    profile_id: str,
    amount: int,
    txn_type: TransactionType = TransactionType.EARN,
    description: str = "",
    metadata: dict | None = None,
    *,
    reference_id: str | None = None,
) -> MyPtsTransaction:
    """Credit inside an open unit.  The Hub is debited first, so a short
    reserve raises :class:`ReserveExhausted` before the account changes."""
    validate_amount(amount)
    hub_log = hub_service.move_to_circulation(
        ctx, session, amount, description or "credit",
        metadata={"profile_id": profile_id},
    )
    account = get_or_create_account(session, profile_id, for_update=True)
    now = ctx.now()
    account.balance += amount
    account.lifetime_earned += amount
    account.last_transaction_at = now
    txn = _append(
        session, account, txn_type, amount, description, metadata,
        hub_log=hub_log, reference_id=reference_id, now=now,
    )
    outbox.append(reward_issued(profile_id, amount, description, txn.id))
    after_credit(ctx, session, outbox, account)
    return txn


def apply_debit(
    ctx: EconomyContext,
    session: Session,
    outbox: list[Notification],
    profile_id: str,
    amount: int,
    txn_type: TransactionType = TransactionType.SPEND,
    description: str = "",
    metadata: dict | None = None,
    *,
    reference_id: str | None = None,
) -> MyPtsTransaction:
    """Debit inside an open unit."""
    validate_amount(amount)
    account = session.get(MyPtsAccount, profile_id, with_for_update=True)
    if account is None:
        raise NotFound(f"No MyPts account for profile {profile_id}")
    if amount > account.balance:
        raise InsufficientBalance(profile_id, account.balance, amount)

    hub_log = hub_service.move_to_reserve(
        ctx, session, amount, description or "debit",
        metadata={"profile_id": profile_id},
    )
    now = ctx.now()
    account.balance -= amount
    account.lifetime_spent += amount
    account.last_transaction_at = now
    txn = _append(
        session, account, txn_type, -amount, description, metadata,
        hub_log=hub_log, reference_id=reference_id, now=now,
    )
    leaderboard_service.refresh_entry_stats(session, account, now)
    return txn


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def credit(
    ctx: EconomyContext,
    profile_id: str,
    amount: int,
    txn_type: str = TransactionType.EARN,
    description: str = "",
    metadata: dict | None = None,
    *,
    reference_id: str | None = None,
) -> MyPtsTransaction:
    """Add *amount* to the account, drawing it from the Hub reserve.

    Raises
    ------
    ValidationError
        Non-positive amount, empty profile id, or a type other than
        ``earn`` / ``adjustment``.
    ReserveExhausted
        The reserve can't cover *amount*.  Nothing is written.
    ConcurrencyConflict
        Hub version conflicts outlasted the retry budget.
    """
    validate_profile_id(profile_id)
    validate_amount(amount)
    txn_type = _coerce_type(txn_type, CREDIT_TYPES)

    txn = run_unit(
        ctx,
        profile_id,
        lambda session, outbox: apply_credit(
            ctx, session, outbox, profile_id, amount, txn_type, description, metadata,
            reference_id=reference_id,
        ),
    )
    logger.info("Credited %d MyPts to %s (%s) txn=%d", amount, profile_id, txn_type, txn.id)
    return txn


def debit(
    ctx: EconomyContext,
    profile_id: str,
    amount: int,
    txn_type: str = TransactionType.SPEND,
    description: str = "",
    metadata: dict | None = None,
    *,
    reference_id: str | None = None,
) -> MyPtsTransaction:
    """Remove *amount* from the account and return it to the Hub reserve.

    Raises
    ------
    InsufficientBalance
        *amount* exceeds the balance.  Nothing is written.
    NotFound
        The profile has no account yet.
    """
    validate_profile_id(profile_id)
    validate_amount(amount)
    txn_type = _coerce_type(txn_type, DEBIT_TYPES)

    txn = run_unit(
        ctx,
        profile_id,
        lambda session, outbox: apply_debit(
            ctx, session, outbox, profile_id, amount, txn_type, description, metadata,
            reference_id=reference_id,
        ),
    )
    logger.info("Debited %d MyPts from %s (%s) txn=%d", amount, profile_id, txn_type, txn.id)
    return txn


def reverse(
    ctx: EconomyContext,
    transaction_id: int,
    reason: str,
    admin_id: str | None = None,
) -> MyPtsTransaction:
    """Append the counter-entry of *transaction_id*.

    Reversing a credit takes the points back out of the balance and out of
    ``lifetime_earned``; reversing a debit puts them back and lowers
    ``lifetime_spent``.  The original row is left untouched.  Milestone
    levels already reached are kept.

    Raises
    ------
    NotFound
        Unknown transaction.
    ValidationError
        The entry is itself a reversal, isn't completed, or was already
        reversed.
    InsufficientBalance / ReserveExhausted
        The counter-movement can't be funded.
    """
    original = read_only(ctx, lambda session: session.get(MyPtsTransaction, transaction_id))
    if original is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    profile_id = original.profile_id

    def work(session: Session, outbox: list[Notification]) -> MyPtsTransaction:
        txn = session.get(MyPtsTransaction, transaction_id)
        if txn.reverses_transaction_id is not None:
            raise ValidationError("A reversal cannot itself be reversed")
        if txn.status != TransactionStatus.COMPLETED:
            raise ValidationError(f"Only completed transactions can be reversed ({txn.status})")
        already = session.scalar(
            select(MyPtsTransaction.id).where(
                MyPtsTransaction.reverses_transaction_id == transaction_id
            )
        )
        if already is not None:
            raise ValidationError(
                f"Transaction {transaction_id} was already reversed by #{already}"
            )

        account = session.get(MyPtsAccount, profile_id, with_for_update=True)
        amount = abs(txn.amount)
        description = f"Reversal of #{transaction_id}: {reason}"
        metadata = {"source": "reversal", "reason": reason, "admin_id": admin_id}
        now = ctx.now()

        if txn.amount > 0:
            if amount > account.balance:
                raise InsufficientBalance(profile_id, account.balance, amount)
            hub_log = hub_service.move_to_reserve(ctx, session, amount, description)
            account.balance -= amount
            account.lifetime_earned -= amount
            milestone_service.update_milestone(
                session, outbox, profile_id, account.lifetime_earned, now
            )
            signed = -amount
        else:
            hub_log = hub_service.move_to_circulation(ctx, session, amount, description)
            account.balance += amount
            account.lifetime_spent -= amount
            signed = amount
        account.last_transaction_at = now

        reversal = _append(
            session, account, TransactionType.ADJUSTMENT, signed, description, metadata,
            hub_log=hub_log, reverses=transaction_id, now=now,
        )
        leaderboard_service.refresh_entry_stats(session, account, now)
        return reversal

    reversal = run_unit(ctx, profile_id, work)
    logger.warning(
        "Reversed txn %d for %s by %+d (%s)", transaction_id, profile_id, reversal.amount, reason
    )
    return reversal
