"""
mypts.errors — Domain Exceptions
==================================

Every failure the economy raises on purpose derives from
:class:`MyPtsError`, so callers can catch the whole family at a seam
(API exception handler, reconciliation loop) while letting programming
errors propagate.

Business outcomes of ``track_activity`` (cooldown, daily limit, disabled
rule, exhausted reserve) are *not* exceptions; they come back as a
:class:`~mypts.engine.rules.RewardReason` on the result.
"""

from __future__ import annotations


class MyPtsError(Exception):
    """Base class for all MyPts domain errors."""


class ValidationError(MyPtsError):
    """Malformed input: non-positive amount, unknown reference, empty id."""


class InsufficientBalance(MyPtsError):
    """A debit asked for more than the account holds."""

    def __init__(self, profile_id: str, balance: int, requested: int) -> None:
        super().__init__(
            f"Insufficient balance for {profile_id}: has {balance}, needs {requested}"
        )
        self.profile_id = profile_id
        self.balance = balance
        self.requested = requested


class ReserveExhausted(MyPtsError):
    """The Hub reserve cannot cover a credit."""

    def __init__(self, requested: int, reserve: int) -> None:
        super().__init__(
            f"Hub reserve exhausted: requested {requested}, reserve holds {reserve}"
        )
        self.requested = requested
        self.reserve = reserve


class NotFound(MyPtsError):
    """An account, transaction, badge or rule does not exist."""


class ConcurrencyConflict(MyPtsError):
    """Optimistic-lock retries on the Hub row were exhausted."""
