"""
mypts.services.context — Economy Context & Unit of Work
=========================================================

Every service function takes an :class:`EconomyContext` first: the
engine plus the collaborators that would otherwise be globals (config,
clock, notifier, per-account locks).

:func:`run_unit` is the one place a write transaction is opened.  It

1. holds the per-account lock for the whole read-check-write-commit,
2. retries the unit on optimistic-lock conflicts on the Hub row and on
   transient ``OperationalError`` with exponential backoff (tenacity),
3. dispatches queued notifications only after a successful commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mypts.clock import Clock, SystemClock
from mypts.config import MyPtsConfig
from mypts.errors import ConcurrencyConflict
from mypts.services.locks import KeyedLock
from mypts.services.notifications import LoggingNotifier, Notification, Notifier, dispatch

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[Session, list[Notification]], T]


@dataclass(slots=True)
class EconomyContext:
    """Shared collaborators for the economy services.

    Build one per process and share it; the lock table only serializes
    callers that use the same context.
    """

    engine: Engine
    config: MyPtsConfig = field(default_factory=MyPtsConfig)
    clock: Clock = field(default_factory=SystemClock)
    notifier: Notifier = field(default_factory=LoggingNotifier)
    locks: KeyedLock = field(default_factory=KeyedLock)

    def now(self):
        return self.clock.now()


def _retrying(config: MyPtsConfig) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(config.retry_attempts),
        wait=wait_exponential(
            multiplier=config.retry_wait_min_seconds,
            min=config.retry_wait_min_seconds,
            max=config.retry_wait_max_seconds,
        ),
        retry=retry_if_exception_type((StaleDataError, OperationalError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def run_unit(ctx: EconomyContext, lock_key: str | None, work: Work[T]) -> T:
    """Run *work(session, outbox)* as one committed transaction.

    The session is opened with ``expire_on_commit=False`` so returned ORM
    objects stay readable after the unit closes.

    Raises
    ------
    ConcurrencyConflict
        When Hub version conflicts persist after the configured retries.
    """
    outbox: list[Notification] = []

    def attempt() -> T:
        outbox.clear()
        with Session(ctx.engine, expire_on_commit=False) as session:
            try:
                result = work(session, outbox)
                session.commit()
            except Exception:
                session.rollback()
                raise
        return result

    with ctx.locks.hold(lock_key):
        try:
            result = _retrying(ctx.config)(attempt)
        except StaleDataError as exc:
            raise ConcurrencyConflict(
                f"Hub update conflicted {ctx.config.retry_attempts} times"
            ) from exc

    dispatch(ctx.notifier, outbox)
    return result


def read_only(ctx: EconomyContext, work: Callable[[Session], T]) -> T:
    """Run a query function in a short-lived session."""
    with Session(ctx.engine, expire_on_commit=False) as session:
        return work(session)
