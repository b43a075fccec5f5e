"""
mypts.services.notifications — Post-Commit Notification Dispatch
==================================================================

Services never call the notifier inside a DB transaction.  They append
:class:`Notification` records to an outbox while the unit runs; the
outbox is dispatched only after commit.  Delivery is fire-and-forget:
a notifier that raises is logged and ignored, and never rolls back the
ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """What the economy needs from the platform's notification service."""

    def badge_earned(self, profile_id: str, badge_id: int, badge_name: str) -> None: ...

    def milestone_achieved(
        self, profile_id: str, level: str, previous_level: str | None
    ) -> None: ...

    def reward_issued(
        self, profile_id: str, amount: int, description: str, transaction_id: int
    ) -> None: ...


class LoggingNotifier:
    """Default notifier: writes each notification to the log."""

    def badge_earned(self, profile_id: str, badge_id: int, badge_name: str) -> None:
        logger.info("%s earned badge %r (#%d)", profile_id, badge_name, badge_id)

    def milestone_achieved(
        self, profile_id: str, level: str, previous_level: str | None
    ) -> None:
        logger.info("%s reached milestone %s (was %s)", profile_id, level, previous_level)

    def reward_issued(
        self, profile_id: str, amount: int, description: str, transaction_id: int
    ) -> None:
        logger.debug("%s +%d MyPts (%s) txn=%d", profile_id, amount, description, transaction_id)


@dataclass(frozen=True, slots=True)
class Notification:
    """One deferred notifier call: method name + keyword arguments."""

    kind: str
    kwargs: dict = field(default_factory=dict)


def badge_earned(profile_id: str, badge_id: int, badge_name: str) -> Notification:
    return Notification(
        "badge_earned",
        {"profile_id": profile_id, "badge_id": badge_id, "badge_name": badge_name},
    )


def milestone_achieved(profile_id: str, level: str, previous_level: str | None) -> Notification:
    return Notification(
        "milestone_achieved",
        {"profile_id": profile_id, "level": level, "previous_level": previous_level},
    )


def reward_issued(
    profile_id: str, amount: int, description: str, transaction_id: int
) -> Notification:
    return Notification(
        "reward_issued",
        {
            "profile_id": profile_id,
            "amount": amount,
            "description": description,
            "transaction_id": transaction_id,
        },
    )


def dispatch(notifier: Notifier, outbox: list[Notification]) -> None:
    """Deliver every queued notification, swallowing notifier failures."""
    for note in outbox:
        try:
            getattr(notifier, note.kind)(**note.kwargs)
        except Exception:
            logger.exception(
                "Notifier failed for %s", note.kind, extra={"notification": note.kind}
            )
