"""
mypts.engine.ranking — Leaderboard Rank Assignment
====================================================

Pure ordering for the leaderboard rebuild.  Ranks are dense positions
1..N with no gaps and no duplicates; ties on balance break on
``lifetime_earned`` (desc) and then ``profile_id`` (asc) so the order is
deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RankInput:
    profile_id: str
    balance: int
    lifetime_earned: int


@dataclass(frozen=True, slots=True)
class RankedEntry:
    profile_id: str
    rank: int
    previous_rank: int | None
    balance: int
    lifetime_earned: int

    @property
    def rank_change(self) -> int:
        """Positive when the profile moved up."""
        if self.previous_rank is None:
            return 0
        return self.previous_rank - self.rank


def sort_key(row: RankInput) -> tuple[int, int, str]:
    return (-row.balance, -row.lifetime_earned, row.profile_id)


def assign_ranks(
    rows: list[RankInput],
    previous: dict[str, int] | None = None,
) -> list[RankedEntry]:
    """Order *rows* and number them from 1.

    *previous* maps profile_id → rank from the last build and becomes each
    entry's ``previous_rank``.
    """
    previous = previous or {}
    ordered = sorted(rows, key=sort_key)
    return [
        RankedEntry(
            profile_id=row.profile_id,
            rank=position,
            previous_rank=previous.get(row.profile_id),
            balance=row.balance,
            lifetime_earned=row.lifetime_earned,
        )
        for position, row in enumerate(ordered, start=1)
    ]
