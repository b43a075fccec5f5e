"""
mypts.engine.milestones — Milestone Level Table
=================================================

Maps a lifetime points total to a milestone level.  Pure calculation.

Thresholds::

    Starter 0 · Explorer 10 000 · Achiever 500 000 · Leader 1 000 000
    Visionary 5 000 000 · Legend 10 000 000
"""

from __future__ import annotations

from dataclasses import dataclass

from mypts.database.models import MilestoneLevel

# Ordered ascending; index = rank of the level
MILESTONE_THRESHOLDS: list[tuple[MilestoneLevel, int]] = [
    (MilestoneLevel.STARTER, 0),
    (MilestoneLevel.EXPLORER, 10_000),
    (MilestoneLevel.ACHIEVER, 500_000),
    (MilestoneLevel.LEADER, 1_000_000),
    (MilestoneLevel.VISIONARY, 5_000_000),
    (MilestoneLevel.LEGEND, 10_000_000),
]

LEVEL_ORDER: dict[str, int] = {
    level.value: idx for idx, (level, _) in enumerate(MILESTONE_THRESHOLDS)
}


@dataclass(frozen=True, slots=True)
class MilestoneState:
    level: MilestoneLevel
    points: int
    next_level: MilestoneLevel | None
    next_threshold: int | None
    progress: int


def level_index(level: str) -> int:
    """Position of *level* in the ladder (Starter = 0).  Unknown → -1."""
    return LEVEL_ORDER.get(str(level), -1)


def compute_milestone(points: int, floor_level: str | None = None) -> MilestoneState:
    """Return the milestone state for a lifetime points total.

    ``progress`` is the floored percentage towards the next threshold and
    never reads 100 until the top level is reached.  With *floor_level*
    the result never ranks below that level (levels are not taken back);
    progress is then measured from the floor and bottoms out at 0.
    """
    points = max(int(points), 0)
    idx = 0
    for i, (_, threshold) in enumerate(MILESTONE_THRESHOLDS):
        if points >= threshold:
            idx = i
        else:
            break
    if floor_level is not None:
        idx = max(idx, level_index(floor_level))

    level, current = MILESTONE_THRESHOLDS[idx]
    if idx == len(MILESTONE_THRESHOLDS) - 1:
        return MilestoneState(level, points, None, None, 100)

    next_level, next_threshold = MILESTONE_THRESHOLDS[idx + 1]
    progress = (points - current) * 100 // (next_threshold - current)
    return MilestoneState(
        level, points, next_level, next_threshold, max(0, min(progress, 99))
    )


def levels_between(old: str, new: str) -> list[MilestoneLevel]:
    """Levels strictly above *old* up to and including *new*."""
    lo, hi = level_index(old), level_index(new)
    return [level for level, _ in MILESTONE_THRESHOLDS[lo + 1:hi + 1]]
