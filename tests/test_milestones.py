"""
tests/test_milestones.py — Milestone Level Table Tests
========================================================
"""

from __future__ import annotations

import pytest

from mypts.database.models import MilestoneLevel
from mypts.engine.milestones import (
    MILESTONE_THRESHOLDS,
    compute_milestone,
    level_index,
    levels_between,
)


class TestComputeMilestone:
    @pytest.mark.parametrize(
        "points, level",
        [
            (0, MilestoneLevel.STARTER),
            (9_999, MilestoneLevel.STARTER),
            (10_000, MilestoneLevel.EXPLORER),
            (499_999, MilestoneLevel.EXPLORER),
            (500_000, MilestoneLevel.ACHIEVER),
            (1_000_000, MilestoneLevel.LEADER),
            (5_000_000, MilestoneLevel.VISIONARY),
            (10_000_000, MilestoneLevel.LEGEND),
            (250_000_000, MilestoneLevel.LEGEND),
        ],
    )
    def test_level_for_points(self, points, level):
        assert compute_milestone(points).level is level

    def test_progress_towards_next(self):
        state = compute_milestone(5_000)
        assert state.next_level is MilestoneLevel.EXPLORER
        assert state.next_threshold == 10_000
        assert state.progress == 50

    def test_progress_is_floored_and_never_100_below_legend(self):
        assert compute_milestone(9_999).progress == 99
        assert compute_milestone(10_001).progress == 0

    def test_legend_has_no_next_level(self):
        state = compute_milestone(12_000_000)
        assert state.next_level is None
        assert state.next_threshold is None
        assert state.progress == 100

    def test_negative_points_clamped(self):
        state = compute_milestone(-5)
        assert state.level is MilestoneLevel.STARTER
        assert state.points == 0

    def test_floor_level_never_demotes(self):
        state = compute_milestone(0, floor_level=MilestoneLevel.EXPLORER)
        assert state.level is MilestoneLevel.EXPLORER
        assert state.points == 0
        assert state.next_level is MilestoneLevel.ACHIEVER
        assert state.progress == 0

    def test_floor_level_below_points_ignored(self):
        assert compute_milestone(600_000, floor_level=MilestoneLevel.STARTER).level is (
            MilestoneLevel.ACHIEVER
        )

    def test_thresholds_ascending(self):
        values = [threshold for _, threshold in MILESTONE_THRESHOLDS]
        assert values == sorted(values)


class TestLevelHelpers:
    def test_level_index(self):
        assert level_index("Starter") == 0
        assert level_index(MilestoneLevel.LEGEND) == 5
        assert level_index("Wizard") == -1

    def test_levels_between_skips(self):
        assert levels_between("Starter", "Leader") == [
            MilestoneLevel.EXPLORER,
            MilestoneLevel.ACHIEVER,
            MilestoneLevel.LEADER,
        ]

    def test_levels_between_same_level(self):
        assert levels_between("Explorer", "Explorer") == []
