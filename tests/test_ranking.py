"""
tests/test_ranking.py — Leaderboard Rank Assignment Tests
===========================================================
"""

from __future__ import annotations

from mypts.engine.ranking import RankInput, assign_ranks


class TestAssignRanks:
    def test_orders_by_balance_desc(self):
        ranked = assign_ranks([
            RankInput("a", 10, 10),
            RankInput("b", 30, 30),
            RankInput("c", 20, 20),
        ])
        assert [r.profile_id for r in ranked] == ["b", "c", "a"]
        assert [r.rank for r in ranked] == [1, 2, 3]

    def test_ties_break_on_lifetime_then_id(self):
        ranked = assign_ranks([
            RankInput("zed", 50, 80),
            RankInput("amy", 50, 80),
            RankInput("bob", 50, 200),
        ])
        assert [r.profile_id for r in ranked] == ["bob", "amy", "zed"]

    def test_ranks_are_dense_and_unique(self):
        rows = [RankInput(f"p{i}", 100, 100) for i in range(7)]
        ranks = [r.rank for r in assign_ranks(rows)]
        assert ranks == list(range(1, 8))

    def test_previous_rank_and_change(self):
        ranked = assign_ranks(
            [RankInput("a", 10, 10), RankInput("b", 30, 30), RankInput("new", 5, 5)],
            previous={"a": 1, "b": 2},
        )
        by_id = {r.profile_id: r for r in ranked}
        assert by_id["b"].previous_rank == 2
        assert by_id["b"].rank_change == 1
        assert by_id["a"].rank_change == -1
        assert by_id["new"].previous_rank is None
        assert by_id["new"].rank_change == 0

    def test_empty(self):
        assert assign_ranks([]) == []
