"""
tests/test_hub_service.py — Hub Supply Service Tests
======================================================
Issue, burn, max-supply, consistency verification and supply
reconciliation on the singleton Hub row.
"""

from __future__ import annotations

import pytest
from conftest import make_context
from sqlalchemy import Engine, create_engine, update
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from mypts.database.models import Base, HubAction, MyPtsAccount, MyPtsHub
from mypts.database.seed import HUB_ID
from mypts.errors import ReserveExhausted, ValidationError
from mypts.services import hub_service, ledger_service
from mypts.services.context import EconomyContext


class TestHubState:
    def test_seeded_supply_all_in_reserve(self, ctx):
        state = hub_service.get_hub_state(ctx)
        assert state["total_supply"] == 1_000_000_000
        assert state["reserve_supply"] == 1_000_000_000
        assert state["circulating_supply"] == 0
        assert state["value_per_mypt"] == pytest.approx(0.024)

    def test_hub_created_lazily_when_unseeded(self, config, clock):
        engine: Engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        Base.metadata.create_all(engine)
        ctx = EconomyContext(engine=engine, config=config, clock=clock)
        ledger_service.credit(ctx, "alice", 10)
        state = hub_service.get_hub_state(ctx)
        assert state["circulating_supply"] == 10
        assert state["reserve_supply"] == config.hub_initial_supply - 10


class TestIssueAndBurn:
    def test_issue_grows_total_and_reserve(self, ctx):
        state = hub_service.issue(ctx, 5_000, "season launch", admin_id="7")
        assert state["total_supply"] == 1_000_005_000
        assert state["reserve_supply"] == 1_000_005_000

        logs = hub_service.get_logs(ctx, HubAction.ISSUE)
        assert len(logs) == 1
        assert logs[0].admin_id == "7"
        assert logs[0].total_supply_before == 1_000_000_000
        assert logs[0].total_supply_after == 1_000_005_000

    def test_issue_respects_max_supply(self, db_engine):
        ctx = make_context(db_engine, hub_initial_supply=1_000, hub_max_supply=1_500)
        hub_service.issue(ctx, 500, "top up")
        with pytest.raises(ValidationError, match="max supply"):
            hub_service.issue(ctx, 1, "one more")

    def test_burn_only_from_reserve(self, db_engine):
        ctx = make_context(db_engine, hub_initial_supply=1_000)
        ledger_service.credit(ctx, "alice", 900)
        with pytest.raises(ReserveExhausted):
            hub_service.burn(ctx, 200, "too much")
        state = hub_service.burn(ctx, 100, "trim")
        assert state["total_supply"] == 900
        assert state["reserve_supply"] == 0
        assert state["circulating_supply"] == 900

    @pytest.mark.parametrize("amount", [0, -1, 2.5])
    def test_rejects_bad_amounts(self, ctx, amount):
        with pytest.raises(ValidationError):
            hub_service.issue(ctx, amount, "bad")
        with pytest.raises(ValidationError):
            hub_service.burn(ctx, amount, "bad")


class TestMaxSupply:
    def test_set_and_clear(self, ctx):
        state = hub_service.adjust_max_supply(ctx, 2_000_000_000, "cap")
        assert state["max_supply"] == 2_000_000_000
        state = hub_service.adjust_max_supply(ctx, None, "uncap")
        assert state["max_supply"] is None

    def test_cannot_go_below_total(self, ctx):
        with pytest.raises(ValidationError):
            hub_service.adjust_max_supply(ctx, 10, "too low")

    def test_logged_with_previous_value(self, ctx):
        hub_service.adjust_max_supply(ctx, 2_000_000_000, "cap")
        log = hub_service.get_logs(ctx, HubAction.ADJUST_MAX_SUPPLY)[0]
        assert log.metadata_ == {"previous_max_supply": None}


class TestValuePerMypt:
    def test_reprice_leaves_supply_alone(self, ctx):
        state = hub_service.update_value_per_mypt(ctx, 0.05, "market review", admin_id="7")
        assert state["value_per_mypt"] == pytest.approx(0.05)
        assert state["total_supply"] == 1_000_000_000
        assert hub_service.get_hub_state(ctx)["value_per_mypt"] == pytest.approx(0.05)

    def test_logged_with_previous_value(self, ctx):
        hub_service.update_value_per_mypt(ctx, 0.03, "market review", admin_id="7")
        log = hub_service.get_logs(ctx, HubAction.UPDATE_VALUE)[0]
        assert log.admin_id == "7"
        assert log.reason == "market review"
        assert log.total_supply_before == log.total_supply_after
        assert log.metadata_["previous_value_per_mypt"] == pytest.approx(0.024)
        assert log.metadata_["value_per_mypt"] == pytest.approx(0.03)

    @pytest.mark.parametrize("value", [0, -0.01, float("nan"), float("inf"), True, "0.1"])
    def test_rejects_bad_values(self, ctx, value):
        with pytest.raises(ValidationError):
            hub_service.update_value_per_mypt(ctx, value, "bad")
        assert hub_service.get_logs(ctx, HubAction.UPDATE_VALUE) == []

    def test_requires_reason(self, ctx):
        with pytest.raises(ValidationError, match="reason"):
            hub_service.update_value_per_mypt(ctx, 0.05, "  ")


def _drift(engine, delta: int) -> None:
    """Simulate drift by editing an account balance behind the ledger."""
    with Session(engine) as session:
        session.execute(
            update(MyPtsAccount)
            .where(MyPtsAccount.profile_id == "alice")
            .values(
                balance=MyPtsAccount.balance + delta,
                lifetime_earned=MyPtsAccount.lifetime_earned + delta,
            )
        )
        session.commit()


class TestConsistency:
    def test_consistent_after_ledger_traffic(self, ctx):
        ledger_service.credit(ctx, "alice", 300)
        ledger_service.credit(ctx, "bob", 200)
        ledger_service.debit(ctx, "alice", 100)
        report = hub_service.verify_consistency(ctx)
        assert report == {
            "consistent": True,
            "recorded_circulating_supply": 400,
            "actual_circulating_supply": 400,
            "difference": 0,
        }

    def test_drift_reported_not_fixed(self, ctx, caplog):
        ledger_service.credit(ctx, "alice", 300)
        _drift(ctx.engine, 25)
        with caplog.at_level("WARNING", logger="mypts.services.hub_service"):
            report = hub_service.verify_consistency(ctx)
        assert not report["consistent"]
        assert report["difference"] == 25
        assert "Supply drift" in caplog.text

        with Session(ctx.engine) as session:
            assert session.get(MyPtsHub, HUB_ID).circulating_supply == 300

    def test_reconcile_supply_moves_difference(self, ctx):
        ledger_service.credit(ctx, "alice", 300)
        _drift(ctx.engine, 25)
        result = hub_service.reconcile_supply(ctx, "fix drift", admin_id="1")
        assert result["adjusted"] is True
        assert result["difference"] == 25
        assert result["circulating_supply"] == 325
        assert result["total_supply"] == 1_000_000_000
        assert hub_service.verify_consistency(ctx)["consistent"]

    def test_reconcile_noop_when_consistent(self, ctx):
        ledger_service.credit(ctx, "alice", 300)
        result = hub_service.reconcile_supply(ctx, "check")
        assert result["adjusted"] is False
        assert hub_service.get_logs(ctx, HubAction.RECONCILE) == []


class TestLogs:
    def test_newest_first_with_paging(self, ctx):
        ledger_service.credit(ctx, "alice", 1)
        ledger_service.credit(ctx, "alice", 2)
        ledger_service.credit(ctx, "alice", 3)
        logs = hub_service.get_logs(ctx, limit=2)
        assert [log.amount for log in logs] == [3, 2]
        assert [log.amount for log in hub_service.get_logs(ctx, limit=2, offset=2)] == [1]
