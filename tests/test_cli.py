"""
tests/test_cli.py — Operator CLI Tests
========================================
Runs the click commands with CliRunner against an injected economy
context, so no DATABASE_URL is needed.
"""

from __future__ import annotations

import json

from click.testing import CliRunner
from conftest import add_profiles, make_context
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mypts.cli import cli
from mypts.database.models import ActivityRewardRule, MyPtsAccount
from mypts.services import ledger_service
from mypts.services.context import EconomyContext


def _invoke(ctx: EconomyContext, *args: str):
    return CliRunner().invoke(cli, list(args), obj={"economy": ctx})


class TestInitDb:
    def test_creates_and_seeds(self, db_engine, config, clock):
        ctx = EconomyContext(engine=db_engine, config=config, clock=clock)
        result = _invoke(ctx, "init-db")
        assert result.exit_code == 0, result.output
        assert "Database ready." in result.stdout
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(ActivityRewardRule)) == 7

    def test_no_seed(self, db_engine, config, clock):
        ctx = EconomyContext(engine=db_engine, config=config, clock=clock)
        result = _invoke(ctx, "init-db", "--no-seed")
        assert result.exit_code == 0, result.output
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(ActivityRewardRule)) == 0

    def test_seed_fills_in_after_no_seed(self, db_engine, config, clock):
        ctx = EconomyContext(engine=db_engine, config=config, clock=clock)
        assert _invoke(ctx, "init-db", "--no-seed").exit_code == 0
        result = _invoke(ctx, "seed")
        assert result.exit_code == 0, result.output
        assert "Defaults seeded." in result.stdout
        again = _invoke(ctx, "seed")
        assert again.exit_code == 0, again.output
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(ActivityRewardRule)) == 7


class TestReconcile:
    def test_dry_run_reports_json(self, ctx):
        add_profiles(ctx.engine, {"p1": "u1", "p2": "ghost"}, users=["u1"])
        result = _invoke(ctx, "reconcile", "--dry-run")
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["status"] == "dry_run"
        assert report["eligible"] == 1
        assert report["orphaned"] == 1
        assert ledger_service.get_balance(ctx, "p1") == 0

    def test_run_awards(self, ctx):
        add_profiles(ctx.engine, {"p1": "u1"}, users=["u1"])
        result = _invoke(ctx, "reconcile")
        assert result.exit_code == 0, result.output
        assert ledger_service.get_balance(ctx, "p1") == 100

    def test_abort_exits_non_zero(self, db_engine):
        ctx = make_context(db_engine, hub_initial_supply=10)
        add_profiles(db_engine, {"p1": "u1"}, users=["u1"])
        result = _invoke(ctx, "reconcile")
        assert result.exit_code == 1
        assert "reserve_insufficient" in result.output
        with Session(db_engine) as session:
            assert session.get(MyPtsAccount, "p1") is None


class TestMaintenance:
    def test_rebuild_leaderboard(self, ctx):
        ledger_service.credit(ctx, "a", 10)
        ledger_service.credit(ctx, "b", 20)
        result = _invoke(ctx, "rebuild-leaderboard")
        assert result.exit_code == 0, result.output
        assert "Ranked 2 accounts." in result.stdout

    def test_verify_supply_consistent(self, ctx):
        ledger_service.credit(ctx, "a", 10)
        result = _invoke(ctx, "verify-supply")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["consistent"] is True

    def test_verify_supply_drift_fails(self, ctx):
        from sqlalchemy import update

        ledger_service.credit(ctx, "a", 10)
        with Session(ctx.engine) as session:
            session.execute(
                update(MyPtsAccount).values(balance=15, lifetime_earned=15)
            )
            session.commit()
        result = _invoke(ctx, "verify-supply")
        assert result.exit_code == 1
        assert "Supply drift detected" in result.output
