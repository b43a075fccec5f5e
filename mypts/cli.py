"""
mypts.cli — Operator Command Line
===================================

Usage::

    mypts init-db                       # create tables + seed defaults
    mypts seed                          # re-seed missing defaults
    mypts reconcile --dry-run           # preview the retroactive backfill
    mypts reconcile --activity-type platform_join
    mypts rebuild-leaderboard
    mypts verify-supply
    mypts worker                        # periodic jobs (same as python -m mypts.worker)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from mypts.config import MyPtsConfig, load_config
from mypts.database.engine import create_db_engine, init_db
from mypts.database.seed import seed_defaults
from mypts.services import hub_service, leaderboard_service, reconciliation_service
from mypts.services.context import EconomyContext

logger = logging.getLogger("mypts")


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )


def build_context(config_path: str | Path) -> EconomyContext:
    """Load .env + config and build the process-wide economy context."""
    load_dotenv()
    path = Path(config_path)
    cfg = load_config(path) if path.exists() else MyPtsConfig()
    return EconomyContext(engine=create_db_engine(), config=cfg)


def _economy(ctx: click.Context) -> EconomyContext:
    if ctx.obj.get("economy") is None:
        ctx.obj["economy"] = build_context(ctx.obj["config_path"])
    return ctx.obj["economy"]


def _emit(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--config", "config_path", default="config.yaml", show_default=True,
              help="Path to the economy config file")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool):
    """MyPts economy operations."""
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("config_path", config_path)


@cli.command("init-db")
@click.option("--no-seed", is_flag=True, help="Create tables only")
@click.pass_context
def init_db_command(ctx: click.Context, no_seed: bool):
    """Create all tables and seed default rules, badges and the Hub."""
    economy = _economy(ctx)
    init_db(economy.engine, economy.config, seed=not no_seed)
    click.echo("Database ready.")


@cli.command()
@click.pass_context
def seed(ctx: click.Context):
    """Insert any missing default rules, badges and the Hub row."""
    economy = _economy(ctx)
    seed_defaults(economy.engine, economy.config)
    click.echo("Defaults seeded.")


@cli.command()
@click.option("--activity-type", default="platform_join", show_default=True)
@click.option("--dry-run", is_flag=True, help="Report what would be awarded, award nothing")
@click.pass_context
def reconcile(ctx: click.Context, activity_type: str, dry_run: bool):
    """Award missing rewards retroactively."""
    report = reconciliation_service.run_reconciliation(
        _economy(ctx), activity_type, dry_run=dry_run
    )
    _emit(report.to_dict())
    if report.status not in (
        reconciliation_service.STATUS_COMPLETED, reconciliation_service.STATUS_DRY_RUN
    ):
        raise click.ClickException(f"Reconciliation aborted: {report.status}")


@cli.command("rebuild-leaderboard")
@click.pass_context
def rebuild_leaderboard(ctx: click.Context):
    """Recompute leaderboard ranks now."""
    count = leaderboard_service.rebuild(_economy(ctx))
    click.echo(f"Ranked {count} accounts.")


@cli.command("verify-supply")
@click.pass_context
def verify_supply(ctx: click.Context):
    """Check the Hub against the sum of balances."""
    report = hub_service.verify_consistency(_economy(ctx))
    _emit(report)
    if not report["consistent"]:
        raise click.ClickException("Supply drift detected")


@cli.command()
@click.pass_context
def worker(ctx: click.Context):
    """Run the periodic jobs until interrupted."""
    from mypts.worker import run_worker

    try:
        asyncio.run(run_worker(_economy(ctx)))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    cli()
