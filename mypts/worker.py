"""
mypts.worker — Periodic Background Jobs
=========================================

Scheduled jobs for the economy, run on a plain asyncio loop:

- **Leaderboard rebuild** — every ``leaderboard.rebuild_interval_seconds``
  (daily by default), plus once at startup.
- **Supply consistency check** — every ``hub.check_interval_seconds``;
  reports drift between the Hub and the sum of balances, never fixes it.

Each job runs through ``run_db()`` so the loop is never blocked, and a
failing run is logged without stopping the schedule.

Run with::

    python -m mypts.worker
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from mypts.database.engine import run_db
from mypts.services import hub_service, leaderboard_service
from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)


async def _every(
    seconds: float,
    job: Callable[[EconomyContext], object],
    ctx: EconomyContext,
    stop: asyncio.Event,
    name: str,
) -> None:
    """Run *job* now and then every *seconds* until *stop* is set."""
    while not stop.is_set():
        try:
            await run_db(job, ctx)
        except Exception:
            logger.exception("%s failed", name, extra={"task": name})
        try:
            await asyncio.wait_for(stop.wait(), timeout=seconds)
        except TimeoutError:
            continue


async def run_worker(ctx: EconomyContext, stop: asyncio.Event | None = None) -> None:
    """Run all periodic jobs until *stop* is set."""
    stop = stop or asyncio.Event()
    cfg = ctx.config
    logger.info(
        "Worker started: leaderboard every %ds, supply check every %ds",
        cfg.leaderboard_rebuild_interval_seconds, cfg.supply_check_interval_seconds,
    )
    await asyncio.gather(
        _every(cfg.leaderboard_rebuild_interval_seconds, leaderboard_service.rebuild,
               ctx, stop, "leaderboard_rebuild"),
        _every(cfg.supply_check_interval_seconds, hub_service.verify_consistency,
               ctx, stop, "supply_check"),
    )
    logger.info("Worker stopped")


def main() -> None:
    from mypts.cli import build_context, configure_logging

    configure_logging()
    ctx = build_context("config.yaml")
    try:
        asyncio.run(run_worker(ctx))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    main()
