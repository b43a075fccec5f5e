"""
MyPts — Points Economy for Social Profiles
============================================
A closed-loop virtual-currency ledger backed by a central supply Hub,
driven by a gamification rules engine: activity rewards with cooldowns
and daily caps, badge progression, milestone levels and a leaderboard.
A reconciliation job audits and backfills rewards across the existing
population.

Package layout::

    mypts/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Domain exception taxonomy
    ├── clock.py           # Injectable wall clock
    ├── cli.py             # click entry point (seed, reconcile, …)
    ├── worker.py          # asyncio periodic jobs
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default rules, badges and Hub row
    ├── engine/
    │   ├── rules.py       # Pure reward-rule decision
    │   ├── milestones.py  # Milestone level table
    │   ├── badges.py      # Badge requirement handlers
    │   └── ranking.py     # Leaderboard rank assignment
    ├── services/
    │   ├── context.py     # EconomyContext passed to every service
    │   ├── ledger_service.py       # credit / debit / reverse
    │   ├── hub_service.py          # Supply bookkeeping
    │   ├── activity_service.py     # track_activity + rule admin
    │   ├── badge_service.py        # Badge progress + awards
    │   ├── milestone_service.py    # Milestone updates
    │   ├── leaderboard_service.py  # Rebuild + reads
    │   └── reconciliation_service.py  # Retroactive backfill
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Public + admin REST endpoints
"""

__version__ = "0.1.0"
