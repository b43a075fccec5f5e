"""
mypts.database.engine — Engine, Sessions & Thread Bridge
==========================================================

Every economy service is synchronous SQLAlchemy.  Coroutines (the worker
loop) hand service calls to a worker thread with :func:`run_db`; the
event loop itself never touches a connection.

Usage::

    from mypts.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()              # DATABASE_URL, loaded from .env
    init_db(engine, config)                  # tables + default rules/badges/Hub

    # Inside a coroutine:
    ranked = await run_db(leaderboard_service.rebuild, ctx)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from mypts.database.models import Base

if TYPE_CHECKING:
    from mypts.config import MyPtsConfig

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Connection pool for server databases; SQLite gets SQLAlchemy's defaults.
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the economy's :class:`Engine` from *url* or ``DATABASE_URL``.

    Raises
    ------
    RuntimeError
        Neither *url* nor ``DATABASE_URL`` is available.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  Copy .env.example to .env and point it "
            "at the MyPts PostgreSQL database."
        )

    parsed = make_url(url)
    options = {} if parsed.get_backend_name() == "sqlite" else POOL_OPTIONS
    engine = create_engine(parsed, **options)
    logger.info(
        "MyPts engine ready (%s @ %s)",
        parsed.get_backend_name(), parsed.host or parsed.database,
    )
    return engine


def init_db(engine: Engine, config: MyPtsConfig | None = None, *, seed: bool = True) -> None:
    """Create any missing tables, then seed defaults unless *seed* is off.

    Deployed databases are migrated with ``alembic upgrade head``; this is
    for local setups and tests.
    """
    Base.metadata.create_all(engine)
    logger.info("MyPts schema present (%d tables).", len(Base.metadata.tables))

    if seed:
        from mypts.database.seed import seed_defaults

        seed_defaults(engine, config)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Session scope: commit when the block exits cleanly, roll back and
    re-raise otherwise."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Thread bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking service call without stalling the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
