"""
mypts.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for economy tuning that operators change rarely
(initial Hub supply, leaderboard cadence, reconciliation batch size,
retry policy).  Secrets (``DATABASE_URL``, ``JWT_SECRET``) stay in the
environment and are loaded from ``.env`` by the entry points.

Usage::

    from mypts.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.hub_initial_supply)       # 1000000000
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MyPtsConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so tests and one-off scripts can build a
    config without a file.
    """

    # Hub
    hub_initial_supply: int = 1_000_000_000
    hub_max_supply: int | None = None
    hub_value_per_mypt: float = 0.024

    # Leaderboard
    leaderboard_default_limit: int = 100
    leaderboard_rebuild_interval_seconds: int = 86_400

    # Reconciliation
    reconciliation_batch_size: int = 10

    # Supply consistency check cadence (worker)
    supply_check_interval_seconds: int = 3_600

    # Retry policy for optimistic-lock conflicts and transient DB errors
    retry_attempts: int = 3
    retry_wait_min_seconds: float = 0.05
    retry_wait_max_seconds: float = 1.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MyPtsConfig:
    """Read *path* and return a :class:`MyPtsConfig` instance.

    Missing sections or keys fall back to the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a numeric setting is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    hub = raw.get("hub") or {}
    leaderboard = raw.get("leaderboard") or {}
    reconciliation = raw.get("reconciliation") or {}
    retry = raw.get("retry") or {}
    defaults = MyPtsConfig()

    cfg = MyPtsConfig(
        hub_initial_supply=int(hub.get("initial_supply", defaults.hub_initial_supply)),
        hub_max_supply=(
            int(hub["max_supply"]) if hub.get("max_supply") is not None else None
        ),
        hub_value_per_mypt=float(hub.get("value_per_mypt", defaults.hub_value_per_mypt)),
        leaderboard_default_limit=int(
            leaderboard.get("default_limit", defaults.leaderboard_default_limit)
        ),
        leaderboard_rebuild_interval_seconds=int(
            leaderboard.get(
                "rebuild_interval_seconds", defaults.leaderboard_rebuild_interval_seconds
            )
        ),
        reconciliation_batch_size=int(
            reconciliation.get("batch_size", defaults.reconciliation_batch_size)
        ),
        supply_check_interval_seconds=int(
            hub.get("check_interval_seconds", defaults.supply_check_interval_seconds)
        ),
        retry_attempts=int(retry.get("attempts", defaults.retry_attempts)),
        retry_wait_min_seconds=float(
            retry.get("wait_min_seconds", defaults.retry_wait_min_seconds)
        ),
        retry_wait_max_seconds=float(
            retry.get("wait_max_seconds", defaults.retry_wait_max_seconds)
        ),
    )

    if cfg.hub_initial_supply < 0:
        raise ValueError("hub.initial_supply must be >= 0")
    if cfg.hub_max_supply is not None and cfg.hub_max_supply < cfg.hub_initial_supply:
        raise ValueError("hub.max_supply must be >= hub.initial_supply")
    if cfg.reconciliation_batch_size < 1:
        raise ValueError("reconciliation.batch_size must be >= 1")
    if cfg.retry_attempts < 1:
        raise ValueError("retry.attempts must be >= 1")
    return cfg
