"""
mypts.api.deps — Request Dependencies
=======================================

The process-wide :class:`EconomyContext` and the two bearer-token roles:
admins (``is_admin``) and platform services that report activities
(``is_service``).
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError

from mypts.config import MyPtsConfig, load_config
from mypts.database.engine import create_db_engine
from mypts.services.context import EconomyContext

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
_MIN_SECRET_LENGTH = 32
_WEAK_SECRETS = frozenset({"mypts-dev-secret-change-me", "change-me", "secret", "dev"})


def _load_jwt_secret() -> str:
    """Read ``JWT_SECRET``; refuse to start on a missing, weak or short one."""
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set.  Generate one with "
            "`openssl rand -base64 48` and put it in .env."
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(f"JWT_SECRET is a known weak default ({secret!r}).")
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short: {len(secret)} characters, "
            f"need at least {_MIN_SECRET_LENGTH}."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Economy context
# ---------------------------------------------------------------------------
def _api_config() -> MyPtsConfig:
    path = Path(os.getenv("MYPTS_CONFIG", "config.yaml"))
    if path.exists():
        return load_config(path)
    logger.warning("%s not found, using built-in economy defaults", path)
    return MyPtsConfig()


@lru_cache(maxsize=1)
def get_context() -> EconomyContext:
    """One context per process so every request shares the account locks."""
    return EconomyContext(engine=create_db_engine(), config=_api_config())


ContextDep = Annotated[EconomyContext, Depends(get_context)]


# ---------------------------------------------------------------------------
# Bearer roles
# ---------------------------------------------------------------------------
def _claims_with(authorization: str | None, *roles: str) -> dict:
    """Decode the bearer token; 401 if unusable, 403 without any of *roles*."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not any(claims.get(role) for role in roles):
        raise HTTPException(status.HTTP_403_FORBIDDEN, f"Requires {' or '.join(roles)}")
    return claims


def get_current_admin(authorization: Annotated[str | None, Header()] = None) -> dict:
    return _claims_with(authorization, "is_admin")


def get_service_caller(authorization: Annotated[str | None, Header()] = None) -> dict:
    """Activity ingestion: platform services, or an admin replaying events."""
    return _claims_with(authorization, "is_service", "is_admin")
