"""
mypts.services.profile_directory — Profile & Identity Lookup
==============================================================

The economy does not own profiles or users.  Reconciliation reads them
through the :class:`ProfileDirectory` protocol; :class:`SqlProfileDirectory`
is the default implementation over the mirrored ``profiles`` and
``users`` tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mypts.database.models import Profile, User


@dataclass(frozen=True, slots=True)
class ProfileRef:
    profile_id: str
    owner_id: str | None
    username: str | None = None


class ProfileDirectory(Protocol):
    def list_profiles(self) -> list[ProfileRef]: ...

    def list_identity_ids(self) -> set[str]: ...

    def get_profile(self, profile_id: str) -> ProfileRef | None: ...


class SqlProfileDirectory:
    """Reads the ``profiles`` / ``users`` tables."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def list_profiles(self) -> list[ProfileRef]:
        with Session(self._engine) as session:
            rows = session.execute(
                select(Profile.id, Profile.owner_id, Profile.username).order_by(Profile.id)
            ).all()
        return [ProfileRef(profile_id=r[0], owner_id=r[1], username=r[2]) for r in rows]

    def list_identity_ids(self) -> set[str]:
        with Session(self._engine) as session:
            return set(session.scalars(select(User.id)).all())

    def get_profile(self, profile_id: str) -> ProfileRef | None:
        with Session(self._engine) as session:
            row = session.get(Profile, profile_id)
            if row is None:
                return None
            return ProfileRef(profile_id=row.id, owner_id=row.owner_id, username=row.username)
