"""
mypts.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- profiles             — Read-only mirror of the external profile directory
- users                — Read-only mirror of the external identity service
- mypts_accounts       — One balance per profile
- mypts_transactions   — Append-only ledger entries
- mypts_hub            — Singleton supply row (optimistically versioned)
- mypts_hub_logs       — Append-only supply audit trail
- activity_reward_rules — Points, cooldown and daily cap per activity type
- user_activities      — One row per rewarded activity occurrence
- badges               — Badge definitions with typed requirements
- profile_badges       — Per-profile badge progress
- profile_milestones   — Current milestone per profile
- milestone_history    — Append-only level-up journal
- leaderboard_entries  — Derived, rebuildable ranking snapshot

JSONB ``metadata`` columns are schema-less maps.  Keys the services
write: ``activity_type``, ``activity_id``, ``source``, ``is_retroactive``,
``reason``, ``admin_id``.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all MyPts ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(enum.StrEnum):
    """Ledger entry kinds."""
    EARN = "earn"
    SPEND = "spend"
    ADJUSTMENT = "adjustment"


class TransactionStatus(enum.StrEnum):
    """Ledger entry lifecycle.  The ledger itself only writes COMPLETED."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class HubAction(enum.StrEnum):
    """Supply movements recorded in mypts_hub_logs."""
    ISSUE = "ISSUE"
    BURN = "BURN"
    RESERVE_TO_CIRCULATION = "RESERVE_TO_CIRCULATION"
    CIRCULATION_TO_RESERVE = "CIRCULATION_TO_RESERVE"
    ADJUST_MAX_SUPPLY = "ADJUST_MAX_SUPPLY"
    RECONCILE = "RECONCILE"
    UPDATE_VALUE = "UPDATE_VALUE"


class MilestoneLevel(enum.StrEnum):
    STARTER = "Starter"
    EXPLORER = "Explorer"
    ACHIEVER = "Achiever"
    LEADER = "Leader"
    VISIONARY = "Visionary"
    LEGEND = "Legend"


class BadgeCategory(enum.StrEnum):
    MYPTS = "MyPts"
    PLATFORM_USAGE = "Platform Usage"
    PROFILE_COMPLETION = "Profile Completion"
    PRODUCTS = "Products"
    NETWORKING = "Networking"
    CIRCLE = "Circle"
    ENGAGEMENT = "Engagement"
    PLANS = "Plans"
    DATA = "Data"
    VAULT = "Vault"
    DISCOVER = "Discover"


class BadgeRarity(enum.StrEnum):
    COMMON = "Common"
    UNCOMMON = "Uncommon"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


class RequirementType(enum.StrEnum):
    """What a badge's ``requirements.type`` is evaluated against."""
    LIFETIME_EARNED = "lifetime_earned"
    BALANCE = "balance"
    ACTIVITY_COUNT = "activity_count"
    MILESTONE_LEVEL = "milestone_level"
    BADGE_COUNT = "badge_count"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# External directory mirrors (read-only for the economy)
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Not a foreign key: orphaned profiles (owner deleted) exist in the wild
    owner_id: Mapped[str | None] = mapped_column(String(64), default=None)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_profiles_owner", "owner_id"),
    )


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class MyPtsAccount(Base):
    """One balance per profile.  ``balance = lifetime_earned − lifetime_spent``."""
    __tablename__ = "mypts_accounts"

    profile_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_transaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    transactions: Mapped[list[MyPtsTransaction]] = relationship(
        back_populates="account", order_by="MyPtsTransaction.id"
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint(
            "balance = lifetime_earned - lifetime_spent",
            name="ck_accounts_balance_identity",
        ),
        Index("ix_accounts_balance_desc", "balance"),
    )

    def __repr__(self) -> str:
        return f"<MyPtsAccount {self.profile_id} balance={self.balance}>"


class MyPtsTransaction(Base):
    """Immutable ledger entry.  Corrections are new reversing entries."""
    __tablename__ = "mypts_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("mypts_accounts.profile_id"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    resulting_balance: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(
        String(20), default=TransactionStatus.COMPLETED, nullable=False
    )
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), default=None)
    reverses_transaction_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("mypts_transactions.id"), unique=True, default=None
    )
    hub_log_id: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[MyPtsAccount] = relationship(back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_transactions_amount_nonzero"),
        Index("ix_transactions_profile_time", "profile_id", "created_at"),
        Index("ix_transactions_reference", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<MyPtsTransaction #{self.id} {self.profile_id} "
            f"{self.type} {self.amount:+d} → {self.resulting_balance}>"
        )


# ---------------------------------------------------------------------------
# Hub: single source of supply truth
# ---------------------------------------------------------------------------
class MyPtsHub(Base):
    """Singleton row (``id = 1``).

    ``version`` is SQLAlchemy's optimistic-lock column: a concurrent writer
    that loaded an older version gets ``StaleDataError`` on flush.
    """
    __tablename__ = "mypts_hub"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total_supply: Mapped[int] = mapped_column(BigInteger, nullable=False)
    circulating_supply: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reserve_supply: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_supply: Mapped[int | None] = mapped_column(BigInteger, default=None)
    value_per_mypt: Mapped[float] = mapped_column(Float, default=0.024)
    last_adjustment: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("reserve_supply >= 0", name="ck_hub_reserve_non_negative"),
        CheckConstraint("circulating_supply >= 0", name="ck_hub_circulating_non_negative"),
        CheckConstraint(
            "total_supply = circulating_supply + reserve_supply",
            name="ck_hub_conservation",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<MyPtsHub total={self.total_supply} circ={self.circulating_supply} "
            f"reserve={self.reserve_supply} v{self.version}>"
        )


class MyPtsHubLog(Base):
    """Append-only record of every supply movement."""
    __tablename__ = "mypts_hub_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    admin_id: Mapped[str | None] = mapped_column(String(64), default=None)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    total_supply_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_supply_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    circulating_supply_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    circulating_supply_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reserve_supply_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reserve_supply_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_hub_logs_action_time", "action", "created_at"),
    )


# ---------------------------------------------------------------------------
# Activity rewards
# ---------------------------------------------------------------------------
class ActivityRewardRule(Base):
    """How many points an activity type pays, and how often."""
    __tablename__ = "activity_reward_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    activity_type: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(40), default="platform_usage")
    points_rewarded: Mapped[int] = mapped_column(Integer, nullable=False)
    # 0 = no cooldown window
    cooldown_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # NULL = unlimited
    max_rewards_per_day: Mapped[int | None] = mapped_column(Integer, default=None)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("points_rewarded >= 0", name="ck_rules_points_non_negative"),
        CheckConstraint("cooldown_seconds >= 0", name="ck_rules_cooldown_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ActivityRewardRule {self.activity_type!r} +{self.points_rewarded}>"


class UserActivity(Base):
    """One row per *rewarded* activity occurrence (the cooldown/cap journal)."""
    __tablename__ = "user_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(60), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    transaction_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("mypts_transactions.id"), default=None
    )

    __table_args__ = (
        Index("ix_user_activities_profile_type_time", "profile_id", "activity_type", "timestamp"),
    )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
class Badge(Base):
    """Badge definition.

    ``requirements`` is ``{"type": RequirementType, "threshold": int,
    "condition": str | None}``.  ``activities`` optionally decomposes the
    badge into ``[{"activity_id", "name", "points", "is_required",
    "criteria": {"type", "threshold", "condition"}}]``.
    """
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    rarity: Mapped[str] = mapped_column(String(20), default=BadgeRarity.COMMON)
    icon: Mapped[str | None] = mapped_column(String(500), default=None)
    requirements: Mapped[dict] = mapped_column(JSONB, default=dict)
    activities: Mapped[list | None] = mapped_column(JSONB, default=None)
    required_activities_count: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Badge #{self.id} {self.name!r}>"


class ProfileBadge(Base):
    """Per-profile badge progress, created lazily on first touch."""
    __tablename__ = "profile_badges"

    profile_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    badge_id: Mapped[int] = mapped_column(ForeignKey("badges.id"), primary_key=True)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    # {badge activity_id: completions}
    activity_counts: Mapped[dict | None] = mapped_column(JSONB, default=None)

    badge: Mapped[Badge] = relationship()

    __table_args__ = (
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_profile_badges_progress"),
        Index("ix_profile_badges_completed", "profile_id", "is_completed"),
    )


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------
class ProfileMilestone(Base):
    __tablename__ = "profile_milestones"

    profile_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_level: Mapped[str] = mapped_column(
        String(20), default=MilestoneLevel.STARTER, nullable=False
    )
    current_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_level: Mapped[str | None] = mapped_column(String(20), default=None)
    next_level_threshold: Mapped[int | None] = mapped_column(Integer, default=None)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    history: Mapped[list[MilestoneHistory]] = relationship(
        order_by="MilestoneHistory.id", cascade="all, delete-orphan"
    )


class MilestoneHistory(Base):
    __tablename__ = "milestone_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profile_milestones.profile_id"), nullable=False
    )
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    achieved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Leaderboard: derived snapshot, rebuildable at any time
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    profile_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_rank: Mapped[int | None] = mapped_column(Integer, default=None)
    mypts_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    milestone_level: Mapped[str] = mapped_column(
        String(20), default=MilestoneLevel.STARTER, nullable=False
    )
    badge_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        Index("ix_leaderboard_rank", "rank"),
        Index("ix_leaderboard_milestone_rank", "milestone_level", "rank"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardEntry #{self.rank} {self.profile_id}>"
