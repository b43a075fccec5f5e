"""MyPts baseline schema: ledger, hub, rules, badges, milestones, leaderboard

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e5f"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "mypts_accounts",
        sa.Column("profile_id", sa.String(64), primary_key=True),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_transaction_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        sa.CheckConstraint(
            "balance = lifetime_earned - lifetime_spent",
            name="ck_accounts_balance_identity",
        ),
    )
    op.create_index("ix_accounts_balance_desc", "mypts_accounts", ["balance"])

    op.create_table(
        "mypts_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "profile_id", sa.String(64),
            sa.ForeignKey("mypts_accounts.profile_id"), nullable=False,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("resulting_balance", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("reference_id", sa.String(100), nullable=True),
        sa.Column(
            "reverses_transaction_id", sa.Integer(),
            sa.ForeignKey("mypts_transactions.id"), nullable=True, unique=True,
        ),
        sa.Column("hub_log_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount <> 0", name="ck_transactions_amount_nonzero"),
    )
    op.create_index(
        "ix_transactions_profile_time", "mypts_transactions", ["profile_id", "created_at"]
    )
    op.create_index("ix_transactions_reference", "mypts_transactions", ["reference_id"])

    op.create_table(
        "mypts_hub",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("total_supply", sa.BigInteger(), nullable=False),
        sa.Column("circulating_supply", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reserve_supply", sa.BigInteger(), nullable=False),
        sa.Column("max_supply", sa.BigInteger(), nullable=True),
        sa.Column("value_per_mypt", sa.Float(), server_default="0.024"),
        sa.Column("last_adjustment", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("reserve_supply >= 0", name="ck_hub_reserve_non_negative"),
        sa.CheckConstraint("circulating_supply >= 0", name="ck_hub_circulating_non_negative"),
        sa.CheckConstraint(
            "total_supply = circulating_supply + reserve_supply", name="ck_hub_conservation"
        ),
    )

    op.create_table(
        "mypts_hub_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("admin_id", sa.String(64), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("total_supply_before", sa.BigInteger(), nullable=False),
        sa.Column("total_supply_after", sa.BigInteger(), nullable=False),
        sa.Column("circulating_supply_before", sa.BigInteger(), nullable=False),
        sa.Column("circulating_supply_after", sa.BigInteger(), nullable=False),
        sa.Column("reserve_supply_before", sa.BigInteger(), nullable=False),
        sa.Column("reserve_supply_after", sa.BigInteger(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_hub_logs_action_time", "mypts_hub_logs", ["action", "created_at"])

    op.create_table(
        "activity_reward_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("activity_type", sa.String(60), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(40), nullable=True),
        sa.Column("points_rewarded", sa.Integer(), nullable=False),
        sa.Column("cooldown_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_rewards_per_day", sa.Integer(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("points_rewarded >= 0", name="ck_rules_points_non_negative"),
        sa.CheckConstraint("cooldown_seconds >= 0", name="ck_rules_cooldown_non_negative"),
    )

    op.create_table(
        "user_activities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("profile_id", sa.String(64), nullable=False),
        sa.Column("activity_type", sa.String(60), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "transaction_id", sa.Integer(),
            sa.ForeignKey("mypts_transactions.id"), nullable=True,
        ),
    )
    op.create_index(
        "ix_user_activities_profile_type_time",
        "user_activities",
        ["profile_id", "activity_type", "timestamp"],
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(40), nullable=False),
        sa.Column("rarity", sa.String(20), nullable=True),
        sa.Column("icon", sa.String(500), nullable=True),
        sa.Column("requirements", postgresql.JSONB(), nullable=True),
        sa.Column("activities", postgresql.JSONB(), nullable=True),
        sa.Column("required_activities_count", sa.Integer(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "profile_badges",
        sa.Column("profile_id", sa.String(64), primary_key=True),
        sa.Column("badge_id", sa.Integer(), sa.ForeignKey("badges.id"), primary_key=True),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("activity_counts", postgresql.JSONB(), nullable=True),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_profile_badges_progress"),
    )
    op.create_index(
        "ix_profile_badges_completed", "profile_badges", ["profile_id", "is_completed"]
    )

    op.create_table(
        "profile_milestones",
        sa.Column("profile_id", sa.String(64), primary_key=True),
        sa.Column("current_level", sa.String(20), nullable=False, server_default="Starter"),
        sa.Column("current_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_level", sa.String(20), nullable=True),
        sa.Column("next_level_threshold", sa.Integer(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "milestone_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "profile_id", sa.String(64),
            sa.ForeignKey("profile_milestones.profile_id"), nullable=False,
        ),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("achieved_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "leaderboard_entries",
        sa.Column("profile_id", sa.String(64), primary_key=True),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        sa.Column("mypts_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("milestone_level", sa.String(20), nullable=False, server_default="Starter"),
        sa.Column("badge_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_leaderboard_rank", "leaderboard_entries", ["rank"])
    op.create_index(
        "ix_leaderboard_milestone_rank", "leaderboard_entries", ["milestone_level", "rank"]
    )


def downgrade() -> None:
    op.drop_table("leaderboard_entries")
    op.drop_table("milestone_history")
    op.drop_table("profile_milestones")
    op.drop_table("profile_badges")
    op.drop_table("badges")
    op.drop_table("user_activities")
    op.drop_table("activity_reward_rules")
    op.drop_table("mypts_hub_logs")
    op.drop_table("mypts_hub")
    op.drop_table("mypts_transactions")
    op.drop_table("mypts_accounts")
