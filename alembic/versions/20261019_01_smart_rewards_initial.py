"""Users, profiles, points ledger and Mukando savings groups.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


group_status_enum = sa.Enum(
    "pending_approval",
    "approved",
    "completed",
    "cancelled",
    name="mukando_group_status",
)
contribution_interval_enum = sa.Enum("weekly", "monthly", name="mukando_contribution_interval")
transaction_type_enum = sa.Enum(
    "earn",
    "redeem",
    "adjustment",
    "mukando_contribution",
    "mukando_payout",
    name="points_transaction_type",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="customer"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "customer_profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("points_balance >= 0", name="ck_customer_profiles_points_balance_non_negative"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_customer_profiles_user_id_users", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_customer_profiles"),
    )

    op.create_table(
        "business_profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_name", sa.String(), nullable=False),
        sa.Column("business_category", sa.String(), nullable=False, server_default="general"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_business_profiles_user_id_users", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_business_profiles"),
    )

    op.create_table(
        "mukando_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("goal_name", sa.String(), nullable=False),
        sa.Column("goal_points_required", sa.Integer(), nullable=False),
        sa.Column("contribution_interval", contribution_interval_enum, nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("status", group_status_enum, nullable=False, server_default="pending_approval"),
        sa.Column("max_members", sa.Integer(), nullable=True),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("pool_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unpaid_bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rotation_pointer", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("decline_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("goal_points_required > 0", name="ck_mukando_groups_goal_points_positive"),
        sa.CheckConstraint("term_months > 0", name="ck_mukando_groups_term_months_positive"),
        sa.CheckConstraint("rotation_pointer >= 0", name="ck_mukando_groups_rotation_pointer_non_negative"),
        sa.CheckConstraint("unpaid_bonus_points >= 0", name="ck_mukando_groups_unpaid_bonus_non_negative"),
        sa.ForeignKeyConstraint(
            ["creator_id"],
            ["customer_profiles.user_id"],
            name="fk_mukando_groups_creator_id_customer_profiles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["business_profiles.user_id"],
            name="fk_mukando_groups_business_id_business_profiles",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_mukando_groups"),
    )
    op.create_index("ix_mukando_groups_creator_id", "mukando_groups", ["creator_id"])
    op.create_index("ix_mukando_groups_business_id", "mukando_groups", ["business_id"])
    op.create_index("ix_mukando_groups_status", "mukando_groups", ["status"])

    op.create_table(
        "mukando_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("payout_order", sa.Integer(), nullable=False),
        sa.Column("points_contributed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rewards_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["group_id"], ["mukando_groups.id"], name="fk_mukando_members_group_id_mukando_groups", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customer_profiles.user_id"],
            name="fk_mukando_members_customer_id_customer_profiles",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_mukando_members"),
        sa.UniqueConstraint("group_id", "customer_id", name="uq_mukando_members_group_customer"),
        sa.UniqueConstraint("group_id", "payout_order", name="uq_mukando_members_group_payout_order"),
    )
    op.create_index("ix_mukando_members_group_id", "mukando_members", ["group_id"])
    op.create_index("ix_mukando_members_customer_id", "mukando_members", ["customer_id"])

    op.create_table(
        "mukando_contributions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("points_amount", sa.Integer(), nullable=False),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cycle_number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points_amount > 0", name="ck_mukando_contributions_points_amount_positive"),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["mukando_groups.id"],
            name="fk_mukando_contributions_group_id_mukando_groups",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["mukando_members.id"],
            name="fk_mukando_contributions_member_id_mukando_members",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_mukando_contributions"),
    )
    op.create_index("ix_mukando_contributions_group_id", "mukando_contributions", ["group_id"])
    op.create_index("ix_mukando_contributions_customer_id", "mukando_contributions", ["customer_id"])

    op.create_table(
        "points_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("transaction_type", transaction_type_enum, nullable=False),
        sa.Column("points_delta", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=True),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mukando_group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["customer_id"],
            ["customer_profiles.user_id"],
            name="fk_points_transactions_customer_id_customer_profiles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["business_profiles.user_id"],
            name="fk_points_transactions_business_id_business_profiles",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["mukando_group_id"],
            ["mukando_groups.id"],
            name="fk_points_transactions_mukando_group_id_mukando_groups",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_points_transactions"),
    )
    op.create_index("ix_points_transactions_customer_id", "points_transactions", ["customer_id"])
    op.create_index("ix_points_transactions_business_id", "points_transactions", ["business_id"])
    op.create_index("ix_points_transactions_mukando_group_id", "points_transactions", ["mukando_group_id"])


def downgrade() -> None:
    op.drop_index("ix_points_transactions_mukando_group_id", table_name="points_transactions")
    op.drop_index("ix_points_transactions_business_id", table_name="points_transactions")
    op.drop_index("ix_points_transactions_customer_id", table_name="points_transactions")
    op.drop_table("points_transactions")
    op.drop_index("ix_mukando_contributions_customer_id", table_name="mukando_contributions")
    op.drop_index("ix_mukando_contributions_group_id", table_name="mukando_contributions")
    op.drop_table("mukando_contributions")
    op.drop_index("ix_mukando_members_customer_id", table_name="mukando_members")
    op.drop_index("ix_mukando_members_group_id", table_name="mukando_members")
    op.drop_table("mukando_members")
    op.drop_index("ix_mukando_groups_status", table_name="mukando_groups")
    op.drop_index("ix_mukando_groups_business_id", table_name="mukando_groups")
    op.drop_index("ix_mukando_groups_creator_id", table_name="mukando_groups")
    op.drop_table("mukando_groups")
    op.drop_table("business_profiles")
    op.drop_table("customer_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    transaction_type_enum.drop(bind, checkfirst=True)
    contribution_interval_enum.drop(bind, checkfirst=True)
    group_status_enum.drop(bind, checkfirst=True)
