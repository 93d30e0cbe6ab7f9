"""Shared points ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from smart_rewards_api.db.base import Base


class PointsTransactionType(str, Enum):
    """Kinds of point movement recorded on the ledger."""

    EARN = "earn"
    REDEEM = "redeem"
    ADJUSTMENT = "adjustment"
    MUKANDO_CONTRIBUTION = "mukando_contribution"
    MUKANDO_PAYOUT = "mukando_payout"


class PointsTransaction(Base):
    """Append-only audit record of every balance movement."""

    __tablename__ = "points_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_profiles.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("business_profiles.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    transaction_type = Column(
        SqlEnum(
            PointsTransactionType,
            name="points_transaction_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    points_delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=True)
    bonus_points = Column(Integer, nullable=False, default=0, server_default="0")
    mukando_group_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mukando_groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
