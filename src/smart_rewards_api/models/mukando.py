"""Mukando rotating-savings group models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from smart_rewards_api.db.base import Base


class MukandoGroupStatus(str, Enum):
    """Lifecycle statuses for savings groups."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MukandoContributionInterval(str, Enum):
    """Contribution cadence agreed when the group is requested."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MukandoGroup(Base):
    """Savings group hosted by a business and created by a customer."""

    __tablename__ = "mukando_groups"
    __table_args__ = (
        CheckConstraint("goal_points_required > 0", name="goal_points_positive"),
        CheckConstraint("term_months > 0", name="term_months_positive"),
        CheckConstraint("rotation_pointer >= 0", name="rotation_pointer_non_negative"),
        CheckConstraint("unpaid_bonus_points >= 0", name="unpaid_bonus_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    creator_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_profiles.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("business_profiles.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal_name = Column(String, nullable=False)
    goal_points_required = Column(Integer, nullable=False)
    contribution_interval = Column(
        SqlEnum(
            MukandoContributionInterval,
            name="mukando_contribution_interval",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    term_months = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(
            MukandoGroupStatus,
            name="mukando_group_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=MukandoGroupStatus.PENDING_APPROVAL,
        server_default=MukandoGroupStatus.PENDING_APPROVAL.value,
        index=True,
    )
    max_members = Column(Integer, nullable=True)
    discount_rate = Column(Numeric(5, 2), nullable=True)
    pool_points = Column(Integer, nullable=False, default=0, server_default="0")
    unpaid_bonus_points = Column(Integer, nullable=False, default=0, server_default="0")
    rotation_pointer = Column(Integer, nullable=False, default=0, server_default="0")
    decline_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    last_payout_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    members = relationship(
        "MukandoMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="MukandoMember.payout_order",
    )
    contributions = relationship(
        "MukandoContribution",
        back_populates="group",
        cascade="all, delete-orphan",
    )


class MukandoMember(Base):
    """Enrollment of a customer in a group with a fixed payout slot."""

    __tablename__ = "mukando_members"
    __table_args__ = (
        UniqueConstraint("group_id", "customer_id", name="uq_mukando_members_group_customer"),
        UniqueConstraint("group_id", "payout_order", name="uq_mukando_members_group_payout_order"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    group_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mukando_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customer_profiles.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payout_order = Column(Integer, nullable=False)
    points_contributed = Column(Integer, nullable=False, default=0, server_default="0")
    rewards_received = Column(Integer, nullable=False, default=0, server_default="0")
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("MukandoGroup", back_populates="members")
    contributions = relationship("MukandoContribution", back_populates="member")


class MukandoContribution(Base):
    """Immutable record of one contribution into a group pool."""

    __tablename__ = "mukando_contributions"
    __table_args__ = (
        CheckConstraint("points_amount > 0", name="points_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    group_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mukando_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mukando_members.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    points_amount = Column(Integer, nullable=False)
    bonus_points = Column(Integer, nullable=False, default=0, server_default="0")
    cycle_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("MukandoGroup", back_populates="contributions")
    member = relationship("MukandoMember", back_populates="contributions")


__all__ = [
    "MukandoContribution",
    "MukandoContributionInterval",
    "MukandoGroup",
    "MukandoGroupStatus",
    "MukandoMember",
]
