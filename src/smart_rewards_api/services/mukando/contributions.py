"""Moves customer points into a savings-group pool."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.mukando import (
    MukandoContribution,
    MukandoGroup,
    MukandoGroupStatus,
    MukandoMember,
)
from smart_rewards_api.models.points import PointsTransactionType
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.errors import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    NotMemberError,
    RewardsError,
    ValidationError,
)
from smart_rewards_api.services.points import PointsLedgerService

from .registry import fetch_group, progress_percentage


_REJECTION_REASONS: dict[type[RewardsError], str] = {
    ValidationError: "invalid_amount",
    InsufficientBalanceError: "insufficient_balance",
    NotFoundError: "not_found",
    InvalidStateError: "group_not_active",
    NotMemberError: "not_member",
}


def compute_bonus(points_amount: int, rate_percent: int | None = None) -> int:
    """Integer bonus accrued by a contribution, rounded down."""

    rate = settings.mukando_bonus_rate_percent if rate_percent is None else rate_percent
    return (int(points_amount) * int(rate)) // 100


@dataclass
class ContributionReceipt:
    contribution_id: UUID
    pool_points: int
    goal_points_required: int
    progress_percentage: float
    remaining_balance: int
    bonus_points: int
    cycle_number: int


class MukandoContributionProcessor:
    """Debits the contributor and credits the group pool in one transaction."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedgerService | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedgerService(db_session)
        self._observability = get_mukando_store()

    async def contribute(
        self,
        group_id: UUID,
        customer_id: UUID,
        points_amount: int,
    ) -> ContributionReceipt:
        """Contribute ``points_amount`` of the customer's balance to the group."""

        try:
            receipt = await self._contribute(group_id, customer_id, points_amount)
            await self._db.commit()
        except RewardsError as exc:
            await self._db.rollback()
            reason = _REJECTION_REASONS.get(type(exc), "rejected")
            self._observability.record_contribution_rejected(reason)
            logger.info(
                "Mukando contribution rejected",
                group_id=str(group_id),
                customer_id=str(customer_id),
                points_amount=points_amount,
                reason=reason,
            )
            raise
        except Exception:
            await self._db.rollback()
            logger.exception(
                "Mukando contribution failed",
                group_id=str(group_id),
                customer_id=str(customer_id),
            )
            raise

        self._observability.record_contribution(points_amount, receipt.bonus_points)
        logger.info(
            "Mukando contribution recorded",
            group_id=str(group_id),
            customer_id=str(customer_id),
            points_amount=points_amount,
            bonus_points=receipt.bonus_points,
            pool_points=receipt.pool_points,
            cycle_number=receipt.cycle_number,
        )
        return receipt

    async def _contribute(
        self,
        group_id: UUID,
        customer_id: UUID,
        points_amount: int,
    ) -> ContributionReceipt:
        if not isinstance(points_amount, int) or isinstance(points_amount, bool) or points_amount <= 0:
            raise ValidationError("points_amount must be a positive integer")

        available = await self._ledger.get_balance(customer_id)
        if available < points_amount:
            raise InsufficientBalanceError(
                "Insufficient loyalty points",
                requested=points_amount,
                available=available,
            )

        group = await fetch_group(self._db, group_id, lock=True)
        if group.status != MukandoGroupStatus.APPROVED:
            raise InvalidStateError("Group is not active", current_status=group.status.value)

        member = (
            await self._db.execute(
                select(MukandoMember).where(
                    MukandoMember.group_id == group_id,
                    MukandoMember.customer_id == customer_id,
                )
            )
        ).scalar_one_or_none()
        if member is None:
            raise NotMemberError("You are not a member of this group")

        bonus = compute_bonus(points_amount)

        # Debit first: the guarded decrement is the authoritative overdraft check.
        movement = await self._ledger.record_movement(
            customer_id,
            -points_amount,
            transaction_type=PointsTransactionType.MUKANDO_CONTRIBUTION,
            business_id=group.business_id,
            group_id=group_id,
            bonus_points=bonus,
            description=f"Mukando contribution to {group.goal_name}",
            metadata={"member_id": str(member.id), "payout_order": member.payout_order},
        )

        group_stmt = (
            update(MukandoGroup)
            .where(
                MukandoGroup.id == group_id,
                MukandoGroup.status == MukandoGroupStatus.APPROVED,
            )
            .values(
                pool_points=MukandoGroup.pool_points + points_amount,
                unpaid_bonus_points=MukandoGroup.unpaid_bonus_points + bonus,
            )
            .returning(
                MukandoGroup.pool_points,
                MukandoGroup.goal_points_required,
                MukandoGroup.rotation_pointer,
            )
            .execution_options(synchronize_session=False)
        )
        row = (await self._db.execute(group_stmt)).one_or_none()
        if row is None:
            raise InvalidStateError("Group is not active")
        pool_points, goal_points_required, rotation_pointer = row

        await self._db.execute(
            update(MukandoMember)
            .where(MukandoMember.id == member.id)
            .values(points_contributed=MukandoMember.points_contributed + points_amount)
            .execution_options(synchronize_session=False)
        )

        contribution = MukandoContribution(
            group_id=group_id,
            member_id=member.id,
            customer_id=customer_id,
            points_amount=points_amount,
            bonus_points=bonus,
            cycle_number=int(rotation_pointer) + 1,
        )
        self._db.add(contribution)
        await self._db.flush()

        return ContributionReceipt(
            contribution_id=contribution.id,
            pool_points=int(pool_points),
            goal_points_required=int(goal_points_required),
            progress_percentage=progress_percentage(pool_points, goal_points_required),
            remaining_balance=movement.balance_after,
            bonus_points=bonus,
            cycle_number=contribution.cycle_number,
        )


__all__ = ["ContributionReceipt", "MukandoContributionProcessor", "compute_bonus"]
