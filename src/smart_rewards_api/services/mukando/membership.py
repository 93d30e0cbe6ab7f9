"""Enrollment of customers into approved savings groups."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.mukando import MukandoGroup, MukandoGroupStatus, MukandoMember
from smart_rewards_api.models.points import PointsTransactionType
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.errors import (
    CapacityError,
    DuplicateMembershipError,
    InvalidStateError,
    NotFoundError,
)
from smart_rewards_api.services.points import PointsLedgerService

from .registry import count_members, fetch_group, progress_percentage


MAX_JOIN_ATTEMPTS = 3


@dataclass
class MukandoGroupSummary:
    """Group plus the derived figures list views need."""

    group: MukandoGroup
    member_count: int
    progress_percentage: float
    spots_remaining: int | None
    is_creator: bool = False
    is_member: bool = False
    points_contributed: int = 0
    payout_order: int | None = None


class MukandoMembershipService:
    """Assigns payout slots strictly in join order."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedgerService | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedgerService(db_session)
        self._observability = get_mukando_store()

    async def join_group(self, group_id: UUID, customer_id: UUID) -> MukandoMember:
        """Enroll a customer, giving them the next free payout slot."""

        for attempt in range(1, MAX_JOIN_ATTEMPTS + 1):
            try:
                member = await self._join_once(group_id, customer_id)
                await self._db.commit()
            except IntegrityError:
                # Lost a race for the (group, customer) or (group, payout_order) slot.
                await self._db.rollback()
                if await self._find_membership(group_id, customer_id) is not None:
                    raise DuplicateMembershipError("You are already a member of this group")
                if attempt >= MAX_JOIN_ATTEMPTS:
                    raise
                logger.warning(
                    "Retrying mukando join after payout slot conflict",
                    group_id=str(group_id),
                    customer_id=str(customer_id),
                    attempt=attempt,
                )
                continue
            except Exception:
                await self._db.rollback()
                raise

            await self._db.refresh(member)
            self._observability.record_lifecycle_event("member_joined")
            logger.info(
                "Customer joined mukando group",
                group_id=str(group_id),
                customer_id=str(customer_id),
                payout_order=member.payout_order,
            )
            return member

        raise RuntimeError("unreachable")  # pragma: no cover

    async def _join_once(self, group_id: UUID, customer_id: UUID) -> MukandoMember:
        group = await fetch_group(self._db, group_id, lock=True)
        if group.status != MukandoGroupStatus.APPROVED:
            raise InvalidStateError("Group is not open for enrollment", current_status=group.status.value)

        if await self._db.get(CustomerProfile, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        if await self._find_membership(group_id, customer_id) is not None:
            raise DuplicateMembershipError("You are already a member of this group")

        member_count = await count_members(self._db, group_id)
        if group.max_members is not None and member_count >= group.max_members:
            raise CapacityError("Group is full")

        member = MukandoMember(
            group_id=group_id,
            customer_id=customer_id,
            payout_order=member_count,
        )
        self._db.add(member)
        await self._db.flush()

        bonus = settings.mukando_join_bonus_points
        if bonus > 0:
            await self._ledger.record_movement(
                customer_id,
                bonus,
                transaction_type=PointsTransactionType.EARN,
                business_id=group.business_id,
                group_id=group_id,
                description="Joining a Mukando group",
                metadata={"activity": "join_mukando"},
            )
        return member

    async def list_members(self, group_id: UUID) -> list[MukandoMember]:
        """Members in payout order."""

        stmt = (
            select(MukandoMember)
            .where(MukandoMember.group_id == group_id)
            .order_by(MukandoMember.payout_order.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_my_groups(
        self,
        customer_id: UUID,
        *,
        status: MukandoGroupStatus | None = None,
    ) -> list[MukandoGroupSummary]:
        """Groups the customer created or belongs to, newest first."""

        membership_subquery = select(MukandoMember.group_id).where(MukandoMember.customer_id == customer_id)
        stmt = select(MukandoGroup).where(
            or_(
                MukandoGroup.creator_id == customer_id,
                MukandoGroup.id.in_(membership_subquery),
            )
        )
        if status is not None:
            stmt = stmt.where(MukandoGroup.status == status)
        stmt = stmt.order_by(MukandoGroup.created_at.desc())
        groups = list((await self._db.execute(stmt)).scalars().all())

        counts = await self._member_counts([group.id for group in groups])
        memberships = {
            member.group_id: member
            for member in (
                await self._db.execute(
                    select(MukandoMember).where(MukandoMember.customer_id == customer_id)
                )
            ).scalars()
        }

        summaries: list[MukandoGroupSummary] = []
        for group in groups:
            membership = memberships.get(group.id)
            summary = self._summarize(group, counts.get(group.id, 0))
            summary.is_creator = group.creator_id == customer_id
            summary.is_member = membership is not None
            summary.points_contributed = int(membership.points_contributed or 0) if membership else 0
            summary.payout_order = membership.payout_order if membership else None
            summaries.append(summary)
        return summaries

    async def list_available_groups(
        self,
        customer_id: UUID,
        *,
        business_id: UUID | None = None,
    ) -> list[MukandoGroupSummary]:
        """Approved groups the customer could still join."""

        joined = select(MukandoMember.group_id).where(MukandoMember.customer_id == customer_id)
        stmt = select(MukandoGroup).where(
            MukandoGroup.status == MukandoGroupStatus.APPROVED,
            MukandoGroup.id.not_in(joined),
        )
        if business_id is not None:
            stmt = stmt.where(MukandoGroup.business_id == business_id)
        stmt = stmt.order_by(MukandoGroup.created_at.desc())
        groups = list((await self._db.execute(stmt)).scalars().all())

        counts = await self._member_counts([group.id for group in groups])
        available: list[MukandoGroupSummary] = []
        for group in groups:
            summary = self._summarize(group, counts.get(group.id, 0))
            if summary.spots_remaining is not None and summary.spots_remaining <= 0:
                continue
            summary.is_creator = group.creator_id == customer_id
            available.append(summary)

        logger.debug(
            "Fetched available mukando groups",
            customer_id=str(customer_id),
            business_id=str(business_id) if business_id else None,
            count=len(available),
        )
        return available

    async def summarize_group(self, group: MukandoGroup) -> MukandoGroupSummary:
        return self._summarize(group, await count_members(self._db, group.id))

    async def _find_membership(self, group_id: UUID, customer_id: UUID) -> MukandoMember | None:
        stmt = select(MukandoMember).where(
            MukandoMember.group_id == group_id,
            MukandoMember.customer_id == customer_id,
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _member_counts(self, group_ids: list[UUID]) -> dict[UUID, int]:
        if not group_ids:
            return {}
        stmt = (
            select(MukandoMember.group_id, func.count(MukandoMember.id))
            .where(MukandoMember.group_id.in_(group_ids))
            .group_by(MukandoMember.group_id)
        )
        counts: dict[UUID, int] = defaultdict(int)
        for group_id, total in (await self._db.execute(stmt)).all():
            counts[group_id] = int(total)
        return counts

    @staticmethod
    def _summarize(group: MukandoGroup, member_count: int) -> MukandoGroupSummary:
        spots_remaining = None
        if group.max_members is not None:
            spots_remaining = max(int(group.max_members) - member_count, 0)
        return MukandoGroupSummary(
            group=group,
            member_count=member_count,
            progress_percentage=progress_percentage(group.pool_points, group.goal_points_required),
            spots_remaining=spots_remaining,
        )


__all__ = ["MukandoGroupSummary", "MukandoMembershipService"]
