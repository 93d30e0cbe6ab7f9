"""Savings-group creation, approval and status transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.business_profile import BusinessProfile
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.mukando import (
    MukandoContributionInterval,
    MukandoGroup,
    MukandoGroupStatus,
    MukandoMember,
)
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.errors import (
    GroupPermissionError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def progress_percentage(pool_points: int | None, goal_points_required: int | None) -> float:
    """Goal progress as a percentage; deliberately not capped at 100."""

    goal = int(goal_points_required or 0)
    if goal <= 0:
        return 0.0
    return round(int(pool_points or 0) / goal * 100, 2)


async def fetch_group(db: AsyncSession, group_id: UUID, *, lock: bool = False) -> MukandoGroup:
    """Load a group or raise ``NotFoundError``; ``lock`` takes a row lock where supported."""

    stmt = select(MukandoGroup).where(MukandoGroup.id == group_id)
    if lock:
        stmt = stmt.with_for_update()
    group = (await db.execute(stmt)).scalar_one_or_none()
    if group is None:
        raise NotFoundError(f"Mukando group {group_id} not found")
    return group


async def count_members(db: AsyncSession, group_id: UUID) -> int:
    stmt = select(func.count(MukandoMember.id)).where(MukandoMember.group_id == group_id)
    return int((await db.execute(stmt)).scalar_one())


class MukandoGroupRegistry:
    """Owns the ``status`` column of savings groups."""

    _ALLOWED_TRANSITIONS: dict[MukandoGroupStatus, set[MukandoGroupStatus]] = {
        MukandoGroupStatus.PENDING_APPROVAL: {
            MukandoGroupStatus.APPROVED,
            MukandoGroupStatus.CANCELLED,
        },
        MukandoGroupStatus.APPROVED: {
            MukandoGroupStatus.COMPLETED,
            MukandoGroupStatus.CANCELLED,
        },
        MukandoGroupStatus.COMPLETED: set(),
        MukandoGroupStatus.CANCELLED: set(),
    }

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._observability = get_mukando_store()

    async def create_group_request(
        self,
        *,
        creator_id: UUID,
        business_id: UUID,
        goal_name: str,
        goal_points_required: int,
        contribution_interval: MukandoContributionInterval | str,
        term_months: int,
    ) -> MukandoGroup:
        """Record a customer's request for a new group, pending business approval."""

        name = (goal_name or "").strip()
        if not name:
            raise ValidationError("goal_name is required")
        if int(goal_points_required) <= 0:
            raise ValidationError("goal_points_required must be positive")
        if int(term_months) <= 0:
            raise ValidationError("term_months must be positive")
        interval = self._parse_interval(contribution_interval)

        if await self._db.get(CustomerProfile, creator_id) is None:
            raise NotFoundError(f"Customer {creator_id} not found")
        if await self._db.get(BusinessProfile, business_id) is None:
            raise NotFoundError(f"Business {business_id} not found")

        group = MukandoGroup(
            creator_id=creator_id,
            business_id=business_id,
            goal_name=name,
            goal_points_required=int(goal_points_required),
            contribution_interval=interval,
            term_months=int(term_months),
            status=MukandoGroupStatus.PENDING_APPROVAL,
        )
        self._db.add(group)
        await self._db.commit()
        await self._db.refresh(group)

        self._observability.record_lifecycle_event("requested")
        logger.info(
            "Mukando group requested",
            group_id=str(group.id),
            creator_id=str(creator_id),
            business_id=str(business_id),
            goal_points_required=group.goal_points_required,
            contribution_interval=interval.value,
        )
        return group

    async def approve_group(
        self,
        group_id: UUID,
        *,
        business_id: UUID,
        max_members: int | None,
        discount_rate: Decimal | float | int,
    ) -> MukandoGroup:
        """Approve a pending group with business-chosen capacity and discount."""

        if max_members is not None and int(max_members) < 1:
            raise ValidationError("max_members must be at least 1")
        rate = self._parse_discount_rate(discount_rate)

        try:
            group = await fetch_group(self._db, group_id, lock=True)
            self._ensure_owner(group, business_id)
            self._ensure_transition(group, MukandoGroupStatus.APPROVED)

            now = _utcnow()
            group.status = MukandoGroupStatus.APPROVED
            group.max_members = int(max_members) if max_members is not None else None
            group.discount_rate = rate
            group.approved_at = now

            if settings.mukando_auto_enroll_creator:
                self._db.add(
                    MukandoMember(
                        group_id=group.id,
                        customer_id=group.creator_id,
                        payout_order=0,
                        joined_at=now,
                    )
                )

            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        await self._db.refresh(group)
        self._observability.record_lifecycle_event("approved")
        logger.info(
            "Mukando group approved",
            group_id=str(group.id),
            business_id=str(business_id),
            max_members=group.max_members,
            discount_rate=str(rate),
            creator_enrolled=settings.mukando_auto_enroll_creator,
        )
        return group

    async def decline_group(
        self,
        group_id: UUID,
        *,
        business_id: UUID,
        reason: str | None = None,
    ) -> MukandoGroup:
        """Business declines a pending request; the group ends as cancelled."""

        try:
            group = await fetch_group(self._db, group_id, lock=True)
            self._ensure_owner(group, business_id)
            if group.status != MukandoGroupStatus.PENDING_APPROVAL:
                raise InvalidStateError(
                    "Only pending groups can be declined",
                    current_status=group.status.value,
                )
            group.status = MukandoGroupStatus.CANCELLED
            group.decline_reason = reason
            group.cancelled_at = _utcnow()
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        await self._db.refresh(group)
        self._observability.record_lifecycle_event("declined")
        logger.info("Mukando group declined", group_id=str(group.id), business_id=str(business_id))
        return group

    async def cancel_group(self, group_id: UUID, *, reason: str | None = None) -> MukandoGroup:
        """Terminate a pending or running group early (operator action)."""

        try:
            group = await fetch_group(self._db, group_id, lock=True)
            self._ensure_transition(group, MukandoGroupStatus.CANCELLED)
            group.status = MukandoGroupStatus.CANCELLED
            group.decline_reason = reason
            group.cancelled_at = _utcnow()
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        await self._db.refresh(group)
        self._observability.record_lifecycle_event("cancelled")
        logger.warning("Mukando group cancelled", group_id=str(group.id), reason=reason)
        return group

    async def complete_group(self, group_id: UUID, *, now: datetime | None = None) -> None:
        """Mark a running group completed inside the caller's transaction."""

        completed_at = now or _utcnow()
        stmt = (
            update(MukandoGroup)
            .where(
                MukandoGroup.id == group_id,
                MukandoGroup.status == MukandoGroupStatus.APPROVED,
            )
            .values(status=MukandoGroupStatus.COMPLETED, completed_at=completed_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount != 1:
            raise InvalidStateError(f"Mukando group {group_id} is not running")
        self._observability.record_lifecycle_event("completed")
        logger.info("Mukando group completed", group_id=str(group_id))

    async def get_group(self, group_id: UUID) -> MukandoGroup:
        return await fetch_group(self._db, group_id)

    async def list_business_groups(
        self,
        business_id: UUID,
        *,
        status: MukandoGroupStatus | None = None,
    ) -> list[MukandoGroup]:
        """Groups hosted by a business, newest first."""

        stmt = select(MukandoGroup).where(MukandoGroup.business_id == business_id)
        if status is not None:
            stmt = stmt.where(MukandoGroup.status == status)
        stmt = stmt.order_by(MukandoGroup.created_at.desc())
        result = await self._db.execute(stmt)
        groups = list(result.scalars().all())
        logger.debug("Fetched business mukando groups", business_id=str(business_id), count=len(groups))
        return groups

    @staticmethod
    def _ensure_owner(group: MukandoGroup, business_id: UUID) -> None:
        if group.business_id != business_id:
            raise GroupPermissionError("This group does not belong to your business")

    def _ensure_transition(self, group: MukandoGroup, target: MukandoGroupStatus) -> None:
        allowed = self._ALLOWED_TRANSITIONS.get(group.status, set())
        if target not in allowed:
            raise InvalidStateError(
                f"Cannot transition group from {group.status.value} to {target.value}",
                current_status=group.status.value,
            )

    @staticmethod
    def _parse_interval(value: MukandoContributionInterval | str) -> MukandoContributionInterval:
        raw = value.value if isinstance(value, MukandoContributionInterval) else str(value or "").strip().lower()
        if raw not in settings.mukando_interval_options:
            raise ValidationError(f"Unsupported contribution interval: {value}")
        try:
            return MukandoContributionInterval(raw)
        except ValueError as exc:
            raise ValidationError(f"Unsupported contribution interval: {value}") from exc

    @staticmethod
    def _parse_discount_rate(value: Decimal | float | int) -> Decimal:
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValidationError("discount_rate must be numeric") from exc
        if rate < 0 or rate > 100:
            raise ValidationError("discount_rate must be between 0 and 100")
        return rate


__all__ = ["MukandoGroupRegistry", "count_members", "fetch_group", "progress_percentage"]
