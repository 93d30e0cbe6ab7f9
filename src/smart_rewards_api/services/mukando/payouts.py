"""Rotating distribution of accrued group bonuses to members."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.mukando import (
    MukandoContributionInterval,
    MukandoGroup,
    MukandoGroupStatus,
    MukandoMember,
)
from smart_rewards_api.models.points import PointsTransactionType
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.errors import InvalidStateError
from smart_rewards_api.services.points import PointsLedgerService

from .registry import MukandoGroupRegistry, fetch_group

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

_CADENCE_DAYS = {
    MukandoContributionInterval.WEEKLY: 7,
    MukandoContributionInterval.MONTHLY: 30,
}


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (SQLite) as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def payout_interval(interval: MukandoContributionInterval | None) -> timedelta:
    override = settings.mukando_payout_min_interval_days
    if override is not None:
        return timedelta(days=override)
    return timedelta(days=_CADENCE_DAYS.get(interval, 30))


def payout_anchor(group: MukandoGroup) -> datetime | None:
    return as_utc(group.last_payout_at or group.approved_at or group.created_at)


def is_payout_due(group: MukandoGroup, now: datetime) -> bool:
    anchor = payout_anchor(group)
    if anchor is None:
        return True
    return as_utc(now) - anchor >= payout_interval(group.contribution_interval)


@dataclass
class PayoutResult:
    group_id: UUID
    recipient_customer_id: UUID
    member_id: UUID
    points_distributed: int
    rotation_pointer: int
    is_completed: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "group_id": str(self.group_id),
            "recipient_customer_id": str(self.recipient_customer_id),
            "member_id": str(self.member_id),
            "points_distributed": self.points_distributed,
            "rotation_pointer": self.rotation_pointer,
            "is_completed": self.is_completed,
        }


@dataclass
class PayoutSweepSummary:
    evaluated: int = 0
    distributed: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[PayoutResult] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "distributed": self.distributed,
            "skipped": self.skipped,
            "failed": self.failed,
            "points_distributed": sum(result.points_distributed for result in self.results),
            "results": [result.as_dict() for result in self.results],
            "errors": list(self.errors),
        }


@dataclass
class ReadyGroup:
    """Monitoring row for a group holding undistributed bonus."""

    group: MukandoGroup
    member_count: int
    next_recipient_customer_id: UUID | None
    next_payout_at: datetime | None
    is_due: bool


class MukandoPayoutScheduler:
    """Pays each group's unpaid bonus to the member whose turn it is."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedgerService | None = None,
        registry: MukandoGroupRegistry | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedgerService(db_session)
        self._registry = registry or MukandoGroupRegistry(db_session)
        self._observability = get_mukando_store()

    async def list_eligible_groups(
        self,
        now: datetime | None = None,
        *,
        limit: int | None = None,
    ) -> list[MukandoGroup]:
        """Approved groups with unpaid bonus whose payout interval has elapsed."""

        reference = as_utc(now) or datetime.now(timezone.utc)
        stmt = (
            select(MukandoGroup)
            .where(
                MukandoGroup.status == MukandoGroupStatus.APPROVED,
                MukandoGroup.unpaid_bonus_points > 0,
            )
            .order_by(MukandoGroup.created_at.asc())
        )
        groups = (await self._db.execute(stmt)).scalars().all()
        eligible = [group for group in groups if is_payout_due(group, reference)]
        if limit is not None:
            eligible = eligible[:limit]
        return eligible

    async def distribute(self, group_id: UUID, now: datetime | None = None) -> PayoutResult | None:
        """Pay the current recipient and advance the rotation.

        Returns ``None`` when there is nothing to pay. The group update only
        matches the pointer and bonus values read under the lock, so a second
        attempt for the same turn matches no row and rolls back.
        """

        paid_at = as_utc(now) or datetime.now(timezone.utc)
        try:
            result = await self._distribute(group_id, paid_at)
            if result is None:
                await self._db.rollback()
                return None
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        self._observability.record_payout(result.points_distributed, completed=result.is_completed)
        logger.info(
            "Mukando payout distributed",
            group_id=str(group_id),
            recipient_customer_id=str(result.recipient_customer_id),
            points_distributed=result.points_distributed,
            rotation_pointer=result.rotation_pointer,
            is_completed=result.is_completed,
        )
        return result

    async def _distribute(self, group_id: UUID, paid_at: datetime) -> PayoutResult | None:
        group = await fetch_group(self._db, group_id, lock=True)
        if group.status != MukandoGroupStatus.APPROVED:
            logger.debug("Skipping payout for inactive group", group_id=str(group_id), status=group.status.value)
            return None

        bonus = int(group.unpaid_bonus_points or 0)
        if bonus <= 0:
            return None

        members = (
            await self._db.execute(
                select(MukandoMember)
                .where(MukandoMember.group_id == group_id)
                .order_by(MukandoMember.payout_order.asc())
            )
        ).scalars().all()
        if not members:
            logger.debug("Skipping payout for group without members", group_id=str(group_id))
            return None

        pointer = int(group.rotation_pointer or 0)
        recipient = members[pointer % len(members)]
        new_pointer = pointer + 1

        guarded = await self._db.execute(
            update(MukandoGroup)
            .where(
                MukandoGroup.id == group_id,
                MukandoGroup.status == MukandoGroupStatus.APPROVED,
                MukandoGroup.rotation_pointer == pointer,
                MukandoGroup.unpaid_bonus_points == bonus,
            )
            .values(
                rotation_pointer=new_pointer,
                unpaid_bonus_points=0,
                last_payout_at=paid_at,
            )
            .execution_options(synchronize_session=False)
        )
        if guarded.rowcount != 1:
            raise InvalidStateError(f"Mukando group {group_id} changed during payout")

        await self._ledger.record_movement(
            recipient.customer_id,
            bonus,
            transaction_type=PointsTransactionType.MUKANDO_PAYOUT,
            business_id=group.business_id,
            group_id=group_id,
            description=f"Mukando payout from {group.goal_name}",
            metadata={"member_id": str(recipient.id), "cycle_number": new_pointer},
        )
        await self._db.execute(
            update(MukandoMember)
            .where(MukandoMember.id == recipient.id)
            .values(rewards_received=MukandoMember.rewards_received + bonus)
            .execution_options(synchronize_session=False)
        )

        is_completed = new_pointer >= len(members)
        if is_completed:
            await self._registry.complete_group(group_id, now=paid_at)

        return PayoutResult(
            group_id=group_id,
            recipient_customer_id=recipient.customer_id,
            member_id=recipient.id,
            points_distributed=bonus,
            rotation_pointer=new_pointer,
            is_completed=is_completed,
        )

    async def preview_ready_groups(self, now: datetime | None = None) -> list[ReadyGroup]:
        """Approved groups holding unpaid bonus, with the next recipient."""

        reference = as_utc(now) or datetime.now(timezone.utc)
        stmt = (
            select(MukandoGroup)
            .where(
                MukandoGroup.status == MukandoGroupStatus.APPROVED,
                MukandoGroup.unpaid_bonus_points > 0,
            )
            .order_by(MukandoGroup.created_at.asc())
        )
        groups = (await self._db.execute(stmt)).scalars().all()

        ready: list[ReadyGroup] = []
        for group in groups:
            members = (
                await self._db.execute(
                    select(MukandoMember)
                    .where(MukandoMember.group_id == group.id)
                    .order_by(MukandoMember.payout_order.asc())
                )
            ).scalars().all()
            next_recipient = None
            if members:
                next_recipient = members[int(group.rotation_pointer or 0) % len(members)].customer_id
            anchor = payout_anchor(group)
            ready.append(
                ReadyGroup(
                    group=group,
                    member_count=len(members),
                    next_recipient_customer_id=next_recipient,
                    next_payout_at=anchor + payout_interval(group.contribution_interval) if anchor else None,
                    is_due=is_payout_due(group, reference),
                )
            )
        return ready


async def _open_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


async def run_payout_sweep(
    session_factory: SessionFactory,
    *,
    now: datetime | None = None,
    limit: int | None = None,
) -> PayoutSweepSummary:
    """Distribute every due group, each in its own session and transaction."""

    reference = as_utc(now) or datetime.now(timezone.utc)
    store = get_mukando_store()
    summary = PayoutSweepSummary()

    async with await _open_session(session_factory) as session:
        eligible = await MukandoPayoutScheduler(session).list_eligible_groups(reference, limit=limit)
        group_ids = [group.id for group in eligible]

    summary.evaluated = len(group_ids)
    for group_id in group_ids:
        try:
            async with await _open_session(session_factory) as session:
                result = await MukandoPayoutScheduler(session).distribute(group_id, reference)
        except Exception as exc:  # noqa: BLE001
            summary.failed += 1
            summary.errors.append({"group_id": str(group_id), "error": str(exc)})
            store.record_payout_failure()
            logger.exception("Mukando payout failed", group_id=str(group_id))
            continue

        if result is None:
            summary.skipped += 1
        else:
            summary.distributed += 1
            summary.results.append(result)

    store.record_sweep(evaluated=summary.evaluated)
    logger.bind(summary=summary.as_dict()).info("Mukando payout sweep completed")
    return summary


__all__ = [
    "MukandoPayoutScheduler",
    "PayoutResult",
    "PayoutSweepSummary",
    "ReadyGroup",
    "as_utc",
    "is_payout_due",
    "payout_interval",
    "run_payout_sweep",
]
