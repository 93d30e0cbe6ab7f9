"""Single owner of customer point balances and the shared transaction ledger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.points import PointsTransaction, PointsTransactionType
from smart_rewards_api.services.errors import (
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)


@dataclass(slots=True)
class PointsMovement:
    """Balance change paired with the ledger row that audits it."""

    customer_id: UUID
    points_delta: int
    balance_after: int
    entry: PointsTransaction


class PointsLedgerService:
    """Mutates balances with atomic SQL expressions and appends ledger entries.

    Every subsystem that touches ``CustomerProfile.points_balance`` goes through
    this service so that debits are compare-and-decrement statements and credits
    are in-database increments. Nothing here commits: callers own the
    transaction boundary so a movement and its ledger row land together.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_balance(self, customer_id: UUID) -> int:
        """Return the customer's current point balance."""

        stmt = select(CustomerProfile.points_balance).where(CustomerProfile.user_id == customer_id)
        balance = (await self._db.execute(stmt)).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return int(balance)

    async def adjust_balance(self, customer_id: UUID, delta: int) -> int:
        """Apply ``delta`` atomically and return the new balance.

        Debits only match rows whose balance covers the amount, so two concurrent
        debits can never overdraw the account.
        """

        if delta == 0:
            raise ValidationError("Balance adjustments require a non-zero delta")

        values: dict[str, Any] = {"points_balance": CustomerProfile.points_balance + delta}
        stmt = update(CustomerProfile).where(CustomerProfile.user_id == customer_id)
        if delta < 0:
            stmt = stmt.where(CustomerProfile.points_balance >= -delta)
        else:
            values["lifetime_points"] = CustomerProfile.lifetime_points + delta

        stmt = (
            stmt.values(**values)
            .returning(CustomerProfile.points_balance)
            .execution_options(synchronize_session=False)
        )
        new_balance = (await self._db.execute(stmt)).scalar_one_or_none()
        if new_balance is None:
            available = await self.get_balance(customer_id)
            logger.info(
                "Rejected points debit",
                customer_id=str(customer_id),
                requested=-delta,
                available=available,
            )
            raise InsufficientBalanceError(
                "Insufficient loyalty points",
                requested=-delta,
                available=available,
            )
        return int(new_balance)

    async def append_entry(
        self,
        *,
        customer_id: UUID,
        transaction_type: PointsTransactionType,
        points_delta: int,
        business_id: UUID | None = None,
        group_id: UUID | None = None,
        balance_after: int | None = None,
        bonus_points: int = 0,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PointsTransaction:
        """Add an audit row to the ledger; storage errors propagate to the caller."""

        entry = PointsTransaction(
            customer_id=customer_id,
            business_id=business_id,
            transaction_type=transaction_type,
            points_delta=points_delta,
            balance_after=balance_after,
            bonus_points=bonus_points,
            mukando_group_id=group_id,
            description=description,
            metadata_json=metadata or {},
        )
        self._db.add(entry)
        await self._db.flush()
        return entry

    async def record_movement(
        self,
        customer_id: UUID,
        delta: int,
        *,
        transaction_type: PointsTransactionType,
        business_id: UUID | None = None,
        group_id: UUID | None = None,
        bonus_points: int = 0,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PointsMovement:
        """Adjust the balance and append the matching ledger entry."""

        balance_after = await self.adjust_balance(customer_id, delta)
        entry = await self.append_entry(
            customer_id=customer_id,
            transaction_type=transaction_type,
            points_delta=delta,
            business_id=business_id,
            group_id=group_id,
            balance_after=balance_after,
            bonus_points=bonus_points,
            description=description,
            metadata=metadata,
        )
        logger.debug(
            "Recorded points movement",
            customer_id=str(customer_id),
            delta=delta,
            transaction_type=transaction_type.value,
            balance_after=balance_after,
        )
        return PointsMovement(
            customer_id=customer_id,
            points_delta=delta,
            balance_after=balance_after,
            entry=entry,
        )

    async def list_entries(
        self,
        customer_id: UUID,
        *,
        transaction_type: PointsTransactionType | None = None,
        group_id: UUID | None = None,
        limit: int = 25,
    ) -> list[PointsTransaction]:
        stmt = select(PointsTransaction).where(PointsTransaction.customer_id == customer_id)
        if transaction_type is not None:
            stmt = stmt.where(PointsTransaction.transaction_type == transaction_type)
        if group_id is not None:
            stmt = stmt.where(PointsTransaction.mukando_group_id == group_id)
        stmt = stmt.order_by(PointsTransaction.created_at.desc()).limit(limit)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["PointsLedgerService", "PointsMovement"]
