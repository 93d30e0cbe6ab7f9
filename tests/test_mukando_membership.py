from uuid import uuid4

import pytest

from sqlalchemy import select

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.mukando import MukandoGroupStatus
from smart_rewards_api.models.points import PointsTransaction, PointsTransactionType
from smart_rewards_api.services.errors import (
    CapacityError,
    DuplicateMembershipError,
    InvalidStateError,
    NotFoundError,
)
from smart_rewards_api.services.mukando import MukandoContributionProcessor, MukandoMembershipService


@pytest.mark.asyncio
async def test_members_receive_payout_order_in_join_sequence(session_factory, seeder) -> None:
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id, max_members=3)
    joiners = [await seeder.customer(name=name) for name in ("Ana", "Ben", "Chi")]

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        joined = [await service.join_group(group_id, customer_id) for customer_id in joiners]
        listed = await service.list_members(group_id)

    assert [member.payout_order for member in joined] == [0, 1, 2]
    assert [member.customer_id for member in listed] == joiners


@pytest.mark.asyncio
async def test_duplicate_join_is_rejected(session_factory, seeder) -> None:
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    customer_id = await seeder.customer()

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        await service.join_group(group_id, customer_id)
        with pytest.raises(DuplicateMembershipError):
            await service.join_group(group_id, customer_id)
        assert len(await service.list_members(group_id)) == 1


@pytest.mark.asyncio
async def test_capacity_is_enforced(session_factory, seeder) -> None:
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id, max_members=2)
    first, second, third = [await seeder.customer() for _ in range(3)]

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        await service.join_group(group_id, first)
        await service.join_group(group_id, second)
        with pytest.raises(CapacityError):
            await service.join_group(group_id, third)
        assert len(await service.list_members(group_id)) == 2


@pytest.mark.asyncio
async def test_join_requires_approved_existing_group(session_factory, seeder) -> None:
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    pending_id = await seeder.group(creator_id=creator_id, business_id=business_id, approve=False)
    approved_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    customer_id = await seeder.customer()

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        with pytest.raises(InvalidStateError):
            await service.join_group(pending_id, customer_id)
        with pytest.raises(NotFoundError):
            await service.join_group(uuid4(), customer_id)
        with pytest.raises(NotFoundError):
            await service.join_group(approved_id, uuid4())


@pytest.mark.asyncio
async def test_join_bonus_is_credited_through_ledger(session_factory, seeder, monkeypatch) -> None:
    monkeypatch.setattr(settings, "mukando_join_bonus_points", 5)
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    customer_id = await seeder.customer(balance=10)

    async with session_factory() as session:
        await MukandoMembershipService(session).join_group(group_id, customer_id)

    async with session_factory() as session:
        profile = await session.get(CustomerProfile, customer_id)
        assert profile.points_balance == 15
        entries = (
            await session.execute(select(PointsTransaction).where(PointsTransaction.customer_id == customer_id))
        ).scalars().all()
        assert [(entry.transaction_type, entry.points_delta) for entry in entries] == [
            (PointsTransactionType.EARN, 5)
        ]
        assert entries[0].mukando_group_id == group_id


@pytest.mark.asyncio
async def test_available_groups_exclude_joined_and_full(session_factory, seeder) -> None:
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    open_id = await seeder.group(creator_id=creator_id, business_id=business_id, max_members=3)
    full_id = await seeder.group(creator_id=creator_id, business_id=business_id, max_members=1)
    joined_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    await seeder.group(creator_id=creator_id, business_id=business_id, approve=False)
    customer_id = await seeder.customer()
    someone_else = await seeder.customer()

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        await service.join_group(full_id, someone_else)
        await service.join_group(open_id, someone_else)
        await service.join_group(joined_id, customer_id)

        available = await service.list_available_groups(customer_id)
        filtered = await service.list_available_groups(customer_id, business_id=uuid4())

    assert [summary.group.id for summary in available] == [open_id]
    assert available[0].spots_remaining == 2
    assert available[0].member_count == 1
    assert filtered == []


@pytest.mark.asyncio
async def test_my_groups_include_membership_context(session_factory, seeder) -> None:
    creator_id = await seeder.customer(balance=1000)
    business_id = await seeder.business()
    created_id = await seeder.group(creator_id=creator_id, business_id=business_id, goal_points=400)
    stranger_id = await seeder.customer()
    joined_id = await seeder.group(creator_id=stranger_id, business_id=business_id)
    await seeder.group(creator_id=stranger_id, business_id=business_id)

    async with session_factory() as session:
        service = MukandoMembershipService(session)
        await service.join_group(created_id, creator_id)
        await service.join_group(joined_id, creator_id)
        await MukandoContributionProcessor(session).contribute(created_id, creator_id, 100)

    async with session_factory() as session:
        summaries = {
            summary.group.id: summary
            for summary in await MukandoMembershipService(session).list_my_groups(creator_id)
        }
        completed_only = await MukandoMembershipService(session).list_my_groups(
            creator_id, status=MukandoGroupStatus.COMPLETED
        )

    assert set(summaries) == {created_id, joined_id}
    created = summaries[created_id]
    assert created.is_creator and created.is_member
    assert created.points_contributed == 100
    assert created.progress_percentage == 25.0
    assert created.payout_order == 0
    joined = summaries[joined_id]
    assert not joined.is_creator and joined.is_member
    assert joined.points_contributed == 0
    assert completed_only == []
