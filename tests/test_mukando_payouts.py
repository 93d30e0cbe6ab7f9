import datetime as dt

import pytest

from sqlalchemy import select

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.mukando import MukandoGroup, MukandoGroupStatus, MukandoMember
from smart_rewards_api.models.points import PointsTransaction, PointsTransactionType
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.mukando import (
    MukandoContributionProcessor,
    MukandoMembershipService,
    MukandoPayoutScheduler,
    run_payout_sweep,
)
from smart_rewards_api.services.mukando.payouts import as_utc, is_payout_due, payout_interval
from smart_rewards_api.services.points import PointsLedgerService
from smart_rewards_api.models.mukando import MukandoContributionInterval


def _later(days: int) -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc) + dt.timedelta(days=days)


async def _running_group(session_factory, seeder, *, members: int = 3, balance: int = 1000, max_members=None):
    creator_id = await seeder.customer()
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id, max_members=max_members)
    customer_ids = [await seeder.customer(balance=balance, name=f"Member {index}") for index in range(members)]
    async with session_factory() as session:
        service = MukandoMembershipService(session)
        for customer_id in customer_ids:
            await service.join_group(group_id, customer_id)
    return group_id, customer_ids


async def _balance(session_factory, customer_id) -> int:
    async with session_factory() as session:
        profile = await session.get(CustomerProfile, customer_id)
        return profile.points_balance


def test_payout_interval_follows_cadence(monkeypatch) -> None:
    assert payout_interval(MukandoContributionInterval.WEEKLY) == dt.timedelta(days=7)
    assert payout_interval(MukandoContributionInterval.MONTHLY) == dt.timedelta(days=30)
    monkeypatch.setattr(settings, "mukando_payout_min_interval_days", 1)
    assert payout_interval(MukandoContributionInterval.MONTHLY) == dt.timedelta(days=1)


def test_as_utc_treats_naive_values_as_utc() -> None:
    naive = dt.datetime(2026, 1, 1, 12, 0)
    assert as_utc(naive) == dt.datetime(2026, 1, 1, 12, 0, tzinfo=dt.timezone.utc)
    assert as_utc(None) is None


@pytest.mark.asyncio
async def test_rotation_pays_each_member_once_then_completes(session_factory, seeder) -> None:
    group_id, (ana, ben, chi) = await _running_group(session_factory, seeder)
    recipients = []

    for contributor in (ana, ben, chi):
        async with session_factory() as session:
            await MukandoContributionProcessor(session).contribute(group_id, contributor, 100)
        async with session_factory() as session:
            result = await MukandoPayoutScheduler(session).distribute(group_id)
        recipients.append(result.recipient_customer_id)
        assert result.points_distributed == 10

    assert recipients == [ana, ben, chi]
    assert result.is_completed is True
    assert result.rotation_pointer == 3

    async with session_factory() as session:
        group = await session.get(MukandoGroup, group_id)
        assert group.status == MukandoGroupStatus.COMPLETED
        assert group.completed_at is not None
        assert group.unpaid_bonus_points == 0
        members = (
            await session.execute(select(MukandoMember).where(MukandoMember.group_id == group_id))
        ).scalars().all()
        assert {member.customer_id: member.rewards_received for member in members} == {ana: 10, ben: 10, chi: 10}

        assert await MukandoPayoutScheduler(session).distribute(group_id) is None

    assert await _balance(session_factory, ana) == 910
    assert get_mukando_store().snapshot().payouts["groups_completed"] == 1


@pytest.mark.asyncio
async def test_distribute_skips_group_without_bonus(session_factory, seeder) -> None:
    group_id, _ = await _running_group(session_factory, seeder)

    async with session_factory() as session:
        assert await MukandoPayoutScheduler(session).distribute(group_id) is None

    async with session_factory() as session:
        group = await session.get(MukandoGroup, group_id)
        assert group.rotation_pointer == 0


@pytest.mark.asyncio
async def test_groups_become_eligible_after_interval(session_factory, seeder) -> None:
    group_id, (ana, *_) = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        await MukandoContributionProcessor(session).contribute(group_id, ana, 100)

    async with session_factory() as session:
        scheduler = MukandoPayoutScheduler(session)
        assert await scheduler.list_eligible_groups(_later(0)) == []
        assert await scheduler.list_eligible_groups(_later(29)) == []
        eligible = await scheduler.list_eligible_groups(_later(31))
        assert [group.id for group in eligible] == [group_id]
        assert is_payout_due(eligible[0], _later(31))


@pytest.mark.asyncio
async def test_sweep_is_idempotent(session_factory, seeder) -> None:
    group_id, (ana, ben, _) = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        processor = MukandoContributionProcessor(session)
        await processor.contribute(group_id, ana, 100)
        await processor.contribute(group_id, ben, 100)

    now = _later(31)
    first = await run_payout_sweep(session_factory, now=now)
    second = await run_payout_sweep(session_factory, now=now)

    assert (first.evaluated, first.distributed, first.failed) == (1, 1, 0)
    assert first.results[0].points_distributed == 20
    assert (second.evaluated, second.distributed) == (0, 0)

    async with session_factory() as session:
        payouts = (
            await session.execute(
                select(PointsTransaction).where(
                    PointsTransaction.transaction_type == PointsTransactionType.MUKANDO_PAYOUT
                )
            )
        ).scalars().all()
        group = await session.get(MukandoGroup, group_id)

    assert [(entry.customer_id, entry.points_delta) for entry in payouts] == [(ana, 20)]
    assert group.rotation_pointer == 1
    assert group.last_payout_at is not None


@pytest.mark.asyncio
async def test_next_payout_waits_for_a_full_interval(session_factory, seeder) -> None:
    group_id, (ana, ben, _) = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        await MukandoContributionProcessor(session).contribute(group_id, ana, 100)
    first_run = _later(31)
    await run_payout_sweep(session_factory, now=first_run)

    async with session_factory() as session:
        await MukandoContributionProcessor(session).contribute(group_id, ben, 50)

    too_soon = await run_payout_sweep(session_factory, now=first_run + dt.timedelta(days=10))
    on_time = await run_payout_sweep(session_factory, now=first_run + dt.timedelta(days=30))

    assert too_soon.evaluated == 0
    assert on_time.distributed == 1
    assert on_time.results[0].recipient_customer_id == ben


@pytest.mark.asyncio
async def test_sweep_isolates_failing_group(session_factory, seeder, monkeypatch) -> None:
    healthy_id, (ana, *_) = await _running_group(session_factory, seeder)
    broken_id, (zed, *_) = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        processor = MukandoContributionProcessor(session)
        await processor.contribute(healthy_id, ana, 100)
        await processor.contribute(broken_id, zed, 100)

    original = MukandoPayoutScheduler._distribute

    async def flaky_distribute(self, group_id, paid_at):
        if group_id == broken_id:
            raise RuntimeError("ledger unavailable")
        return await original(self, group_id, paid_at)

    monkeypatch.setattr(MukandoPayoutScheduler, "_distribute", flaky_distribute)

    summary = await run_payout_sweep(session_factory, now=_later(31))

    assert (summary.evaluated, summary.distributed, summary.failed) == (2, 1, 1)
    assert summary.errors == [{"group_id": str(broken_id), "error": "ledger unavailable"}]
    assert get_mukando_store().snapshot().payouts["failures"] == 1

    async with session_factory() as session:
        broken = await session.get(MukandoGroup, broken_id)
        healthy = await session.get(MukandoGroup, healthy_id)

    assert broken.unpaid_bonus_points == 10
    assert broken.rotation_pointer == 0
    assert healthy.rotation_pointer == 1
    assert await _balance(session_factory, ana) == 910


@pytest.mark.asyncio
async def test_savings_round_end_to_end(session_factory, seeder) -> None:
    group_id, (first, second, third) = await _running_group(session_factory, seeder, max_members=3)

    async with session_factory() as session:
        processor = MukandoContributionProcessor(session)
        receipts = [await processor.contribute(group_id, customer_id, 100) for customer_id in (first, second, third)]

    assert receipts[-1].pool_points == 300
    assert sum(receipt.bonus_points for receipt in receipts) == 30

    summary = await run_payout_sweep(session_factory, now=_later(31))

    assert summary.distributed == 1
    payout = summary.results[0]
    assert payout.recipient_customer_id == first
    assert payout.points_distributed == 30
    assert payout.rotation_pointer == 1
    assert payout.is_completed is False

    async with session_factory() as session:
        group = await session.get(MukandoGroup, group_id)
    assert group.status == MukandoGroupStatus.APPROVED
    assert group.pool_points == 300
    assert group.unpaid_bonus_points == 0
    assert await _balance(session_factory, first) == 930
    assert await _balance(session_factory, second) == 900


@pytest.mark.asyncio
async def test_preview_lists_groups_holding_bonus(session_factory, seeder) -> None:
    group_id, (ana, ben, _) = await _running_group(session_factory, seeder)
    idle_id, _ = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        await MukandoContributionProcessor(session).contribute(group_id, ben, 100)

    async with session_factory() as session:
        ready = await MukandoPayoutScheduler(session).preview_ready_groups()

    assert [item.group.id for item in ready] == [group_id]
    assert ready[0].next_recipient_customer_id == ana
    assert ready[0].member_count == 3
    assert ready[0].is_due is False
    assert ready[0].next_payout_at is not None
    assert idle_id not in {item.group.id for item in ready}


@pytest.mark.asyncio
async def test_failed_credit_rolls_back_the_whole_payout(session_factory, seeder, monkeypatch) -> None:
    group_id, (ana, *_) = await _running_group(session_factory, seeder)
    async with session_factory() as session:
        await MukandoContributionProcessor(session).contribute(group_id, ana, 100)

    original = PointsLedgerService.adjust_balance

    async def refuse_credits(self, customer_id, delta):
        if delta > 0:
            raise RuntimeError("balance store unavailable")
        return await original(self, customer_id, delta)

    monkeypatch.setattr(PointsLedgerService, "adjust_balance", refuse_credits)

    failed = await run_payout_sweep(session_factory, now=_later(31))
    assert (failed.distributed, failed.failed) == (0, 1)

    async with session_factory() as session:
        group = await session.get(MukandoGroup, group_id)
        member = (
            await session.execute(select(MukandoMember).where(MukandoMember.customer_id == ana))
        ).scalar_one()
        payouts = (
            await session.execute(
                select(PointsTransaction).where(
                    PointsTransaction.transaction_type == PointsTransactionType.MUKANDO_PAYOUT
                )
            )
        ).scalars().all()

    assert group.rotation_pointer == 0
    assert group.unpaid_bonus_points == 10
    assert group.last_payout_at is None
    assert member.rewards_received == 0
    assert payouts == []
    assert await _balance(session_factory, ana) == 900

    monkeypatch.setattr(PointsLedgerService, "adjust_balance", original)

    retried = await run_payout_sweep(session_factory, now=_later(31))
    assert retried.distributed == 1
    assert retried.results[0].recipient_customer_id == ana
    assert await _balance(session_factory, ana) == 910


@pytest.mark.asyncio
async def test_rotation_follows_payout_order_when_members_join_mid_round(session_factory, seeder) -> None:
    group_id, (ana, ben) = await _running_group(session_factory, seeder, members=2)
    recipients = []

    async def contribute_and_pay(contributor):
        async with session_factory() as session:
            await MukandoContributionProcessor(session).contribute(group_id, contributor, 100)
        async with session_factory() as session:
            result = await MukandoPayoutScheduler(session).distribute(group_id)
        recipients.append(result.recipient_customer_id)
        return result

    first = await contribute_and_pay(ana)
    assert first.is_completed is False

    chi = await seeder.customer(balance=1000, name="Late joiner")
    async with session_factory() as session:
        late_member = await MukandoMembershipService(session).join_group(group_id, chi)
    assert late_member.payout_order == 2

    second = await contribute_and_pay(ben)
    assert second.is_completed is False

    third = await contribute_and_pay(chi)
    assert recipients == [ana, ben, chi]
    assert third.is_completed is True
    assert third.rotation_pointer == 3

    async with session_factory() as session:
        group = await session.get(MukandoGroup, group_id)
    assert group.status == MukandoGroupStatus.COMPLETED
