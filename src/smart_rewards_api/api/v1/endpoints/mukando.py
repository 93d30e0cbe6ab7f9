"""API endpoints for Mukando rotating-savings groups."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.api.dependencies.security import require_operator_api_key
from smart_rewards_api.api.dependencies.session import (
    require_account_session,
    require_business_session,
    require_customer_session,
)
from smart_rewards_api.db.session import async_session, get_session
from smart_rewards_api.models.business_profile import BusinessProfile
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.mukando import (
    MukandoContributionInterval,
    MukandoGroup,
    MukandoGroupStatus,
    MukandoMember,
)
from smart_rewards_api.services.errors import (
    CapacityError,
    DuplicateMembershipError,
    GroupPermissionError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    NotMemberError,
    RewardsError,
    ValidationError,
)
from smart_rewards_api.services.mukando import (
    MukandoContributionProcessor,
    MukandoGroupRegistry,
    MukandoGroupSummary,
    MukandoMembershipService,
    MukandoPayoutScheduler,
    progress_percentage,
    run_payout_sweep,
)
from smart_rewards_api.services.mukando.payouts import SessionFactory


router = APIRouter(prefix="/mukando", tags=["mukando"])


_ERROR_STATUS: list[tuple[type[RewardsError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (GroupPermissionError, status.HTTP_403_FORBIDDEN),
    (NotMemberError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (DuplicateMembershipError, status.HTTP_409_CONFLICT),
    (CapacityError, status.HTTP_409_CONFLICT),
    (InsufficientBalanceError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
]


def _http_error(exc: RewardsError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


class GroupCreateRequest(BaseModel):
    businessId: UUID
    goalName: str = Field(..., description="What the group is saving towards")
    goalPoints: int = Field(..., description="Points required to reach the goal")
    contributionInterval: MukandoContributionInterval
    termMonths: int


class GroupApproveRequest(BaseModel):
    maxMembers: Optional[int] = Field(None, description="Member capacity; omit for unlimited")
    discountRate: float = Field(0, description="Discount percentage offered on the goal")


class GroupDeclineRequest(BaseModel):
    reason: Optional[str] = None


class ContributionRequest(BaseModel):
    pointsAmount: int


class GroupResponse(BaseModel):
    id: UUID
    creatorId: UUID
    businessId: UUID
    goalName: str
    goalPoints: int
    contributionInterval: str
    termMonths: int
    status: str
    maxMembers: Optional[int]
    discountRate: Optional[float]
    poolPoints: int
    unpaidBonusPoints: int
    rotationPointer: int
    progressPercentage: float
    createdAt: Optional[datetime]
    approvedAt: Optional[datetime]
    lastPayoutAt: Optional[datetime]
    completedAt: Optional[datetime]


class GroupSummaryResponse(GroupResponse):
    memberCount: int
    spotsRemaining: Optional[int]
    isCreator: bool
    isMember: bool
    customerContribution: int
    payoutOrder: Optional[int]


class MemberResponse(BaseModel):
    id: UUID
    groupId: UUID
    customerId: UUID
    payoutOrder: int
    pointsContributed: int
    rewardsReceived: int
    joinedAt: Optional[datetime]


class GroupDetailResponse(GroupResponse):
    members: List[MemberResponse]


class ContributionResponse(BaseModel):
    contributionId: UUID
    poolPoints: int
    goalPoints: int
    progressPercentage: float
    remainingBalance: int
    bonusPoints: int
    cycleNumber: int


class PayoutResultResponse(BaseModel):
    groupId: UUID
    recipientCustomerId: UUID
    memberId: UUID
    pointsDistributed: int
    rotationPointer: int
    isCompleted: bool


class PayoutSweepResponse(BaseModel):
    evaluated: int
    distributed: int
    skipped: int
    failed: int
    results: List[PayoutResultResponse]
    errors: List[dict[str, str]]


class ReadyGroupResponse(BaseModel):
    groupId: UUID
    goalName: str
    businessId: UUID
    unpaidBonusPoints: int
    rotationPointer: int
    memberCount: int
    nextRecipientCustomerId: Optional[UUID]
    nextPayoutAt: Optional[datetime]
    isDue: bool


class SweepRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1)


def _group_fields(group: MukandoGroup) -> dict:
    return {
        "id": group.id,
        "creatorId": group.creator_id,
        "businessId": group.business_id,
        "goalName": group.goal_name,
        "goalPoints": group.goal_points_required,
        "contributionInterval": group.contribution_interval.value,
        "termMonths": group.term_months,
        "status": group.status.value,
        "maxMembers": group.max_members,
        "discountRate": float(group.discount_rate) if group.discount_rate is not None else None,
        "poolPoints": int(group.pool_points or 0),
        "unpaidBonusPoints": int(group.unpaid_bonus_points or 0),
        "rotationPointer": int(group.rotation_pointer or 0),
        "progressPercentage": progress_percentage(group.pool_points, group.goal_points_required),
        "createdAt": group.created_at,
        "approvedAt": group.approved_at,
        "lastPayoutAt": group.last_payout_at,
        "completedAt": group.completed_at,
    }


def _to_group_response(group: MukandoGroup) -> GroupResponse:
    return GroupResponse(**_group_fields(group))


def _to_summary_response(summary: MukandoGroupSummary) -> GroupSummaryResponse:
    return GroupSummaryResponse(
        **_group_fields(summary.group),
        memberCount=summary.member_count,
        spotsRemaining=summary.spots_remaining,
        isCreator=summary.is_creator,
        isMember=summary.is_member,
        customerContribution=summary.points_contributed,
        payoutOrder=summary.payout_order,
    )


def _to_member_response(member: MukandoMember) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        groupId=member.group_id,
        customerId=member.customer_id,
        payoutOrder=member.payout_order,
        pointsContributed=int(member.points_contributed or 0),
        rewardsReceived=int(member.rewards_received or 0),
        joinedAt=member.joined_at,
    )


def get_sweep_session_factory() -> SessionFactory:
    """Session factory used by the sweep endpoint; overridden in tests."""

    return async_session


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def request_group(
    payload: GroupCreateRequest,
    customer: CustomerProfile = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> GroupResponse:
    registry = MukandoGroupRegistry(db)
    try:
        group = await registry.create_group_request(
            creator_id=customer.user_id,
            business_id=payload.businessId,
            goal_name=payload.goalName,
            goal_points_required=payload.goalPoints,
            contribution_interval=payload.contributionInterval,
            term_months=payload.termMonths,
        )
    except RewardsError as exc:
        raise _http_error(exc) from exc
    return _to_group_response(group)


@router.post("/groups/{group_id}/approve", response_model=GroupResponse)
async def approve_group(
    group_id: UUID,
    payload: GroupApproveRequest,
    business: BusinessProfile = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> GroupResponse:
    registry = MukandoGroupRegistry(db)
    try:
        group = await registry.approve_group(
            group_id,
            business_id=business.user_id,
            max_members=payload.maxMembers,
            discount_rate=payload.discountRate,
        )
    except RewardsError as exc:
        raise _http_error(exc) from exc
    return _to_group_response(group)


@router.post("/groups/{group_id}/decline", response_model=GroupResponse)
async def decline_group(
    group_id: UUID,
    payload: GroupDeclineRequest,
    business: BusinessProfile = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> GroupResponse:
    registry = MukandoGroupRegistry(db)
    try:
        group = await registry.decline_group(group_id, business_id=business.user_id, reason=payload.reason)
    except RewardsError as exc:
        raise _http_error(exc) from exc
    return _to_group_response(group)


@router.post("/groups/{group_id}/join", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def join_group(
    group_id: UUID,
    customer: CustomerProfile = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> MemberResponse:
    service = MukandoMembershipService(db)
    try:
        member = await service.join_group(group_id, customer.user_id)
    except RewardsError as exc:
        raise _http_error(exc) from exc
    return _to_member_response(member)


@router.post(
    "/groups/{group_id}/contributions",
    response_model=ContributionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def contribute(
    group_id: UUID,
    payload: ContributionRequest,
    customer: CustomerProfile = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> ContributionResponse:
    processor = MukandoContributionProcessor(db)
    try:
        receipt = await processor.contribute(group_id, customer.user_id, payload.pointsAmount)
    except RewardsError as exc:
        raise _http_error(exc) from exc
    return ContributionResponse(
        contributionId=receipt.contribution_id,
        poolPoints=receipt.pool_points,
        goalPoints=receipt.goal_points_required,
        progressPercentage=receipt.progress_percentage,
        remainingBalance=receipt.remaining_balance,
        bonusPoints=receipt.bonus_points,
        cycleNumber=receipt.cycle_number,
    )


@router.get("/groups/mine", response_model=List[GroupSummaryResponse])
async def list_my_groups(
    status_filter: Optional[MukandoGroupStatus] = Query(None, alias="status"),
    customer: CustomerProfile = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> List[GroupSummaryResponse]:
    service = MukandoMembershipService(db)
    summaries = await service.list_my_groups(customer.user_id, status=status_filter)
    return [_to_summary_response(summary) for summary in summaries]


@router.get("/groups/available", response_model=List[GroupSummaryResponse])
async def list_available_groups(
    business_id: Optional[UUID] = Query(None, alias="businessId"),
    customer: CustomerProfile = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> List[GroupSummaryResponse]:
    service = MukandoMembershipService(db)
    summaries = await service.list_available_groups(customer.user_id, business_id=business_id)
    return [_to_summary_response(summary) for summary in summaries]


@router.get("/groups/business", response_model=List[GroupSummaryResponse])
async def list_business_groups(
    status_filter: Optional[MukandoGroupStatus] = Query(None, alias="status"),
    business: BusinessProfile = Depends(require_business_session),
    db: AsyncSession = Depends(get_session),
) -> List[GroupSummaryResponse]:
    registry = MukandoGroupRegistry(db)
    membership = MukandoMembershipService(db)
    groups = await registry.list_business_groups(business.user_id, status=status_filter)
    return [_to_summary_response(await membership.summarize_group(group)) for group in groups]


@router.get("/groups/{group_id}", response_model=GroupDetailResponse)
async def get_group(
    group_id: UUID,
    account: CustomerProfile | BusinessProfile = Depends(require_account_session),
    db: AsyncSession = Depends(get_session),
) -> GroupDetailResponse:
    registry = MukandoGroupRegistry(db)
    try:
        group = await registry.get_group(group_id)
    except RewardsError as exc:
        raise _http_error(exc) from exc
    members = await MukandoMembershipService(db).list_members(group_id)

    # Visible to the hosting business, the creator and members only.
    if isinstance(account, BusinessProfile):
        allowed = group.business_id == account.user_id
    else:
        allowed = group.creator_id == account.user_id or any(
            member.customer_id == account.user_id for member in members
        )
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this group")

    return GroupDetailResponse(
        **_group_fields(group),
        members=[_to_member_response(member) for member in members],
    )


@router.get(
    "/payouts/ready",
    response_model=List[ReadyGroupResponse],
    dependencies=[Depends(require_operator_api_key)],
)
async def list_ready_payouts(db: AsyncSession = Depends(get_session)) -> List[ReadyGroupResponse]:
    scheduler = MukandoPayoutScheduler(db)
    ready = await scheduler.preview_ready_groups()
    return [
        ReadyGroupResponse(
            groupId=item.group.id,
            goalName=item.group.goal_name,
            businessId=item.group.business_id,
            unpaidBonusPoints=int(item.group.unpaid_bonus_points or 0),
            rotationPointer=int(item.group.rotation_pointer or 0),
            memberCount=item.member_count,
            nextRecipientCustomerId=item.next_recipient_customer_id,
            nextPayoutAt=item.next_payout_at,
            isDue=item.is_due,
        )
        for item in ready
    ]


@router.post(
    "/payouts/sweep",
    response_model=PayoutSweepResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def trigger_payout_sweep(
    payload: SweepRequest | None = None,
    session_factory: SessionFactory = Depends(get_sweep_session_factory),
) -> PayoutSweepResponse:
    summary = await run_payout_sweep(session_factory, limit=payload.limit if payload else None)
    return PayoutSweepResponse(
        evaluated=summary.evaluated,
        distributed=summary.distributed,
        skipped=summary.skipped,
        failed=summary.failed,
        results=[
            PayoutResultResponse(
                groupId=result.group_id,
                recipientCustomerId=result.recipient_customer_id,
                memberId=result.member_id,
                pointsDistributed=result.points_distributed,
                rotationPointer=result.rotation_pointer,
                isCompleted=result.is_completed,
            )
            for result in summary.results
        ],
        errors=summary.errors,
    )
