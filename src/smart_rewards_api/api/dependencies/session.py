"""Resolve the acting customer or business from forwarded session headers."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.db.session import get_session
from smart_rewards_api.models.business_profile import BusinessProfile
from smart_rewards_api.models.customer_profile import CustomerProfile


def _parse_session_user(session_user: str | None) -> UUID:
    if not session_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    try:
        return UUID(session_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def require_customer_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> CustomerProfile:
    """The upstream gateway authenticates; this only checks the customer exists."""

    profile = await db.get(CustomerProfile, _parse_session_user(session_user))
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer profile required",
        )
    return profile


async def require_business_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> BusinessProfile:
    profile = await db.get(BusinessProfile, _parse_session_user(session_user))
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Business profile required",
        )
    return profile


async def require_account_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> CustomerProfile | BusinessProfile:
    """Either profile kind, for routes that customers and businesses share."""

    user_id = _parse_session_user(session_user)
    profile = await db.get(CustomerProfile, user_id) or await db.get(BusinessProfile, user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer or business profile required",
        )
    return profile
