"""Seed development customers and businesses into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from smart_rewards_api.core.settings import settings
from smart_rewards_api.models.business_profile import BusinessProfile
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.user import User, UserRoleEnum


class SeedUser(TypedDict):
    email: str
    display_name: str
    role: str
    points_balance: int


DEV_USERS: list[SeedUser] = [
    {
        "email": os.getenv("DEV_CUSTOMER_EMAIL", "tariro@smart-rewards.dev").lower(),
        "display_name": "Tariro Moyo",
        "role": UserRoleEnum.CUSTOMER.value,
        "points_balance": int(os.getenv("DEV_CUSTOMER_POINTS", "1500")),
    },
    {
        "email": os.getenv("DEV_SECOND_CUSTOMER_EMAIL", "farai@smart-rewards.dev").lower(),
        "display_name": "Farai Ndlovu",
        "role": UserRoleEnum.CUSTOMER.value,
        "points_balance": int(os.getenv("DEV_CUSTOMER_POINTS", "1500")),
    },
    {
        "email": os.getenv("DEV_BUSINESS_EMAIL", "hardware@smart-rewards.dev").lower(),
        "display_name": "Chipo's Hardware",
        "role": UserRoleEnum.BUSINESS.value,
        "points_balance": 0,
    },
]


async def seed_users(session: AsyncSession) -> dict[str, str]:
    """Upsert each dev user with its profile and return ``email -> user id``."""

    seeded: dict[str, str] = {}
    for entry in DEV_USERS:
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.email == entry["email"]))
        user = existing.scalar_one_or_none()

        if user is None:
            user = User(email=entry["email"], display_name=entry["display_name"], role=entry["role"])
            session.add(user)
            await session.flush()
        else:
            user.display_name = entry["display_name"]
            user.role = entry["role"]

        if entry["role"] == UserRoleEnum.CUSTOMER.value:
            profile = await session.get(CustomerProfile, user.id)
            if profile is None:
                session.add(
                    CustomerProfile(
                        user_id=user.id,
                        full_name=entry["display_name"],
                        points_balance=entry["points_balance"],
                        lifetime_points=entry["points_balance"],
                    )
                )
            else:
                profile.points_balance = entry["points_balance"]
        else:
            business = await session.get(BusinessProfile, user.id)
            if business is None:
                session.add(BusinessProfile(user_id=user.id, business_name=entry["display_name"]))

        seeded[entry["email"]] = str(user.id)
    await session.commit()
    return seeded


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            seeded = await seed_users(session)
        for email, user_id in seeded.items():
            print(f"{email}: {user_id}")
        print("Development users ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
