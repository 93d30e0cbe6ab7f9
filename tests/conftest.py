import os
from uuid import UUID, uuid4

os.environ.setdefault("TRACING_ENABLED", "false")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from smart_rewards_api.app import create_app
from smart_rewards_api.db.base import Base
from smart_rewards_api.db.session import get_session
from smart_rewards_api.models.business_profile import BusinessProfile
from smart_rewards_api.models.customer_profile import CustomerProfile
from smart_rewards_api.models.user import User, UserRoleEnum
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.services.mukando import MukandoGroupRegistry


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


class RewardsSeeder:
    """Creates committed customers, businesses and groups for tests."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def customer(self, *, balance: int = 0, name: str = "Tariro") -> UUID:
        async with self._session_factory() as session:
            user = User(email=f"{uuid4().hex}@customers.test", role=UserRoleEnum.CUSTOMER.value)
            session.add(user)
            await session.flush()
            session.add(CustomerProfile(user_id=user.id, full_name=name, points_balance=balance))
            await session.commit()
            return user.id

    async def business(self, *, name: str = "Chipo's Hardware") -> UUID:
        async with self._session_factory() as session:
            user = User(email=f"{uuid4().hex}@business.test", role=UserRoleEnum.BUSINESS.value)
            session.add(user)
            await session.flush()
            session.add(BusinessProfile(user_id=user.id, business_name=name))
            await session.commit()
            return user.id

    async def group(
        self,
        *,
        creator_id: UUID,
        business_id: UUID,
        goal_points: int = 1000,
        interval: str = "monthly",
        max_members: int | None = None,
        approve: bool = True,
    ) -> UUID:
        async with self._session_factory() as session:
            registry = MukandoGroupRegistry(session)
            group = await registry.create_group_request(
                creator_id=creator_id,
                business_id=business_id,
                goal_name="Solar panel",
                goal_points_required=goal_points,
                contribution_interval=interval,
                term_months=6,
            )
            if approve:
                group = await registry.approve_group(
                    group.id,
                    business_id=business_id,
                    max_members=max_members,
                    discount_rate=5,
                )
            return group.id


@pytest_asyncio.fixture
async def seeder(session_factory) -> RewardsSeeder:
    get_mukando_store().reset()
    return RewardsSeeder(session_factory)


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client(app_with_db):
    app, _ = app_with_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
