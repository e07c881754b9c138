"""
Shared fixtures for integration tests.

Every test gets its own in-memory SQLite database with the full schema,
seeded with:
- a referrer, two referred users and a spare user
- an AFFILIATE profile (10% / 15% / 20% tiers, 50/month cap, 30 day grace)
- a CUSTOMER profile (fixed 20 credit, no grace)
- an ACTIVE assignment of the referrer to the AFFILIATE profile
- alice registered through that assignment
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from referral_ledger.models import Base, ProfileType, User
from referral_ledger.services.referral.assignment_manager import (
    AssignmentManager,
)
from referral_ledger.services.referral.profile_registry import ProfileRegistry
from referral_ledger.services.referral.referral_tracker import ReferralTracker


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_engine():
    """Create a fresh in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a session configured like the application's."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()


async def _create_user(
    session: AsyncSession, email: str, customer_id: str | None = None
) -> User:
    user = User(email=email, provider_customer_id=customer_id)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def referrer(db_session) -> User:
    """User who shares the referral link."""
    return await _create_user(db_session, "referrer@example.com", "cus_referrer")


@pytest.fixture
async def alice(db_session) -> User:
    """Referred user."""
    return await _create_user(db_session, "alice@example.com", "cus_alice")


@pytest.fixture
async def bob(db_session) -> User:
    """Second referred user."""
    return await _create_user(db_session, "bob@example.com", "cus_bob")


@pytest.fixture
async def carol(db_session) -> User:
    """User without any referral."""
    return await _create_user(db_session, "carol@example.com", "cus_carol")


@pytest.fixture
async def affiliate_profile(db_session, affiliate_policy):
    """Active AFFILIATE profile."""
    return await ProfileRegistry(db_session).create_profile(
        name="Partners",
        profile_type=ProfileType.AFFILIATE,
        config=affiliate_policy,
    )


@pytest.fixture
async def customer_profile(db_session, customer_policy):
    """Active CUSTOMER profile used for auto-assignment."""
    return await ProfileRegistry(db_session).create_profile(
        name="Refer a friend",
        profile_type=ProfileType.CUSTOMER,
        config=customer_policy,
    )


@pytest.fixture
async def assignment(db_session, referrer, affiliate_profile):
    """Referrer assigned to the AFFILIATE profile."""
    return await AssignmentManager(db_session).create_assignment(
        user_id=referrer.id,
        profile_id=affiliate_profile.id,
        custom_slug="partner-one",
        actor_id="admin-1",
    )


@pytest.fixture
async def alice_referral(db_session, assignment, alice):
    """Alice registered with the referrer's code."""
    result = await ReferralTracker(db_session).register(
        code=assignment.referral_code,
        referred_email=alice.email,
        referred_user_id=alice.id,
    )
    return result.referral
