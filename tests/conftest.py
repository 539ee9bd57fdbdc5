"""
Gym Membership Service - Test Configuration

Pytest fixtures and configuration.

Tests run against an in-memory SQLite database (aiosqlite) shared through a
StaticPool, with "now" pinned by a FrozenClock.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("SEED_DEFAULT_PLANS", "false")
os.environ.setdefault("PAYMENT_VERIFY_URL", "")
os.environ.setdefault("PAYMENT_CHECKOUT_URL", "")

from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_async_session
from app.dependencies import get_clock
from app.models.member import Member, MemberRole
from app.services.payment_verification import PaymentReceipt, PaymentVerifier, ReceiptStatus, get_payment_verifier
from app.services.plan_catalog_service import PlanCatalogService
from app.utils.security import create_access_token, get_password_hash
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "TestPassword123!"
START = datetime(2026, 1, 1, 9, 0, 0)

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class FrozenClock:
    """Clock whose "now" only moves when a test moves it."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubPaymentVerifier(PaymentVerifier):
    """Receipts registered by the test; anything else is unknown."""

    def __init__(self):
        self.receipts: Dict[str, PaymentReceipt] = {}
        self.lookups = []

    def add_receipt(
        self,
        reference: str,
        amount_minor_units: int,
        request_reference: Optional[str] = None,
        status: ReceiptStatus = ReceiptStatus.SUCCESS,
        currency: str = "USD",
    ) -> PaymentReceipt:
        receipt = PaymentReceipt(
            reference=reference,
            status=status,
            amount_minor_units=amount_minor_units,
            currency=currency,
            request_reference=request_reference,
        )
        self.receipts[reference] = receipt
        return receipt

    async def verify_receipt(self, reference: str) -> PaymentReceipt:
        self.lookups.append(reference)
        return self.receipts.get(
            reference,
            PaymentReceipt(reference=reference, status=ReceiptStatus.UNKNOWN, amount_minor_units=0, currency="USD"),
        )

    def checkout_url(self, request_reference: str) -> Optional[str]:
        return f"https://pay.test/checkout?reference={request_reference}"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def payment_verifier() -> StubPaymentVerifier:
    return StubPaymentVerifier()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    clock: FrozenClock,
    payment_verifier: StubPaymentVerifier,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test client with database, clock and payment overrides.

    Each request gets its own session on the shared in-memory database.
    """

    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_verifier] = lambda: payment_verifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

async def create_member(
    db_session: AsyncSession,
    email: str,
    role: MemberRole = MemberRole.MEMBER,
) -> UUID:
    member = Member(
        id=uuid4(),
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name="Test",
        last_name="Member",
        role=role,
    )
    db_session.add(member)
    await db_session.commit()
    return member.id


def auth_headers_for(member_id: UUID, role: MemberRole = MemberRole.MEMBER) -> Dict[str, str]:
    token = create_access_token({"sub": str(member_id), "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def member_id(db_session: AsyncSession) -> UUID:
    """A member without a membership."""
    return await create_member(db_session, "member@example.com")


@pytest_asyncio.fixture
async def staff_id(db_session: AsyncSession) -> UUID:
    """A front desk staff account."""
    return await create_member(db_session, "frontdesk@example.com", role=MemberRole.FRONT_DESK)


@pytest.fixture
def auth_headers(member_id: UUID) -> Dict[str, str]:
    return auth_headers_for(member_id)


@pytest.fixture
def staff_headers(staff_id: UUID) -> Dict[str, str]:
    return auth_headers_for(staff_id, MemberRole.FRONT_DESK)


@pytest_asyncio.fixture
async def plans(db_session: AsyncSession) -> Dict[str, int]:
    """
    Catalog used across tests. Returns plan ids by key.

    quarterly: 9000 over 90 days, monthly: 5000 over 30 days,
    elite: 12000 over 30 days, day_pass: 1500 for a single day.
    """
    catalog = PlanCatalogService(db_session)
    quarterly = await catalog.create_plan("Quarterly", 9000, 3, features=["Gym floor access"])
    monthly = await catalog.create_plan("Monthly", 5000, 1, features=["Gym floor access"])
    elite = await catalog.create_plan(
        "Elite", 12000, 1, features=["Gym floor access", "Personal training"], includes_personal_training=True
    )
    day_pass = await catalog.create_plan("Day Pass", 1500, 0, features=["Gym floor access"])
    return {
        "quarterly": quarterly.id,
        "monthly": monthly.id,
        "elite": elite.id,
        "day_pass": day_pass.id,
    }
