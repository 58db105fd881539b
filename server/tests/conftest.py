"""Test configuration and fixtures."""

import os

# Settings and the module-level engine read the environment at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tourbook.core.auth import create_access_token
from tourbook.core.database import Base, generate_id, utcnow
from tourbook.core.dependencies import get_db, get_email_transport, get_payment_gateways
from tourbook.models import (
    Booking,
    BookingStatus,
    Destination,
    NotificationPreference,
    Payment,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    Tour,
    TourAvailability,
    TourStatus,
    User,
    UserRole,
)
from tourbook.payments import (
    FlutterwaveGateway,
    PaymentGatewayRegistry,
    PaystackGateway,
    StripeGateway,
)
from tourbook.services.email_transport import EmailMessage, EmailTransport

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STRIPE_BASE = "https://stripe.test"
PAYSTACK_BASE = "https://paystack.test"
FLUTTERWAVE_BASE = "https://flutterwave.test"

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
PAYSTACK_SECRET_KEY = "sk_test_paystack"
FLUTTERWAVE_WEBHOOK_HASH = "flw-test-hash"


class RecordingTransport(EmailTransport):
    """
    Keeps sent emails in memory.

    Set ``fail`` to simulate an SMTP outage, or ``fail_after`` to let that
    many sends through before the outage starts.
    """

    def __init__(self):
        self.sent: list[EmailMessage] = []
        self.fail = False
        self.fail_after: Optional[int] = None

    async def send(self, message: EmailMessage) -> None:
        if self.fail or (self.fail_after is not None and len(self.sent) >= self.fail_after):
            raise ConnectionError("SMTP server unavailable")
        self.sent.append(message)

    def to(self, address: str) -> list[EmailMessage]:
        return [message for message in self.sent if message.to == address]


class ProviderStub:
    """
    ``httpx.MockTransport`` handler standing in for all three providers.

    Responses are keyed by (method, host, path); unknown routes return 404.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict = {}

    def add(self, method: str, url: str, status_code: int = 200, json: Optional[dict] = None):
        parsed = httpx.URL(url)
        self.routes[(method, parsed.host, parsed.path)] = (status_code, json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "route not stubbed"})
        status_code, body = route
        return httpx.Response(status_code, json=body)


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def user(self, role: UserRole = UserRole.CUSTOMER, name: str = "Ada Traveler", email: Optional[str] = None):
        return await self._save(User(
            email=email or f"{generate_id()}@example.com",
            name=name,
            role=role,
        ))

    async def preferences(self, user: User, **switches):
        return await self._save(NotificationPreference(user_id=user.id, **switches))

    async def tour(
        self,
        price_per_person: float = 150.0,
        max_group_size: int = 10,
        status: TourStatus = TourStatus.ACTIVE,
        title: str = "Northern Lights Adventure",
    ):
        destination = await self._save(Destination(name="Reykjavik", country="Iceland"))
        return await self._save(Tour(
            destination_id=destination.id,
            title=title,
            description="Chase the aurora",
            price_per_person=price_per_person,
            max_group_size=max_group_size,
            status=status,
        ))

    async def availability(self, tour: Tour, slots: int = 10, starts_in_days: int = 30, start=None):
        start = start or utcnow().replace(microsecond=0) + timedelta(days=starts_in_days)
        return await self._save(TourAvailability(
            tour_id=tour.id,
            start_date=start,
            end_date=start + timedelta(days=3),
            available_slots=slots,
        ))

    async def booking(
        self,
        user: User,
        availability: TourAvailability,
        travelers_count: int = 2,
        status: BookingStatus = BookingStatus.PENDING,
        total_price: Optional[float] = None,
    ):
        return await self._save(Booking(
            user_id=user.id,
            tour_id=availability.tour_id,
            availability_id=availability.id,
            travelers_count=travelers_count,
            total_price=total_price if total_price is not None else 150.0 * travelers_count,
            status=status,
        ))

    async def payment(
        self,
        booking: Booking,
        provider: PaymentProvider = PaymentProvider.PAYSTACK,
        status: PaymentStatus = PaymentStatus.PENDING,
        provider_transaction_id: Optional[str] = "txn_ref_1",
        currency: str = "USD",
    ):
        return await self._save(Payment(
            booking_id=booking.id,
            amount=booking.total_price,
            currency=currency,
            method=PaymentMethod.CARD,
            provider=provider,
            status=status,
            provider_transaction_id=provider_transaction_id,
        ))


async def reload(session: AsyncSession, model, entity):
    """
    Fetch a fresh copy of a row, bypassing stale or expired identity-map state.

    ``entity`` may be an id or an instance; an instance expired by a rollback
    still knows its identity without a database round trip.
    """
    entity_id = entity if isinstance(entity, str) else inspect(entity).identity[0]
    result = await session.execute(
        select(model).where(model.id == entity_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


def auth_headers(user: User) -> dict:
    """Bearer header for ``user`` signed with the configured secret."""
    token = create_access_token(user.id, UserRole(user.role), email=user.email, name=user.name)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def factory(test_session):
    return Factory(test_session)


@pytest.fixture
def email_transport():
    return RecordingTransport()


@pytest.fixture
def provider_stub():
    return ProviderStub()


@pytest.fixture
def gateways(provider_stub):
    """All three adapters wired to the in-memory provider stub."""
    transport = httpx.MockTransport(provider_stub)
    return PaymentGatewayRegistry([
        StripeGateway(
            STRIPE_BASE,
            "sk_test_stripe",
            webhook_secret=STRIPE_WEBHOOK_SECRET,
            transport=transport,
        ),
        PaystackGateway(PAYSTACK_BASE, PAYSTACK_SECRET_KEY, transport=transport),
        FlutterwaveGateway(
            FLUTTERWAVE_BASE,
            "FLWSECK_TEST",
            webhook_hash=FLUTTERWAVE_WEBHOOK_HASH,
            transport=transport,
        ),
    ])


@pytest.fixture
def notifications(test_session, email_transport):
    from tourbook.services.notification_service import NotificationService
    return NotificationService(test_session, email_transport)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, gateways, email_transport):
    """The real application with the database, providers and mail swapped out."""
    from tourbook.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateways] = lambda: gateways
    app.dependency_overrides[get_email_transport] = lambda: email_transport

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
