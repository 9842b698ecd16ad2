"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from carwash.dependencies import CurrentUser, get_current_user
from carwash.main import app
from carwash.models import (
    Appointment,
    Base,
    Category,
    Feature,
    Order,
    OrderItem,
    Product,
    Service,
    Staff,
    User,
    Vehicle,
)
from carwash.models.appointment import PaymentType
from carwash.models.user import UserRole
from carwash.services import realtime
from carwash.services.database import get_db
from carwash.services.identity import get_identity_client
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakePublisher(realtime.RealtimePublisher):
    """Records pushes instead of calling the hosted service."""

    def __init__(self):
        super().__init__()
        self.enabled = True
        self.events: List[tuple] = []

    async def trigger(self, channel, event, data):
        self.events.append((channel, event, data))
        return True

    def channels(self, event: Optional[str] = None) -> List[str]:
        return [c for c, e, _ in self.events if event is None or e == event]


class AuthState:
    """Who the overridden ``get_current_user`` dependency returns."""

    def __init__(self):
        self.user: Optional[CurrentUser] = None

    def login(self, user: User) -> CurrentUser:
        self.user = CurrentUser.from_user(user)
        return self.user


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and assertions (separate from request sessions)."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def publisher():
    fake = FakePublisher()
    realtime.set_publisher(fake)
    yield fake
    realtime.set_publisher(None)


@pytest.fixture
def auth() -> AuthState:
    return AuthState()


@pytest.fixture
def identity_client():
    client = MagicMock()
    client.get_user = AsyncMock(return_value={"public_metadata": {"role": "customer"}})
    client.update_user_metadata = AsyncMock(return_value={})
    return client


def install_overrides(session_maker, identity_client):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_client] = lambda: identity_client


@pytest_asyncio.fixture(scope="function")
async def client(
    session_maker, auth, publisher, identity_client
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client acting as ``auth.user`` (401 when nobody is logged in)."""
    from fastapi import HTTPException

    install_overrides(session_maker, identity_client)

    async def override_current_user():
        if auth.user is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return auth.user

    app.dependency_overrides[get_current_user] = override_current_user

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def raw_client(
    session_maker, publisher, identity_client
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that goes through the real token dependency."""
    install_overrides(session_maker, identity_client)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Seed data
# ============================================================================


async def create_user(
    db: AsyncSession, clerk_id: str, name: str, email: str, role: UserRole
) -> User:
    user = User(clerk_id=clerk_id, name=name, email=email, role=role)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "user_customer", "Sita Sharma", "sita@example.com", UserRole.CUSTOMER
    )


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "user_other", "Ram Thapa", "ram@example.com", UserRole.CUSTOMER
    )


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, "user_admin", "Admin User", "admin@example.com", UserRole.ADMIN
    )


@pytest_asyncio.fixture
async def staff_member(db_session: AsyncSession) -> Staff:
    user = await create_user(
        db_session, "user_staff", "Hari Gurung", "hari@example.com", UserRole.STAFF
    )
    staff = Staff(user_id=user.id, role="CLEANER")
    db_session.add(staff)
    await db_session.commit()
    return staff


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession, staff_member: Staff) -> User:
    return await db_session.get(User, staff_member.user_id)


@pytest_asyncio.fixture
async def service(db_session: AsyncSession) -> Service:
    service = Service(
        name="Premium Wash",
        description="Full exterior and interior wash",
        price=Decimal("1500.00"),
        duration=60,
    )
    service.features = [Feature(name="Foam wash"), Feature(name="Vacuum")]
    db_session.add(service)
    await db_session.commit()
    return service


@pytest_asyncio.fixture
async def vehicle(db_session: AsyncSession, customer: User) -> Vehicle:
    vehicle = Vehicle(user_id=customer.id, type="sedan", model="Hyundai i20", plate="BA 1 PA 2345")
    db_session.add(vehicle)
    await db_session.commit()
    return vehicle


def today_at(hour: int) -> datetime:
    return datetime.now(timezone.utc).replace(hour=hour, minute=0, second=0, microsecond=0)


@pytest_asyncio.fixture
async def appointment(
    db_session: AsyncSession, customer: User, service: Service, vehicle: Vehicle
) -> Appointment:
    appointment = Appointment(
        user_id=customer.id,
        service_id=service.id,
        vehicle_id=vehicle.id,
        date=today_at(12) + timedelta(days=2),
        time_slot="10:00 AM",
        price=service.price,
        payment_type=PaymentType.FULL,
    )
    db_session.add(appointment)
    await db_session.commit()
    return appointment


@pytest_asyncio.fixture
async def category(db_session: AsyncSession) -> Category:
    category = Category(name="Car Care")
    db_session.add(category)
    await db_session.commit()
    return category


@pytest_asyncio.fixture
async def product(db_session: AsyncSession, category: Category) -> Product:
    product = Product(
        name="Carnauba Wax",
        description="Paste wax, 300g",
        price=Decimal("899.99"),
        stock=10,
        category_id=category.id,
        images=["https://cdn.example.com/wax.jpg"],
    )
    db_session.add(product)
    await db_session.commit()
    return product


@pytest_asyncio.fixture
async def order(db_session: AsyncSession, customer: User, product: Product) -> Order:
    order = Order(
        user_id=customer.id,
        total_amount=Decimal("1799.98"),
        address="Thamel, Kathmandu",
        phone_number="9800000000",
    )
    order.items = [OrderItem(product_id=product.id, quantity=2, price=product.price)]
    db_session.add(order)
    await db_session.commit()
    return order
