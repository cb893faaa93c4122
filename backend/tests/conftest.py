"""
Pytest configuration and shared test fixtures.

This module provides the shared fixtures for the backend tests: a temporary
file-backed SQLite database per test (so guarded UPDATEs run against a real
SQL engine and can race across sessions), a recording fake of the MakoPay
gateway, seeded users, drivers and orders, and an HTTP client wired to the
FastAPI app with the database and gateway dependencies overridden.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key-for-makoexpress-suite-0001")

import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from makoexpress.core.security import create_access_token
from makoexpress.database.base import Base
from makoexpress.database.connection import create_session_factory
from makoexpress.database.models import (
    Driver,
    DriverStatus,
    Order,
    OrderStatus,
    Urgency,
    User,
    UserRole,
    VehicleType,
)
from makoexpress.services.orders.service import OrderService
from makoexpress.services.orders.state_machine import OrderStateMachine
from makoexpress.services.payments.makopay_client import (
    GatewayResponse,
    TransactionStatus,
    sign_payload,
)

WEBHOOK_SECRET = "test-webhook-secret"


class FakeGateway:
    """
    In-memory stand-in for MakoPayClient that records every call.

    Outcomes are configurable per operation; the default is a gateway that
    accepts and completes everything.
    """

    def __init__(self, secret_key: str = WEBHOOK_SECRET):
        self.secret_key = secret_key
        self.transfers: list[dict] = []
        self.payments: list[dict] = []
        self.status_checks: list[str] = []
        self.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-1", status=TransactionStatus.COMPLETED
        )
        self.payment_response = GatewayResponse(
            success=True, transaction_id="TX-PAY-1", status=TransactionStatus.PENDING
        )
        self.status_response = GatewayResponse(
            success=True, transaction_id="TX-PAY-1", status=TransactionStatus.COMPLETED
        )
        self.transfer_error: Optional[Exception] = None

    async def transfer_to_driver(self, driver_id, amount, driver_phone, order_id) -> GatewayResponse:
        self.transfers.append(
            {
                "driver_id": driver_id,
                "amount": amount,
                "driver_phone": driver_phone,
                "order_id": order_id,
                "reference": f"DRIVER_{driver_id}_{order_id}",
            }
        )
        if self.transfer_error is not None:
            raise self.transfer_error
        return self.transfer_response

    async def process_order_payment(self, order_id, amount, customer_phone) -> GatewayResponse:
        self.payments.append(
            {"order_id": order_id, "amount": amount, "customer_phone": customer_phone}
        )
        return self.payment_response

    async def check_transaction_status(self, transaction_id) -> GatewayResponse:
        self.status_checks.append(transaction_id)
        return self.status_response

    def validate_webhook(self, signature: str, payload: str, timestamp: str) -> bool:
        if not signature or not timestamp:
            return False
        return signature == sign_payload(self.secret_key, payload, timestamp)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with the full schema."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'makoexpress.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# ============================================================================
# Data Fixtures
# ============================================================================


async def make_user(
    session: AsyncSession,
    role: UserRole = UserRole.CUSTOMER,
    first_name: str = "Awa",
) -> User:
    user = User(
        email=f"{uuid.uuid4().hex[:10]}@makoexpress.test",
        first_name=first_name,
        last_name="Traore",
        role=role,
    )
    session.add(user)
    await session.commit()
    return user


async def make_driver(
    session: AsyncSession,
    status: DriverStatus = DriverStatus.APPROVED,
    has_gps_equipment: bool = False,
    has_insurance: bool = False,
    has_uniform: bool = False,
    with_documents: bool = True,
) -> Driver:
    user = await make_user(session, role=UserRole.DRIVER, first_name="Moussa")
    documents = (
        {
            "drivers_license_url": "https://docs.test/license.pdf",
            "vehicle_registration_url": "https://docs.test/registration.pdf",
            "insurance_certificate_url": "https://docs.test/insurance.pdf",
            "medical_certificate_url": "https://docs.test/medical.pdf",
        }
        if with_documents
        else {}
    )
    driver = Driver(
        user_id=user.id,
        full_name="Moussa Keita",
        age=29,
        vehicle_type=VehicleType.MOTO,
        city="Bamako",
        phone="+22370000001",
        status=status,
        has_gps_equipment=has_gps_equipment,
        has_insurance=has_insurance,
        has_uniform=has_uniform,
        **documents,
    )
    session.add(driver)
    await session.commit()
    return driver


async def make_order(
    session: AsyncSession,
    customer: User,
    price: Decimal = Decimal("5000"),
    customer_phone: Optional[str] = "+22376000000",
) -> Order:
    return await OrderService(session).create_order(
        customer_id=customer.id,
        pickup_address="Marche de Medina, Bamako",
        delivery_address="ACI 2000, Bamako",
        package_type="parcel",
        weight="2kg",
        urgency=Urgency.STANDARD,
        price=price,
        customer_phone=customer_phone,
    )


@pytest.fixture
async def customer(db_session: AsyncSession) -> User:
    return await make_user(db_session)


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, role=UserRole.ADMIN, first_name="Admin")


@pytest.fixture
async def driver(db_session: AsyncSession) -> Driver:
    """Approved standard-tier driver."""
    return await make_driver(db_session)


@pytest.fixture
async def premium_driver(db_session: AsyncSession) -> Driver:
    """Approved driver with the GPS bag and insurance."""
    return await make_driver(db_session, has_gps_equipment=True, has_insurance=True)


@pytest.fixture
async def order(db_session: AsyncSession, customer: User) -> Order:
    """Pending order priced 5000 XOF."""
    return await make_order(db_session, customer)


# ============================================================================
# API Fixtures
# ============================================================================


def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def api_client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app, bound to the test database and fake gateway."""
    from makoexpress.api.deps import get_gateway
    from makoexpress.api.limiter import limiter
    from makoexpress.database.connection import get_db
    from makoexpress.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def deliver_order(session: AsyncSession, gateway: FakeGateway, order: Order, driver: Driver):
    """Walk an order from pending to delivered; returns the delivery result."""
    machine = OrderStateMachine(session, gateway)
    await machine.accept(order.id, driver.id)
    await machine.advance(order.id, driver.id, OrderStatus.PICKED_UP)
    await machine.advance(order.id, driver.id, OrderStatus.IN_TRANSIT)
    return await machine.advance(order.id, driver.id, OrderStatus.DELIVERED)
