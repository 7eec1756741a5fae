"""
Centralized Test Configuration.
"""

import os
import tempfile
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from backend.app.main import app
from backend.app.core.config import settings
from backend.app.core.reliability import event_circuit_breaker
from backend.app.db.session import get_db, Base
from backend.app.models.truck import Truck, TruckType
from backend.app.models.order_enums import ServiceType
import backend.app.services.events as events_module

# File-backed database so concurrent sessions get separate connections
TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"ledger_test_{os.getpid()}.db")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool, NullPool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
    poolclass=NullPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.published = []
        self._closed = False
        self.fail_publish = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def publish(self, channel, message):
        if self.fail_publish:
            raise ConnectionError("redis unavailable")
        self.published.append((channel, message))
        return 1

    def reset(self):
        self.published = []
        self.fail_publish = False

    async def aclose(self):
        self._closed = True


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = events_module.redis_client
    events_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    events_module.redis_client = original_client
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session, monkeypatch):
    """Create tables before each test function and drop after."""
    # Allocation is triggered explicitly unless a test opts in
    monkeypatch.setattr(settings, "auto_allocate_on_payment", False)
    monkeypatch.setattr(settings, "loan_financed_dispatch", False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    redis_client_session.reset()
    event_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Independent sessions for concurrency tests."""
    return TestingSessionLocal


@pytest.fixture
def truck_factory(db_session):
    """Create committed trucks: ``await truck_factory(max_capacity=10, ...)``."""
    created_types = {}

    async def _create(
        max_pickups: int = 5,
        max_dropoffs: int = 5,
        max_capacity: int = 100,
        daily_operating_cost: str = "100.00",
        service_type: ServiceType = None,
        is_available: bool = True,
        available_from=None,
        available_until=None,
    ) -> Truck:
        type_name = service_type.value if service_type else "ANY"
        truck_type = created_types.get(type_name)
        if truck_type is None:
            truck_type = TruckType(name=f"{type_name.title()} Truck", service_type=service_type)
            db_session.add(truck_type)
            await db_session.flush()
            created_types[type_name] = truck_type

        truck = Truck(
            truck_type_id=truck_type.id,
            max_pickups=max_pickups,
            max_dropoffs=max_dropoffs,
            max_capacity=Decimal(max_capacity),
            daily_operating_cost=Decimal(daily_operating_cost),
            is_available=is_available,
            available_from=available_from,
            available_until=available_until,
            allocation_version=0,
        )
        db_session.add(truck)
        await db_session.commit()
        return truck

    return _create


@pytest.fixture
def order_factory(db_session):
    """Place committed orders: ``await order_factory(quantity=10)``."""
    from backend.app.domain.orders import order_store

    async def _create(
        quantity: int = 10,
        company_name: str = "Acme Phones",
        unit_price: str = None,
        service_type: ServiceType = ServiceType.COLLECTION,
        requested_pickup_at=None,
    ):
        return await order_store.create_pickup(
            db_session,
            company_name=company_name,
            quantity=quantity,
            recipient_name="Jane Receiver",
            pickup_location="Warehouse A",
            delivery_location="Store B",
            unit_price=Decimal(unit_price) if unit_price else None,
            requested_pickup_at=requested_pickup_at,
            service_type=service_type,
        )

    return _create


@pytest.fixture
def pay(db_session):
    """Reconcile a payment event: ``await pay(reference, "300.00")``."""
    from backend.app.domain.payments.reconciliation import apply_payment_event, PaymentEvent
    from backend.app.models.ledger_enums import PaymentEventStatus
    from backend.app.services.simulation_clock import utcnow

    counter = {"n": 0}

    async def _pay(
        reference: str,
        amount: str,
        transaction_number: str = None,
        status: PaymentEventStatus = PaymentEventStatus.SUCCESS,
        description: str = "",
        session: AsyncSession = None,
    ):
        counter["n"] += 1
        event = PaymentEvent(
            transaction_number=transaction_number or f"TXN-{counter['n']:04d}",
            status=status,
            amount=Decimal(amount),
            timestamp=utcnow(),
            description=description,
            from_party="9876543210",
            to_party="01001123456789",
            reference=reference,
        )
        return await apply_payment_event(session or db_session, event)

    return _pay
