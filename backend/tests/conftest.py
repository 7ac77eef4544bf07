"""
Pytest configuration and fixtures.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shipping.api.deps import get_address_lookup, get_delivery_cache, get_event_publisher, get_policy
from shipping.core.config import settings
from shipping.core.database import Base, get_db
from shipping.main import app
from shipping.models.coverage_area import CoverageArea
from shipping.models.provider import DeliveryProvider, ProviderType
from shipping.models.vehicle import DeliveryVehicle, VehicleStatus, VehicleType
from shipping.services.address_lookup import AddressInfo
from shipping.services.delivery_cache import DeliveryCache
from shipping.services.delivery_service import DeliveryService
from shipping.services.escalation_policy import EscalationPolicy
from shipping.services.manual_coordination import ManualCoordinationService
from shipping.services.route_planner import RoutePlanner


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "now" for deterministic timestamps (naive UTC)
NOW = datetime(2026, 3, 2, 3, 0, 0)


# ============================================================
# Fakes for external collaborators
# ============================================================

class FakeAddressLookup:
    """Address lookup backed by a dict."""

    def __init__(self):
        self.addresses: dict[uuid.UUID, AddressInfo] = {}

    def add(
        self,
        province: Optional[str],
        district: Optional[str] = None,
        subdistrict: Optional[str] = None,
        postal_code: Optional[str] = None,
        distance_km: str = "10",
    ) -> uuid.UUID:
        address_id = uuid.uuid4()
        self.addresses[address_id] = AddressInfo(
            address_id=address_id,
            province=province,
            district=district,
            subdistrict=subdistrict,
            postal_code=postal_code,
            distance_km=Decimal(distance_km),
        )
        return address_id

    async def resolve(self, customer_id: uuid.UUID, address_id: uuid.UUID) -> AddressInfo:
        return self.addresses[address_id]


class RecordingPublisher:
    """Collects published events instead of sending them."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event_type: str, data: dict[str, Any]) -> None:
        self.events.append((event_type, data))

    async def drain(self) -> None:
        return None

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [data for t, data in self.events if t == event_type]


class InMemoryRedis:
    """The subset of RedisClient used by DeliveryCache."""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.deleted: list[str] = []

    async def get_json(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        self.deleted.extend(keys)
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


# ============================================================
# Database
# ============================================================

@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_maker() as session:
        yield session


# ============================================================
# Collaborators and services
# ============================================================

@pytest.fixture
def policy() -> EscalationPolicy:
    return EscalationPolicy.from_file(settings.ESCALATION_POLICY_PATH)


@pytest.fixture
def lookup() -> FakeAddressLookup:
    return FakeAddressLookup()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def redis_store() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def cache(redis_store) -> DeliveryCache:
    return DeliveryCache(client=redis_store)


@pytest.fixture
def delivery_service(db_session, lookup, publisher, cache, policy) -> DeliveryService:
    return DeliveryService(db_session, lookup=lookup, publisher=publisher, cache=cache, policy=policy)


@pytest.fixture
def task_service(db_session, publisher, cache, policy) -> ManualCoordinationService:
    return ManualCoordinationService(db_session, publisher=publisher, cache=cache, policy=policy)


@pytest.fixture
def route_planner(db_session, publisher, cache) -> RoutePlanner:
    return RoutePlanner(db_session, publisher=publisher, cache=cache)


# ============================================================
# Reference data
# ============================================================

def make_provider(**overrides) -> DeliveryProvider:
    data = {
        "id": uuid.uuid4(),
        "code": "fastbike",
        "name": "Fast Bike",
        "provider_type": ProviderType.API_INTEGRATED,
        "api_base_url": "https://api.fastbike.test",
        "coverage_provinces": ["Chiang Mai"],
        "max_weight_kg": Decimal("20"),
        "base_rate": Decimal("40"),
        "per_km_rate": Decimal("10"),
        "weight_surcharge_rate": Decimal("5"),
        "same_day_surcharge": Decimal("30"),
        "cod_surcharge": Decimal("0"),
        "standard_delivery_hours": 24,
        "express_delivery_hours": 4,
        "same_day_available": True,
        "cod_available": False,
        "tracking_available": True,
        "insurance_available": False,
        "weekend_service": True,
        "holiday_service": False,
        "is_active": True,
        "priority_order": 10,
        "auto_assign": True,
        "requires_approval": False,
    }
    data.update(overrides)
    return DeliveryProvider(**data)


def make_area(**overrides) -> CoverageArea:
    data = {
        "id": uuid.uuid4(),
        "province": "Bangkok",
        "is_self_delivery_area": True,
        "delivery_route": "BKK-01",
        "delivery_zone": "central",
        "priority_order": 1,
        "base_delivery_fee": Decimal("50"),
        "per_km_rate": Decimal("5"),
        "free_delivery_threshold": Decimal("500"),
        "standard_delivery_hours": 24,
        "express_delivery_hours": 4,
        "same_day_available": True,
        "is_active": True,
        "auto_assign": True,
    }
    data.update(overrides)
    return CoverageArea(**data)


def make_vehicle(**overrides) -> DeliveryVehicle:
    data = {
        "id": uuid.uuid4(),
        "license_plate": f"1AB-{uuid.uuid4().hex[:4].upper()}",
        "vehicle_type": VehicleType.VAN,
        "max_weight_kg": Decimal("800"),
        "status": VehicleStatus.ACTIVE,
        "is_active": True,
    }
    data.update(overrides)
    return DeliveryVehicle(**data)


@pytest_asyncio.fixture
async def providers(db_session) -> dict[str, DeliveryProvider]:
    """Three carriers: API bike courier, phone-booked courier, scheduled truck pickup."""
    items = {
        "fastbike": make_provider(),
        "callcourier": make_provider(
            code="callcourier",
            name="Call Courier",
            provider_type=ProviderType.MANUAL_COORDINATION,
            api_base_url=None,
            coverage_provinces=[],
            base_rate=Decimal("30"),
            per_km_rate=Decimal("12"),
            cod_surcharge=Decimal("10"),
            cod_available=True,
            same_day_available=False,
            contact_phone="+66 2 123 4567",
            contact_email="book@callcourier.test",
            priority_order=30,
        ),
        "bigtruck": make_provider(
            code="bigtruck",
            name="Big Truck Freight",
            provider_type=ProviderType.AUTO_PICKUP,
            api_base_url=None,
            coverage_provinces=[],
            max_weight_kg=Decimal("1000"),
            base_rate=Decimal("300"),
            per_km_rate=Decimal("20"),
            weight_surcharge_rate=Decimal("1"),
            same_day_available=False,
            priority_order=50,
        ),
    }
    for provider in items.values():
        db_session.add(provider)
    await db_session.commit()
    return items


@pytest_asyncio.fixture
async def coverage(db_session) -> dict[str, CoverageArea]:
    """Bangkok is self-delivered, Chiang Mai is covered but carrier-only."""
    items = {
        "bangkok": make_area(),
        "bang_rak": make_area(
            district="Bang Rak",
            postal_code="10500",
            delivery_route="BKK-CBD",
            base_delivery_fee=Decimal("30"),
            standard_delivery_hours=8,
        ),
        "chiang_mai": make_area(
            province="Chiang Mai",
            is_self_delivery_area=False,
            delivery_route=None,
            delivery_zone="north",
            base_delivery_fee=Decimal("0"),
            per_km_rate=Decimal("0"),
            free_delivery_threshold=None,
        ),
    }
    for area in items.values():
        db_session.add(area)
    await db_session.commit()
    return items


@pytest_asyncio.fixture
async def vehicle(db_session) -> DeliveryVehicle:
    v = make_vehicle()
    db_session.add(v)
    await db_session.commit()
    return v


@pytest.fixture
def order_ids() -> dict[str, uuid.UUID]:
    return {"order_id": uuid.uuid4(), "customer_id": uuid.uuid4()}


# ============================================================
# HTTP client
# ============================================================

@pytest_asyncio.fixture(scope="function")
async def client(db_session, lookup, publisher, cache, policy) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_address_lookup] = lambda: lookup
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_delivery_cache] = lambda: cache
    app.dependency_overrides[get_policy] = lambda: policy

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
