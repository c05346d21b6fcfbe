"""
Test Configuration — Fixtures for async DB, test client, and shipment payloads.

Each test gets its own SQLite file so concurrent sessions behave like
independent connections to a shared store.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from api.deps import get_db, get_event_publisher, get_policy
from api.main import app
from db.session import Base
from lifecycle.policy import DEFAULT_POLICY
from lifecycle.shipment import ShipmentRecord

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingPublisher:
    """Collects published lifecycle events instead of sending them to Redis."""

    def __init__(self):
        self.events: list[dict] = []

    async def publish(self, shipment, event_type, from_phase):
        self.events.append(
            {
                "shipment_id": shipment.shipment_id,
                "event_type": event_type,
                "from_phase": from_phase,
                "to_phase": shipment.current_phase,
            }
        )
        return 1


@pytest.fixture
async def test_engine(tmp_path):
    """Create a per-test database engine with all tables built."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'freightops-test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
async def client(session_factory, publisher):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_policy] = lambda: DEFAULT_POLICY

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def _complete_payload(shipment_id: str = "SHP-1001", **overrides) -> dict:
    """Intake payload that passes every base compliance rule."""
    payload = {
        "shipment_id": shipment_id,
        "container_no": "MAEU1234567",
        "shipper": "Global Exports Ltd",
        "consignee": "Harbor Retail Inc",
        "hs_code": "850440",
        "commodity": "Power supplies",
        "port": "Rotterdam",
        "destination": "Rotterdam DC",
        "eta": (BASE_TIME + timedelta(days=3)).isoformat(),
        "source": "api",
    }
    payload.update(overrides)
    return payload


def _make_record(shipment_id: str = "SHP-1", **fields) -> ShipmentRecord:
    """A compliant in-memory shipment still sitting at intake."""
    values = {
        "container_no": "MAEU1234567",
        "shipper": "Global Exports Ltd",
        "consignee": "Harbor Retail Inc",
        "hs_code": "850440",
        "commodity": "Power supplies",
        "port": "Rotterdam",
        "destination": "Rotterdam DC",
        "eta": BASE_TIME + timedelta(days=3),
    }
    values.update(fields)
    return ShipmentRecord(shipment_id=shipment_id, **values)


@pytest.fixture
def complete_payload():
    return _complete_payload


@pytest.fixture
def make_record():
    return _make_record
