"""
Seed Demo Shipments — loads the five dashboard demo containers.

Every shipment goes through the regular intake path, so compliance and
phase state come out exactly as they would from ingestion.

Run: PYTHONPATH=backend python backend/scripts/seed_demo_shipments.py
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import get_settings
from db.session import Base
from lifecycle.policy import policy_from_settings
from lifecycle.service import upsert_shipment

settings = get_settings()

# (shipment_id, container_no, carrier, port, days until ETA)
DEMO_SHIPMENTS = [
    ("1", "MAEU1234567", "Maersk", "Rotterdam", 2),
    ("2", "TCLU9876543", "COSCO", "Hamburg", 3),
    ("3", "MSKU4567890", "MSC", "Antwerp", 4),
    ("4", "COSU1112223", "CMA CGM", "Felixstowe", 5),
    ("5", "HLCU4445556", "Hapag-Lloyd", "Bremen", 6),
]


def demo_records(now: datetime | None = None) -> list[dict]:
    now = now or datetime.now(timezone.utc)
    records = []
    for shipment_id, container_no, carrier, port, days in DEMO_SHIPMENTS:
        records.append(
            {
                "shipment_id": shipment_id,
                "container_no": container_no,
                "carrier": carrier,
                "port": port,
                "eta": (now + timedelta(days=days)).isoformat(),
                "shipper": f"{carrier} Export Desk",
                "consignee": "Harbor Retail Inc",
                "hs_code": "940360",
                "commodity": "Wooden furniture",
                "source": "manual",
            }
        )
    # Leave one shipment blocked in compliance so the dashboard shows a violation.
    records[-1]["consignee"] = None
    return records


async def seed_data(database_url: str | None = None, *, create_schema: bool = False) -> list[str]:
    """Upsert the demo shipments and return their ids."""
    engine = create_async_engine(database_url or settings.database_url)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    policy = policy_from_settings(settings)

    try:
        if create_schema:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        seeded = []
        async with SessionLocal() as db:
            for record in demo_records():
                shipment, created = await upsert_shipment(db, record, policy=policy)
                seeded.append(shipment.shipment_id)
                print(
                    f"  {'+' if created else '~'} {shipment.container_no:<12} "
                    f"{shipment.current_phase:<11} {shipment.compliance_status}"
                )
        return seeded
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_data())
