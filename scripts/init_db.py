#!/usr/bin/env python3
"""
Initialize database with sample data for development/testing.

Service records are created through the SQL record store so each one gets
its creation history entry, and one record is updated and deleted to give
the audit trail something to show.
"""

import asyncio
import sys
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add server directory to path
sys.path.append(str(Path(__file__).parent.parent / "server"))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autoservice.config import settings
from autoservice.models import (
    Product,
    ServiceRecordProduct,
    ServiceRecordService,
    ServiceType,
)
from autoservice.models.base import Base
from autoservice.services.lifecycle import ServiceRecordLifecycleManager
from autoservice.services.record_store import SQLRecordStore


async def init_database():
    """Create tables and seed with sample data."""
    print("Initializing database...")

    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    # Create tables
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Seed sample data
    print("Seeding sample data...")
    async with async_session_maker() as db:
        service_types = [
            ServiceType(name="เปลี่ยนน้ำมันเครื่อง"),
            ServiceType(name="สลับยาง"),
            ServiceType(name="ตรวจเช็คเบรก"),
        ]
        products = [
            Product(name="น้ำมันเครื่อง 5W-30 (4L)", price=Decimal("1250.00"), stock=24),
            Product(name="กรองน้ำมันเครื่อง", price=Decimal("180.00"), stock=40),
            Product(name="ผ้าเบรกหน้า", price=Decimal("950.00"), stock=12),
        ]
        db.add_all(service_types + products)
        await db.commit()

        manager = ServiceRecordLifecycleManager(
            SQLRecordStore(db), default_actor=settings.DEFAULT_ACTOR
        )
        today = datetime.now(timezone.utc).replace(hour=9, minute=0, second=0, microsecond=0)

        samples = [
            {"license_plate": "1กก2345", "service_date": today, "notes": "เปลี่ยนน้ำมันตามระยะ"},
            {"license_plate": "2ขข6789", "service_date": today - timedelta(days=3), "notes": None},
            {"license_plate": "3คค1111", "service_date": today - timedelta(days=10), "notes": None},
        ]

        record_ids = []
        for fields in samples:
            result = await manager.create(fields)
            if not result.success:
                raise RuntimeError(f"Failed to seed service record: {result.message}")
            record_ids.append(result.data["id"])

        # Line items for the first record
        first_id = uuid.UUID(record_ids[0])
        db.add(
            ServiceRecordService(service_record_id=first_id, service_type_id=service_types[0].id)
        )
        db.add(
            ServiceRecordProduct(
                service_record_id=first_id,
                product_id=products[0].id,
                quantity=1,
                price_at_time=products[0].price,
            )
        )
        await db.commit()

        # Give the audit trail a few entries
        await manager.update(
            record_ids[1], {"notes": "ลูกค้าแจ้งเสียงดังที่ล้อหน้า"}, reason="เพิ่มอาการจากลูกค้า"
        )
        await manager.soft_delete(record_ids[2], reason="บันทึกซ้ำ")

    print("Database initialized successfully!")
    print(f"Created {len(service_types)} service types")
    print(f"Created {len(products)} products")
    print(f"Created {len(record_ids)} service records")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
