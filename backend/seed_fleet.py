"""
Database seeding script for the truck fleet.

Creates one truck type per service leg plus a general-purpose type, and a
handful of trucks for each, for testing and development.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal
from backend.app.models.truck import TruckType, Truck
from backend.app.models.order_enums import ServiceType
from sqlalchemy import select

# (type name, service type, trucks as (max_pickups, max_dropoffs, max_capacity, daily cost))
FLEET = [
    ("Collection Van", ServiceType.COLLECTION, [
        (8, 2, 120, "85.00"),
        (8, 2, 120, "85.00"),
    ]),
    ("Delivery Van", ServiceType.DELIVERY, [
        (2, 8, 120, "90.00"),
    ]),
    ("Box Truck", None, [
        (5, 5, 400, "210.00"),
        (4, 4, 250, "160.00"),
    ]),
]


async def seed_fleet():
    """
    Seed truck types and trucks.

    Skips seeding when any truck type already exists.
    """
    async with AsyncSessionLocal() as db:
        print("🌱 Starting fleet seeding...")

        result = await db.execute(select(TruckType).limit(1))
        if result.scalar_one_or_none():
            print("ℹ️  Truck types already exist, skipping seeding")
            return

        for name, service_type, trucks in FLEET:
            truck_type = TruckType(name=name, service_type=service_type)
            db.add(truck_type)
            await db.flush()

            for max_pickups, max_dropoffs, max_capacity, daily_cost in trucks:
                db.add(Truck(
                    truck_type_id=truck_type.id,
                    max_pickups=max_pickups,
                    max_dropoffs=max_dropoffs,
                    max_capacity=Decimal(max_capacity),
                    daily_operating_cost=Decimal(daily_cost),
                    is_available=True,
                    allocation_version=0,
                ))
            print(f"✅ Created {name} with {len(trucks)} truck(s)")

        await db.commit()

        print("\n🎉 Fleet seeding completed successfully!")
        print("\nNote: companies are created on their first pickup order via POST /v1/pickups")


if __name__ == "__main__":
    asyncio.run(seed_fleet())
