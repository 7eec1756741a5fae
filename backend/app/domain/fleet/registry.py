"""
Fleet Registry.

Read access to truck types and trucks, plus the committed usage of each
truck recomputed from its active allocations.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.truck import Truck, TruckType
from backend.app.models.truck_allocation import TruckAllocation
from backend.app.models.logistics_details import LogisticsDetails
from backend.app.models.order_enums import LogisticsStatus, ServiceType
from backend.app.services.simulation_clock import as_utc

TERMINAL_LOGISTICS_STATUSES = (LogisticsStatus.DELIVERED, LogisticsStatus.CANCELLED)


@dataclass
class TruckUsage:
    """Committed usage of one truck across its active allocations."""
    pickups: int = 0
    dropoffs: int = 0
    quantity: int = 0


async def get_truck_type(db: AsyncSession, truck_type_id: int) -> TruckType:
    truck_type = await db.get(TruckType, truck_type_id)
    if not truck_type:
        raise ResourceNotFoundError("TruckType", truck_type_id)
    return truck_type


async def list_truck_types(db: AsyncSession) -> List[TruckType]:
    result = await db.execute(select(TruckType).order_by(TruckType.id))
    return list(result.scalars().all())


async def list_trucks(db: AsyncSession) -> List[Truck]:
    result = await db.execute(select(Truck).order_by(Truck.id))
    return list(result.scalars().all())


async def get_truck(db: AsyncSession, truck_id: int) -> Truck:
    truck = await db.get(Truck, truck_id)
    if not truck:
        raise ResourceNotFoundError("Truck", truck_id)
    return truck


async def get_truck_capacity(db: AsyncSession, truck_id: int) -> dict:
    """
    Get the capacity ceilings of a truck.

    Raises:
        ResourceNotFoundError: If the truck does not exist
    """
    truck = await get_truck(db, truck_id)
    return {
        "truck_id": truck.id,
        "max_pickups": truck.max_pickups,
        "max_dropoffs": truck.max_dropoffs,
        "max_capacity": truck.max_capacity,
    }


def _window_covers(truck: Truck, window_start: Optional[datetime], window_end: Optional[datetime]) -> bool:
    available_from = as_utc(truck.available_from)
    available_until = as_utc(truck.available_until)
    if window_start is not None and available_from is not None and available_from > as_utc(window_start):
        return False
    if window_end is not None and available_until is not None and available_until < as_utc(window_end):
        return False
    return True


async def list_available_trucks(
    db: AsyncSession,
    service_type: ServiceType,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[Truck]:
    """
    List trucks that can serve a leg of ``service_type`` in the given window.

    A truck qualifies when it is marked available, its type is compatible
    with the service type (null type service_type matches everything) and
    its service window covers ``[window_start, window_end]``. A missing
    bound on either side is treated as open.
    """
    stmt = (
        select(Truck)
        .join(TruckType, Truck.truck_type_id == TruckType.id)
        .where(
            Truck.is_available.is_(True),
            (TruckType.service_type.is_(None)) | (TruckType.service_type == service_type),
        )
        .order_by(Truck.id)
    )
    result = await db.execute(stmt)
    return [truck for truck in result.scalars().all() if _window_covers(truck, window_start, window_end)]


async def committed_usage(db: AsyncSession, truck_ids: Iterable[int]) -> Dict[int, TruckUsage]:
    """
    Recompute committed usage per truck from active allocations.

    Active means the allocated logistics detail is neither DELIVERED nor
    CANCELLED. Every truck id passed in gets an entry, zero when idle.
    """
    truck_ids = list(truck_ids)
    usage = {truck_id: TruckUsage() for truck_id in truck_ids}
    if not truck_ids:
        return usage

    stmt = (
        select(
            TruckAllocation.truck_id,
            LogisticsDetails.service_type,
            func.count(TruckAllocation.logistics_details_id),
            func.coalesce(func.sum(TruckAllocation.quantity), 0),
        )
        .join(LogisticsDetails, TruckAllocation.logistics_details_id == LogisticsDetails.id)
        .where(
            TruckAllocation.truck_id.in_(truck_ids),
            LogisticsDetails.logistics_status.not_in(TERMINAL_LOGISTICS_STATUSES),
        )
        .group_by(TruckAllocation.truck_id, LogisticsDetails.service_type)
    )
    result = await db.execute(stmt)
    for truck_id, service_type, orders, quantity in result.all():
        entry = usage[truck_id]
        if service_type == ServiceType.DELIVERY:
            entry.dropoffs += orders
        else:
            entry.pickups += orders
        entry.quantity += int(quantity)
    return usage


def capacity_headroom(truck: Truck, usage: TruckUsage) -> int:
    """Remaining whole units a truck can still carry (never negative)."""
    headroom = int(Decimal(truck.max_capacity)) - usage.quantity
    return max(headroom, 0)


def slot_headroom(truck: Truck, usage: TruckUsage, service_type: ServiceType) -> int:
    """Remaining order slots of a truck for the given leg type."""
    if service_type == ServiceType.DELIVERY:
        return max(truck.max_dropoffs - usage.dropoffs, 0)
    return max(truck.max_pickups - usage.pickups, 0)
