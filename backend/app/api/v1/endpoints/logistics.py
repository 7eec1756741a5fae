"""
Logistics API Endpoints.

Truck allocation and physical status changes of logistics details.
"""

from typing import List
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.allocation import scheduler
from backend.app.domain.orders import order_store
from backend.app.models.truck_allocation import TruckAllocation
from backend.app.schemas.fleet import (
    AllocationItem,
    AllocationResponse,
    LogisticsDetailsResponse,
    LogisticsStatusUpdate,
    ReassignRequest,
    RetrySummaryResponse,
)
from backend.app.services.events import publish_event

router = APIRouter(prefix="/logistics", tags=["Logistics"])


def _allocation_items(allocations: List[TruckAllocation]) -> List[AllocationItem]:
    return [AllocationItem(truck_id=a.truck_id, quantity=a.quantity) for a in allocations]


async def _details_response(db: AsyncSession, logistics_details_id: int) -> LogisticsDetailsResponse:
    order = await order_store.load_order(db, logistics_details_id=logistics_details_id)
    details = order.details
    allocations = await scheduler.list_allocations(db, details.id)
    return LogisticsDetailsResponse(
        id=details.id,
        pickup_id=details.pickup_id,
        service_type=details.service_type,
        quantity=details.quantity,
        logistics_status=details.logistics_status,
        scheduled_real_pickup_at=details.scheduled_real_pickup_at,
        scheduled_real_delivery_at=details.scheduled_real_delivery_at,
        scheduled_simulated_pickup_at=details.scheduled_simulated_pickup_at,
        scheduled_simulated_delivery_at=details.scheduled_simulated_delivery_at,
        allocations=_allocation_items(allocations),
    )


@router.post("/retry-failed", response_model=RetrySummaryResponse)
async def retry_failed_allocations(db: AsyncSession = Depends(get_db)):
    """Re-run automatic allocations parked in the dead-letter queue."""
    summary = await scheduler.retry_failed_allocations(db)
    return RetrySummaryResponse(**summary)


@router.get("/{logistics_details_id}", response_model=LogisticsDetailsResponse)
async def get_logistics_details(
    logistics_details_id: int = Path(..., description="Logistics details ID"),
    db: AsyncSession = Depends(get_db)
):
    return await _details_response(db, logistics_details_id)


@router.post("/{logistics_details_id}/allocate", response_model=AllocationResponse)
async def allocate_trucks(
    logistics_details_id: int = Path(..., description="Logistics details ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Allocate trucks to a paid order.

    - 409 ERR_PAYMENT_GATE when payment does not allow dispatch yet
    - 409 ERR_INSUFFICIENT_CAPACITY when the fleet cannot absorb the order
    - 409 ERR_CONCURRENCY_CONFLICT when concurrent allocations kept taking
      the same trucks; nothing was written and the request can be retried
      (headroom may still be free)
    """
    allocations = await scheduler.allocate_trucks(db, logistics_details_id)
    order = await order_store.load_order(db, logistics_details_id=logistics_details_id)
    return AllocationResponse(
        logistics_details_id=logistics_details_id,
        logistics_status=order.details.logistics_status,
        allocations=_allocation_items(allocations),
    )


@router.post("/{logistics_details_id}/reassign", response_model=AllocationResponse)
async def reassign_trucks(
    request: ReassignRequest,
    logistics_details_id: int = Path(..., description="Logistics details ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Move an allocation away from a truck that became unavailable.

    A 409 ERR_CONCURRENCY_CONFLICT leaves the original allocation in place
    and can be retried.
    """
    allocations = await scheduler.reassign_trucks(db, logistics_details_id, request.exclude_truck_id)
    order = await order_store.load_order(db, logistics_details_id=logistics_details_id)
    return AllocationResponse(
        logistics_details_id=logistics_details_id,
        logistics_status=order.details.logistics_status,
        allocations=_allocation_items(allocations),
    )


@router.post("/{logistics_details_id}/status", response_model=LogisticsDetailsResponse)
async def update_logistics_status(
    update: LogisticsStatusUpdate,
    logistics_details_id: int = Path(..., description="Logistics details ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Advance the physical status one step (COLLECTED, OUT_FOR_DELIVERY,
    DELIVERED).
    """
    order = await order_store.advance_logistics(db, logistics_details_id, update.status)
    await publish_event("logistics.status_changed", {
        "logistics_details_id": logistics_details_id,
        "pickup_id": order.pickup.id,
        "logistics_status": update.status.value,
    })
    return await _details_response(db, logistics_details_id)
