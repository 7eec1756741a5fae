"""
Pickup API Endpoints.

Order placement, lookup and cancellation.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.orders import order_store
from backend.app.models.order_enums import PickupStatus, DisplayStatus
from backend.app.schemas.pickup import (
    PickupCreate,
    PickupCreatedResponse,
    PickupResponse,
    PickupListResponse,
    PickupStatusCatalog,
)
from backend.app.services.events import publish_event

router = APIRouter(prefix="/pickups", tags=["Pickups"])


@router.post("", response_model=PickupCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_pickup(
    pickup_data: PickupCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Place a pickup order.

    Creates the company on first use, then the invoice, the pickup and its
    logistics details atomically. Returns the payment instructions.
    """
    created = await order_store.create_pickup(
        db,
        company_name=pickup_data.company_name,
        quantity=pickup_data.quantity,
        recipient_name=pickup_data.recipient_name,
        pickup_location=pickup_data.pickup_location,
        delivery_location=pickup_data.delivery_location,
        unit_price=pickup_data.unit_price,
        requested_pickup_at=pickup_data.requested_pickup_at,
        service_type=pickup_data.service_type,
    )
    await publish_event("pickup.created", {
        "pickup_id": created.pickup_id,
        "reference_number": created.reference_number,
        "amount_due": created.amount_due,
    })
    return PickupCreatedResponse(**created.__dict__)


@router.get("/statuses", response_model=PickupStatusCatalog)
async def list_pickup_statuses():
    """Status vocabularies in display order."""
    return PickupStatusCatalog(
        pickup_statuses=list(PickupStatus),
        display_statuses=list(DisplayStatus),
    )


@router.get("", response_model=PickupListResponse)
async def list_pickups(
    company_name: str = Query(..., min_length=1, description="Ordering company"),
    status_filter: Optional[str] = Query(None, alias="status", description="Catalog or display status"),
    db: AsyncSession = Depends(get_db)
):
    """List a company's pickups, optionally filtered by status."""
    orders = await order_store.list_pickups(db, company_name, status_filter)
    return PickupListResponse(
        pickups=[PickupResponse.from_order(order) for order in orders],
        total=len(orders),
    )


@router.get("/{pickup_id}", response_model=PickupResponse)
async def get_pickup(
    pickup_id: int = Path(..., description="Pickup ID"),
    db: AsyncSession = Depends(get_db)
):
    order = await order_store.get_pickup(db, pickup_id)
    return PickupResponse.from_order(order)


@router.post("/{pickup_id}/cancel", response_model=PickupResponse)
async def cancel_pickup(
    pickup_id: int = Path(..., description="Pickup ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel a pickup.

    Unpaid invoices are cancelled with it; paid invoices stay PAID and can
    be refunded separately. Delivered pickups cannot be cancelled (409).
    """
    order = await order_store.cancel_pickup(db, pickup_id)
    await publish_event("pickup.cancelled", {
        "pickup_id": pickup_id,
        "payment_status": order.invoice.payment_status.value,
    })
    return PickupResponse.from_order(order)
