"""
Fleet API Endpoints.

Read-only access to the truck catalog and truck availability.
"""

from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.fleet import registry
from backend.app.models.order_enums import ServiceType
from backend.app.schemas.fleet import TruckTypeResponse, TruckResponse, TruckCapacityResponse

router = APIRouter(prefix="/fleet", tags=["Fleet"])


@router.get("/truck-types", response_model=List[TruckTypeResponse])
async def list_truck_types(db: AsyncSession = Depends(get_db)):
    truck_types = await registry.list_truck_types(db)
    return [TruckTypeResponse.model_validate(t) for t in truck_types]


@router.get("/trucks", response_model=List[TruckResponse])
async def list_trucks(db: AsyncSession = Depends(get_db)):
    trucks = await registry.list_trucks(db)
    return [TruckResponse.model_validate(t) for t in trucks]


@router.get("/trucks/available", response_model=List[TruckResponse])
async def list_available_trucks(
    service_type: ServiceType = Query(ServiceType.COLLECTION),
    window_start: Optional[datetime] = Query(None),
    window_end: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Trucks able to serve ``service_type`` for the whole window."""
    trucks = await registry.list_available_trucks(db, service_type, window_start, window_end)
    return [TruckResponse.model_validate(t) for t in trucks]


@router.get("/trucks/{truck_id}/capacity", response_model=TruckCapacityResponse)
async def get_truck_capacity(
    truck_id: int = Path(..., description="Truck ID"),
    db: AsyncSession = Depends(get_db)
):
    return TruckCapacityResponse(**await registry.get_truck_capacity(db, truck_id))
