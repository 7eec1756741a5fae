"""
Fleet and Allocation Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.models.order_enums import ServiceType, LogisticsStatus


class TruckTypeResponse(BaseModel):
    id: int
    name: str
    service_type: Optional[ServiceType]

    class Config:
        from_attributes = True


class TruckResponse(BaseModel):
    """Schema for displaying a truck."""
    id: int
    truck_type_id: int
    max_pickups: int
    max_dropoffs: int
    max_capacity: Decimal
    daily_operating_cost: Decimal
    is_available: bool
    available_from: Optional[datetime]
    available_until: Optional[datetime]

    class Config:
        from_attributes = True


class TruckCapacityResponse(BaseModel):
    truck_id: int
    max_pickups: int
    max_dropoffs: int
    max_capacity: Decimal


class AllocationItem(BaseModel):
    truck_id: int
    quantity: int

    class Config:
        from_attributes = True


class AllocationResponse(BaseModel):
    """Result of allocating (or reassigning) trucks."""
    logistics_details_id: int
    logistics_status: LogisticsStatus
    allocations: List[AllocationItem]


class ReassignRequest(BaseModel):
    exclude_truck_id: int = Field(..., description="Truck to release")


class LogisticsStatusUpdate(BaseModel):
    status: LogisticsStatus


class LogisticsDetailsResponse(BaseModel):
    """Schema for displaying a logistics detail with its allocations."""
    id: int
    pickup_id: int
    service_type: ServiceType
    quantity: int
    logistics_status: LogisticsStatus
    scheduled_real_pickup_at: Optional[datetime]
    scheduled_real_delivery_at: Optional[datetime]
    scheduled_simulated_pickup_at: Optional[datetime]
    scheduled_simulated_delivery_at: Optional[datetime]
    allocations: List[AllocationItem] = []


class RetrySummaryResponse(BaseModel):
    processed: int
    failed: int
    archived: int
