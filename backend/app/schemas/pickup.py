"""
Pickup Pydantic schemas.

Defines request and response models for pickup ordering.
"""

from pydantic import BaseModel, Field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from backend.app.models.order_enums import (
    PaymentStatus,
    LogisticsStatus,
    ServiceType,
    PickupStatus,
    DisplayStatus,
)


class PickupCreate(BaseModel):
    """Schema for placing a pickup order."""
    company_name: str = Field(..., min_length=1, max_length=255, description="Ordering company")
    quantity: int = Field(..., ge=1, description="Number of phone units to move")
    recipient_name: str = Field(..., min_length=1, max_length=255)
    pickup_location: Optional[str] = Field(None, max_length=255)
    delivery_location: Optional[str] = Field(None, max_length=255)
    unit_price: Optional[Decimal] = Field(None, gt=0, description="Defaults to the configured unit price")
    requested_pickup_at: Optional[datetime] = Field(None, description="Defaults to the next collection day")
    service_type: ServiceType = ServiceType.COLLECTION


class PickupCreatedResponse(BaseModel):
    """Payment instructions returned to the customer."""
    pickup_id: int
    invoice_id: int
    logistics_details_id: int
    reference_number: str
    amount_due: Decimal
    account_number: str


class PickupResponse(BaseModel):
    """Schema for pickup response with both status axes and derived statuses."""
    id: int
    company_name: str
    invoice_id: int
    reference_number: str
    logistics_details_id: int
    unit_price: Decimal
    phone_units: int
    total_amount: Decimal
    order_date: date
    order_timestamp: datetime
    order_timestamp_simulated: Optional[datetime]
    recipient_name: str
    pickup_location: Optional[str]
    delivery_location: Optional[str]
    payment_status: PaymentStatus
    logistics_status: LogisticsStatus
    paid: bool
    pickup_status: PickupStatus
    display_status: DisplayStatus

    @classmethod
    def from_order(cls, order) -> "PickupResponse":
        pickup, invoice, details = order.pickup, order.invoice, order.details
        return cls(
            id=pickup.id,
            company_name=order.company.name,
            invoice_id=invoice.id,
            reference_number=invoice.reference_number,
            logistics_details_id=details.id,
            unit_price=pickup.unit_price,
            phone_units=pickup.phone_units,
            total_amount=invoice.total_amount,
            order_date=pickup.order_date,
            order_timestamp=pickup.order_timestamp,
            order_timestamp_simulated=pickup.order_timestamp_simulated,
            recipient_name=pickup.recipient_name,
            pickup_location=pickup.pickup_location,
            delivery_location=pickup.delivery_location,
            payment_status=invoice.payment_status,
            logistics_status=details.logistics_status,
            paid=invoice.paid,
            pickup_status=order.pickup_status,
            display_status=order.display_status,
        )


class PickupListResponse(BaseModel):
    pickups: List[PickupResponse]
    total: int


class PickupStatusCatalog(BaseModel):
    """Status vocabularies in display order."""
    pickup_statuses: List[PickupStatus]
    display_statuses: List[DisplayStatus]
