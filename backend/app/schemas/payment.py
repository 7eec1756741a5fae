"""
Payment Schemas.

Inbound webhook payload and reconciliation responses.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any, Dict
from backend.app.models.ledger_enums import PaymentEventStatus, ReconciliationStatus
from backend.app.models.order_enums import PaymentStatus


class PaymentWebhook(BaseModel):
    """Payment notification as delivered by the bank."""
    transaction_number: str = Field(..., min_length=1, max_length=100)
    status: PaymentEventStatus
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    description: str = Field("", max_length=1000)
    timestamp: Optional[datetime] = Field(None, description="Defaults to the time of receipt")
    from_party: Optional[str] = Field(None, alias="from", max_length=255)
    to_party: Optional[str] = Field(None, alias="to", max_length=255)
    reference: Optional[str] = Field(None, max_length=255)

    class Config:
        populate_by_name = True


class ReconciliationResponse(BaseModel):
    """Outcome of reconciling one payment event."""
    transaction_number: str
    reconciliation_status: ReconciliationStatus
    event_status: PaymentEventStatus
    amount: Decimal
    invoice_id: Optional[int]
    reference_number: Optional[str]
    payment_status: Optional[PaymentStatus]
    paid: bool
    balance: Decimal
    total_amount: Decimal
    replayed: bool

    class Config:
        from_attributes = True


class PaymentRecordResponse(BaseModel):
    """Schema for displaying a stored payment record."""
    id: int
    transaction_number: str
    status: PaymentEventStatus
    amount: Decimal
    timestamp: datetime
    description: str
    from_party: Optional[str]
    to_party: Optional[str]
    reference: Optional[str]
    invoice_id: Optional[int]
    reconciliation_status: ReconciliationStatus
    result: Optional[Dict[str, Any]]
    received_at: datetime

    class Config:
        from_attributes = True
