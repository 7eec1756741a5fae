"""
Invoice and Ledger Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.models.ledger_enums import TransactionType
from backend.app.models.order_enums import PaymentStatus


class InvoiceResponse(BaseModel):
    """Schema for displaying an invoice with its ledger-derived balance."""
    id: int
    reference_number: str
    total_amount: Decimal
    paid: bool
    payment_status: PaymentStatus
    balance: Decimal
    financed_amount: Decimal
    created_at: datetime
    updated_at: datetime


class LedgerEntryResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    invoice_id: int
    transaction_type: TransactionType
    amount: Decimal
    description: Optional[str]
    transaction_date: datetime
    payment_record_id: Optional[int]

    class Config:
        from_attributes = True


class InvoiceLedgerResponse(BaseModel):
    invoice_id: int
    balance: Decimal
    financed_amount: Decimal
    entries: List[LedgerEntryResponse]


class RefundCreate(BaseModel):
    """Schema for refunding money on an invoice."""
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class LedgerEntryCreate(BaseModel):
    """Schema for a manual financing or expense entry."""
    transaction_type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class LedgerTypeTotal(BaseModel):
    transaction_type: TransactionType
    entries: int
    total: Decimal


class LedgerPeriodSummary(BaseModel):
    """Grouped ledger sums for one day or month."""
    period: str
    net: Decimal
    totals: List[LedgerTypeTotal]
