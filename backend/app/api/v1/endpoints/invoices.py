"""
Invoice API Endpoints.

Invoice lookup, ledger history, refunds and manual financing entries.
"""

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import LedgerRuleError
from backend.app.db.session import get_db
from backend.app.domain.orders import order_store
from backend.app.domain.ledger.ledger_service import LedgerService, FINANCING_TYPES
from backend.app.models.invoice import Invoice
from backend.app.models.ledger_enums import TransactionType
from backend.app.schemas.ledger import (
    InvoiceResponse,
    InvoiceLedgerResponse,
    LedgerEntryResponse,
    LedgerEntryCreate,
    RefundCreate,
)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


async def _invoice_response(db: AsyncSession, invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        reference_number=invoice.reference_number,
        total_amount=invoice.total_amount,
        paid=invoice.paid,
        payment_status=invoice.payment_status,
        balance=await LedgerService.invoice_balance(db, invoice.id),
        financed_amount=await LedgerService.financed_amount(db, invoice.id),
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
    )


@router.get("/by-reference/{reference_number}", response_model=InvoiceResponse)
async def get_invoice_by_reference(
    reference_number: str = Path(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    invoice = await order_store.get_invoice_by_reference(db, reference_number)
    return await _invoice_response(db, invoice)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    db: AsyncSession = Depends(get_db)
):
    invoice = await order_store.get_invoice(db, invoice_id)
    return await _invoice_response(db, invoice)


@router.get("/{invoice_id}/ledger", response_model=InvoiceLedgerResponse)
async def get_invoice_ledger(
    invoice_id: int = Path(..., description="Invoice ID"),
    db: AsyncSession = Depends(get_db)
):
    """Ledger entries of an invoice, oldest first, with computed totals."""
    invoice = await order_store.get_invoice(db, invoice_id)
    entries = await LedgerService.list_entries(db, invoice.id)
    return InvoiceLedgerResponse(
        invoice_id=invoice.id,
        balance=await LedgerService.invoice_balance(db, invoice.id),
        financed_amount=await LedgerService.financed_amount(db, invoice.id),
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
    )


@router.post("/{invoice_id}/refunds", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def refund_invoice(
    refund: RefundCreate,
    invoice_id: int = Path(..., description="Invoice ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Refund a cancelled invoice (up to its balance) or the surplus of an
    overpaid invoice.
    """
    entry = await LedgerService.record_refund(db, invoice_id, refund.amount, refund.description)
    return LedgerEntryResponse.model_validate(entry)


@router.post("/{invoice_id}/ledger-entries", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_ledger_entry(
    entry_data: LedgerEntryCreate,
    invoice_id: int = Path(..., description="Invoice ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a loan disbursement, loan repayment or business expense.

    Payments and refunds have their own channels.
    """
    if entry_data.transaction_type in FINANCING_TYPES:
        entry = await LedgerService.record_financing(
            db, invoice_id, entry_data.transaction_type, entry_data.amount, entry_data.description
        )
    elif entry_data.transaction_type == TransactionType.BUSINESS_EXPENSE:
        entry = await LedgerService.record_expense(db, invoice_id, entry_data.amount, entry_data.description)
    else:
        raise LedgerRuleError(
            invoice_id,
            f"{entry_data.transaction_type.value} entries cannot be created manually",
            "payments arrive through the webhook and refunds through the refund endpoint",
        )
    return LedgerEntryResponse.model_validate(entry)
