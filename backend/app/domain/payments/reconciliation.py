"""
Payment Reconciliation Engine (Domain Logic).

Turns externally reported payment events into ledger entries and invoice
state. Must be idempotent: the transaction number of an event is recorded
once, and every redelivery returns the result computed the first time.

Flow:
1. Replay check (existing PaymentRecord)
2. Persist PaymentRecord (unique transaction_number)
3. Resolve invoice by reference, then description
4. FAILED -> zero-amount marker entry
5. SUCCESS -> PAYMENT_RECEIVED entry, recompute paid / payment_status
6. Commit, then publish events
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    DuplicatePaymentError,
    ResourceNotFoundError,
    UnresolvedInvoiceError,
)
from backend.app.core.reliability import run_in_transaction
from backend.app.models.invoice import Invoice
from backend.app.models.payment_record import PaymentRecord
from backend.app.models.ledger_enums import (
    PaymentEventStatus,
    ReconciliationStatus,
    TransactionType,
)
from backend.app.models.order_enums import PaymentStatus
from backend.app.domain.ledger.ledger_service import LedgerService, quantize_money
from backend.app.services.events import publish_event
from backend.app.services.simulation_clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PaymentEvent:
    """Inbound payment notification."""
    transaction_number: str
    status: PaymentEventStatus
    amount: Decimal
    timestamp: Optional[datetime] = None
    description: str = ""
    from_party: Optional[str] = None
    to_party: Optional[str] = None
    reference: Optional[str] = None


@dataclass
class ReconciliationResult:
    transaction_number: str
    reconciliation_status: ReconciliationStatus
    event_status: PaymentEventStatus
    amount: Decimal
    invoice_id: Optional[int] = None
    reference_number: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    paid: bool = False
    balance: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    invoice_became_paid: bool = False
    replayed: bool = field(default=False)

    def to_snapshot(self) -> dict:
        """JSON-safe form stored on the payment record."""
        data = asdict(self)
        data.pop("replayed")
        for key in ("amount", "balance", "total_amount"):
            data[key] = str(data[key])
        for key in ("reconciliation_status", "event_status", "payment_status"):
            if data[key] is not None:
                data[key] = data[key].value
        return data

    @classmethod
    def from_snapshot(cls, data: dict, replayed: bool = True) -> "ReconciliationResult":
        return cls(
            transaction_number=data["transaction_number"],
            reconciliation_status=ReconciliationStatus(data["reconciliation_status"]),
            event_status=PaymentEventStatus(data["event_status"]),
            amount=Decimal(data["amount"]),
            invoice_id=data.get("invoice_id"),
            reference_number=data.get("reference_number"),
            payment_status=PaymentStatus(data["payment_status"]) if data.get("payment_status") else None,
            paid=data.get("paid", False),
            balance=Decimal(data["balance"]),
            total_amount=Decimal(data["total_amount"]),
            invoice_became_paid=data.get("invoice_became_paid", False),
            replayed=replayed,
        )


def _candidate_references(event: PaymentEvent):
    for value in (event.reference, event.description):
        if value and value.strip():
            yield value.strip()


async def get_payment_record(db: AsyncSession, transaction_number: str) -> Optional[PaymentRecord]:
    result = await db.execute(
        select(PaymentRecord).where(PaymentRecord.transaction_number == transaction_number)
    )
    return result.scalar_one_or_none()


async def get_payment(db: AsyncSession, transaction_number: str) -> PaymentRecord:
    record = await get_payment_record(db, transaction_number)
    if not record:
        raise ResourceNotFoundError("PaymentRecord", transaction_number)
    return record


def _replay(record: PaymentRecord) -> ReconciliationResult:
    if record.reconciliation_status == ReconciliationStatus.UNRESOLVED:
        raise UnresolvedInvoiceError(record.transaction_number, record.reference, record.description)
    logger.info("Replaying payment %s", record.transaction_number)
    return ReconciliationResult.from_snapshot(record.result, replayed=True)


async def _resolve_invoice(db: AsyncSession, event: PaymentEvent) -> Optional[Invoice]:
    for candidate in _candidate_references(event):
        invoice = await LedgerService.lock_invoice(db, reference_number=candidate)
        if invoice is not None:
            return invoice
    return None


async def apply_payment_event(db: AsyncSession, event: PaymentEvent) -> ReconciliationResult:
    """
    Reconcile one payment event against the ledger and commit.

    Returns:
        ReconciliationResult (``replayed`` is True for a redelivered event)

    Raises:
        UnresolvedInvoiceError: The event matches no invoice; the payment
            record is committed as UNRESOLVED first
        ConcurrencyConflictError: The invoice kept changing underneath us
    """
    existing = await get_payment_record(db, event.transaction_number)
    if existing is not None:
        return _replay(existing)

    amount = quantize_money(event.amount)
    paid_at = event.timestamp or utcnow()

    async def _reconcile(session: AsyncSession) -> Optional[ReconciliationResult]:
        record = PaymentRecord(
            transaction_number=event.transaction_number,
            status=event.status,
            amount=amount,
            timestamp=paid_at,
            description=event.description or "",
            from_party=event.from_party,
            to_party=event.to_party,
            reference=event.reference,
            reconciliation_status=ReconciliationStatus.UNRESOLVED,
        )
        session.add(record)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicatePaymentError(event.transaction_number) from exc

        invoice = await _resolve_invoice(session, event)
        if invoice is None:
            # Kept as UNRESOLVED so the money is never silently dropped
            return None

        was_paid = invoice.paid
        if event.status == PaymentEventStatus.FAILED:
            await LedgerService.append(
                session, invoice.id, TransactionType.PAYMENT_FAILED, Decimal("0"),
                description=f"Failed payment {event.transaction_number}",
                transaction_date=paid_at,
                payment_record_id=record.id,
            )
            await LedgerService.write_invoice_state(session, invoice, invoice.payment_status, invoice.paid)
        else:
            await LedgerService.append(
                session, invoice.id, TransactionType.PAYMENT_RECEIVED, amount,
                description=f"Payment {event.transaction_number}",
                transaction_date=paid_at,
                payment_record_id=record.id,
            )
            await LedgerService.settle_invoice_state(session, invoice)

        result = ReconciliationResult(
            transaction_number=event.transaction_number,
            reconciliation_status=ReconciliationStatus.RECONCILED,
            event_status=event.status,
            amount=amount,
            invoice_id=invoice.id,
            reference_number=invoice.reference_number,
            payment_status=invoice.payment_status,
            paid=invoice.paid,
            balance=await LedgerService.invoice_balance(session, invoice.id),
            total_amount=quantize_money(invoice.total_amount),
            invoice_became_paid=invoice.paid and not was_paid,
        )
        record.invoice_id = invoice.id
        record.reconciliation_status = ReconciliationStatus.RECONCILED
        record.result = result.to_snapshot()
        await session.flush()
        return result

    try:
        result = await run_in_transaction(db, _reconcile, label=f"payment {event.transaction_number}")
    except DuplicatePaymentError:
        # Lost the race against a concurrent delivery of the same event
        record = await get_payment_record(db, event.transaction_number)
        if record is None:
            raise
        return _replay(record)

    if result is None:
        logger.warning(
            "Unresolved payment %s (reference=%r, description=%r)",
            event.transaction_number, event.reference, event.description,
        )
        raise UnresolvedInvoiceError(event.transaction_number, event.reference, event.description)

    if event.status == PaymentEventStatus.FAILED:
        logger.warning(
            "Payment %s failed for invoice %s", event.transaction_number, result.reference_number,
            extra={"invoice_id": result.invoice_id},
        )
    else:
        logger.info(
            "Reconciled payment %s: invoice %s balance %s/%s (%s)",
            event.transaction_number, result.reference_number, result.balance,
            result.total_amount, result.payment_status.value,
        )

    await publish_event("payment.reconciled", result.to_snapshot())
    if result.invoice_became_paid:
        await publish_event("invoice.paid", {
            "invoice_id": result.invoice_id,
            "reference_number": result.reference_number,
            "total_amount": result.total_amount,
        })
    return result
