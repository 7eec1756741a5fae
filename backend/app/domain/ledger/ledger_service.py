"""
Transaction Ledger (Domain Logic).

Append-only money movements per invoice. The settled balance and the
outstanding financing of an invoice are always computed from the entries,
never stored as running totals. The cached ``Invoice.paid`` flag is written
only through ``write_invoice_state`` in the same transaction as an append.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    ConcurrencyConflictError,
    LedgerRuleError,
    ResourceNotFoundError,
)
from backend.app.core.reliability import run_in_transaction
from backend.app.models.invoice import Invoice
from backend.app.models.ledger_entry import TransactionLedgerEntry
from backend.app.models.ledger_enums import TransactionType
from backend.app.models.order_enums import PaymentStatus
from backend.app.domain.orders.state_machine import transition_payment
from backend.app.services.simulation_clock import utcnow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Sign applied to the (non-negative) amount of each entry type
ENTRY_SIGNS = {
    TransactionType.PAYMENT_RECEIVED: 1,
    TransactionType.REFUND: -1,
    TransactionType.LOAN_DISBURSEMENT: 1,
    TransactionType.LOAN_REPAYMENT: -1,
    TransactionType.BUSINESS_EXPENSE: -1,
    TransactionType.PAYMENT_FAILED: 0,
}

SETTLEMENT_TYPES = (TransactionType.PAYMENT_RECEIVED, TransactionType.REFUND)
FINANCING_TYPES = (TransactionType.LOAN_DISBURSEMENT, TransactionType.LOAN_REPAYMENT)


def quantize_money(value) -> Decimal:
    """Normalize any numeric input to a two-place Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class LedgerService:

    @staticmethod
    async def append(
        db: AsyncSession,
        invoice_id: int,
        transaction_type: TransactionType,
        amount=Decimal("0"),
        description: Optional[str] = None,
        transaction_date: Optional[datetime] = None,
        payment_record_id: Optional[int] = None,
    ) -> TransactionLedgerEntry:
        """
        Append one ledger entry. This is the only write path of the ledger.

        Args:
            db: Database session (transaction managed by caller)
            invoice_id: Invoice the movement is attributed to
            transaction_type: Entry type, decides the sign
            amount: Magnitude of the movement (non-negative)
            description: Free text
            transaction_date: When the money moved (defaults to now)
            payment_record_id: Originating payment record, if any

        Returns:
            The flushed entry with its signed amount
        """
        magnitude = quantize_money(amount)
        if magnitude < 0:
            raise LedgerRuleError(
                invoice_id,
                f"Ledger amounts are given as magnitudes, got {magnitude}",
                "entry amount is non-negative before signing",
            )
        sign = ENTRY_SIGNS[transaction_type]
        if sign == 0 and magnitude != 0:
            raise LedgerRuleError(
                invoice_id,
                f"{transaction_type.value} entries carry no amount",
                "marker entries are zero-amount",
            )

        entry = TransactionLedgerEntry(
            invoice_id=invoice_id,
            transaction_type=transaction_type,
            amount=magnitude * sign,
            description=description,
            transaction_date=transaction_date or utcnow(),
            payment_record_id=payment_record_id,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def _sum(db: AsyncSession, invoice_id: int, types) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(TransactionLedgerEntry.amount), 0)).where(
                TransactionLedgerEntry.invoice_id == invoice_id,
                TransactionLedgerEntry.transaction_type.in_(types),
            )
        )
        return quantize_money(result.scalar_one())

    @staticmethod
    async def invoice_balance(db: AsyncSession, invoice_id: int) -> Decimal:
        """Settled balance: payments received minus refunds."""
        return await LedgerService._sum(db, invoice_id, SETTLEMENT_TYPES)

    @staticmethod
    async def financed_amount(db: AsyncSession, invoice_id: int) -> Decimal:
        """Outstanding financing: loan disbursements minus repayments."""
        return await LedgerService._sum(db, invoice_id, FINANCING_TYPES)

    @staticmethod
    async def list_entries(db: AsyncSession, invoice_id: int) -> List[TransactionLedgerEntry]:
        result = await db.execute(
            select(TransactionLedgerEntry)
            .where(TransactionLedgerEntry.invoice_id == invoice_id)
            .order_by(TransactionLedgerEntry.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def lock_invoice(db: AsyncSession, invoice_id: int = None, reference_number: str = None) -> Optional[Invoice]:
        """
        Load an invoice with a row lock (SELECT ... FOR UPDATE where supported).

        Returns None when no invoice matches.
        """
        stmt = select(Invoice).with_for_update()
        if invoice_id is not None:
            stmt = stmt.where(Invoice.id == invoice_id)
        else:
            stmt = stmt.where(Invoice.reference_number == reference_number)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def write_invoice_state(
        db: AsyncSession,
        invoice: Invoice,
        payment_status: PaymentStatus,
        paid: bool,
    ) -> Invoice:
        """
        Persist the payment axis and the cached paid flag, bumping the version.

        The UPDATE is conditional on the version read earlier in the same
        transaction.

        Raises:
            ConcurrencyConflictError: If another transaction changed the invoice
        """
        expected = invoice.version
        result = await db.execute(
            update(Invoice)
            .where(Invoice.id == invoice.id, Invoice.version == expected)
            .values(payment_status=payment_status, paid=paid, version=expected + 1, updated_at=utcnow())
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError("Invoice", invoice.id)
        return invoice

    @staticmethod
    async def settle_invoice_state(db: AsyncSession, invoice: Invoice) -> Invoice:
        """
        Recompute the paid flag and payment axis from the ledger.

        A cancelled invoice keeps its payment axis; a PAID invoice stays PAID.
        """
        balance = await LedgerService.invoice_balance(db, invoice.id)
        total = quantize_money(invoice.total_amount)
        paid = balance >= total

        current = invoice.payment_status
        target = current
        if current not in (PaymentStatus.CANCELLED, PaymentStatus.PAID):
            if paid:
                target = PaymentStatus.PAID
            elif balance > 0:
                target = PaymentStatus.PARTIALLY_PAID
        target = transition_payment(invoice.id, current, target)
        return await LedgerService.write_invoice_state(db, invoice, target, paid)

    @staticmethod
    async def record_refund(
        db: AsyncSession,
        invoice_id: int,
        amount,
        description: Optional[str] = None,
    ) -> TransactionLedgerEntry:
        """
        Refund money against an invoice and commit.

        Cancelled invoices can be refunded up to their settled balance; paid
        invoices only up to the surplus above the total. Any other payment
        status rejects refunds.
        """
        amount = quantize_money(amount)

        async def _refund(session: AsyncSession) -> TransactionLedgerEntry:
            invoice = await LedgerService.lock_invoice(session, invoice_id=invoice_id)
            if invoice is None:
                raise ResourceNotFoundError("Invoice", invoice_id)

            balance = await LedgerService.invoice_balance(session, invoice.id)
            total = quantize_money(invoice.total_amount)
            if invoice.payment_status == PaymentStatus.CANCELLED:
                refundable = balance
            elif invoice.payment_status == PaymentStatus.PAID:
                refundable = max(balance - total, Decimal("0.00"))
            else:
                raise LedgerRuleError(
                    invoice.id,
                    f"Invoice {invoice.id} is {invoice.payment_status.value}; refunds need a cancelled or overpaid invoice",
                    "refunds only release cancelled balances or surplus above the total",
                )
            if amount <= 0 or amount > refundable:
                raise LedgerRuleError(
                    invoice.id,
                    f"Refund of {amount} exceeds refundable amount {refundable}",
                    "refunds never exceed the refundable balance",
                )

            entry = await LedgerService.append(
                session, invoice.id, TransactionType.REFUND, amount,
                description=description or f"Refund for invoice {invoice.reference_number}",
            )
            await LedgerService.settle_invoice_state(session, invoice)
            return entry

        entry = await run_in_transaction(db, _refund, label=f"refund invoice {invoice_id}")
        logger.info("Recorded refund of %s on invoice %s", amount, invoice_id)
        return entry

    @staticmethod
    async def record_financing(
        db: AsyncSession,
        invoice_id: int,
        transaction_type: TransactionType,
        amount,
        description: Optional[str] = None,
    ) -> TransactionLedgerEntry:
        """
        Record a loan disbursement or repayment against an invoice and commit.

        A repayment may not exceed the outstanding financing.
        """
        if transaction_type not in FINANCING_TYPES:
            raise LedgerRuleError(
                invoice_id,
                f"{transaction_type.value} is not a financing entry",
                "financing entries are loan disbursements or repayments",
            )
        amount = quantize_money(amount)

        async def _finance(session: AsyncSession) -> TransactionLedgerEntry:
            invoice = await LedgerService.lock_invoice(session, invoice_id=invoice_id)
            if invoice is None:
                raise ResourceNotFoundError("Invoice", invoice_id)
            if amount <= 0:
                raise LedgerRuleError(invoice.id, "Financing amount must be positive", "financing amounts are positive")

            if transaction_type == TransactionType.LOAN_REPAYMENT:
                outstanding = await LedgerService.financed_amount(session, invoice.id)
                if amount > outstanding:
                    raise LedgerRuleError(
                        invoice.id,
                        f"Repayment of {amount} exceeds outstanding financing {outstanding}",
                        "loan repayments never exceed disbursements",
                    )

            entry = await LedgerService.append(session, invoice.id, transaction_type, amount, description=description)
            await LedgerService.write_invoice_state(session, invoice, invoice.payment_status, invoice.paid)
            return entry

        return await run_in_transaction(db, _finance, label=f"financing invoice {invoice_id}")

    @staticmethod
    async def record_expense(
        db: AsyncSession,
        invoice_id: int,
        amount,
        description: Optional[str] = None,
    ) -> TransactionLedgerEntry:
        """Record a business expense attributed to an invoice and commit."""
        amount = quantize_money(amount)

        async def _expense(session: AsyncSession) -> TransactionLedgerEntry:
            invoice = await LedgerService.lock_invoice(session, invoice_id=invoice_id)
            if invoice is None:
                raise ResourceNotFoundError("Invoice", invoice_id)
            if amount <= 0:
                raise LedgerRuleError(invoice.id, "Expense amount must be positive", "expense amounts are positive")
            entry = await LedgerService.append(
                session, invoice.id, TransactionType.BUSINESS_EXPENSE, amount, description=description
            )
            await LedgerService.write_invoice_state(session, invoice, invoice.payment_status, invoice.paid)
            return entry

        return await run_in_transaction(db, _expense, label=f"expense invoice {invoice_id}")
