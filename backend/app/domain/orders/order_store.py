"""
Order & Invoice Store.

Creates pickups together with their invoice and logistics details, serves
order reads with derived statuses, and moves the physical axis forward
under the payment gate.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from backend.app.core.reliability import run_in_transaction
from backend.app.models.company import Company, BankAccount
from backend.app.models.invoice import Invoice
from backend.app.models.pickup import Pickup
from backend.app.models.logistics_details import LogisticsDetails
from backend.app.models.order_enums import (
    PaymentStatus,
    LogisticsStatus,
    ServiceType,
    PickupStatus,
    DisplayStatus,
)
from backend.app.domain.orders import state_machine
from backend.app.domain.ledger.ledger_service import LedgerService, quantize_money
from backend.app.services.simulation_clock import simulation_clock, next_collection_day, utcnow

logger = logging.getLogger(__name__)

# Statuses a caller may request through advance_logistics
ADVANCEABLE_STATUSES = {
    LogisticsStatus.COLLECTED,
    LogisticsStatus.OUT_FOR_DELIVERY,
    LogisticsStatus.DELIVERED,
}


@dataclass
class OrderView:
    """A pickup with everything needed to present it."""
    pickup: Pickup
    invoice: Invoice
    details: LogisticsDetails
    company: Company

    @property
    def pickup_status(self) -> PickupStatus:
        return state_machine.pickup_status(self.invoice.payment_status, self.details.logistics_status)

    @property
    def display_status(self) -> DisplayStatus:
        return state_machine.display_status(self.invoice.payment_status, self.details.logistics_status)


@dataclass
class PickupCreated:
    pickup_id: int
    invoice_id: int
    logistics_details_id: int
    reference_number: str
    amount_due: Decimal
    account_number: str


def loan_financed_enabled(company: Company) -> bool:
    """Company override first, then the global default."""
    if company.allow_loan_financed_dispatch is not None:
        return company.allow_loan_financed_dispatch
    return settings.loan_financed_dispatch


async def _gate_balances(db: AsyncSession, invoice: Invoice, company: Company) -> dict:
    if not (loan_financed_enabled(company) and invoice.payment_status == PaymentStatus.PARTIALLY_PAID):
        return {}
    return {
        "total_amount": quantize_money(invoice.total_amount),
        "settled_balance": await LedgerService.invoice_balance(db, invoice.id),
        "financed_amount": await LedgerService.financed_amount(db, invoice.id),
        "loan_financed": True,
    }


async def is_gate_open(
    db: AsyncSession,
    invoice: Invoice,
    company: Company,
    target: LogisticsStatus = LogisticsStatus.READY_FOR_COLLECTION,
) -> bool:
    balances = await _gate_balances(db, invoice, company)
    return state_machine.physical_gate(invoice.payment_status, target, **balances)


async def check_gate(
    db: AsyncSession,
    details: LogisticsDetails,
    invoice: Invoice,
    company: Company,
    target: LogisticsStatus,
) -> None:
    """
    Raises:
        PaymentGateError: If the payment axis does not allow ``target``
    """
    balances = await _gate_balances(db, invoice, company)
    state_machine.ensure_gate(details.id, details.logistics_status, target, invoice.payment_status, **balances)


async def set_logistics_status(
    db: AsyncSession,
    details: LogisticsDetails,
    target: LogisticsStatus,
) -> LogisticsDetails:
    """
    Compare-and-set the physical axis.

    Raises:
        InvalidTransitionError: If the move is not allowed
        ConcurrencyConflictError: If the status changed since it was read
    """
    current = details.logistics_status
    state_machine.transition_logistics(details.id, current, target)
    if current == target:
        return details
    result = await db.execute(
        update(LogisticsDetails)
        .where(LogisticsDetails.id == details.id, LogisticsDetails.logistics_status == current)
        .values(logistics_status=target, updated_at=utcnow())
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError("LogisticsDetails", details.id)
    return details


def _order_query():
    return (
        select(Pickup, Invoice, LogisticsDetails, Company)
        .join(Invoice, Pickup.invoice_id == Invoice.id)
        .join(LogisticsDetails, LogisticsDetails.pickup_id == Pickup.id)
        .join(Company, Pickup.company_id == Company.id)
    )


async def load_order(
    db: AsyncSession,
    pickup_id: int = None,
    logistics_details_id: int = None,
    invoice_id: int = None,
    lock: bool = False,
) -> OrderView:
    """
    Load a pickup with its invoice, logistics details and company.

    With ``lock`` the logistics and invoice rows are locked FOR UPDATE
    (PostgreSQL); SQLite ignores the clause.

    Raises:
        ResourceNotFoundError: If nothing matches
    """
    stmt = _order_query()
    if pickup_id is not None:
        stmt = stmt.where(Pickup.id == pickup_id)
        resource, resource_id = "Pickup", pickup_id
    elif logistics_details_id is not None:
        stmt = stmt.where(LogisticsDetails.id == logistics_details_id)
        resource, resource_id = "LogisticsDetails", logistics_details_id
    else:
        stmt = stmt.where(Invoice.id == invoice_id)
        resource, resource_id = "Invoice", invoice_id
    if lock:
        stmt = stmt.with_for_update(of=[LogisticsDetails, Invoice])

    result = await db.execute(stmt)
    row = result.first()
    if row is None:
        raise ResourceNotFoundError(resource, resource_id)
    pickup, invoice, details, company = row
    return OrderView(pickup=pickup, invoice=invoice, details=details, company=company)


async def _find_or_create_company(db: AsyncSession, company_name: str) -> Company:
    result = await db.execute(select(Company).where(Company.name == company_name))
    company = result.scalar_one_or_none()
    if company:
        return company

    company = Company(name=company_name)
    db.add(company)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Another request created the same company; the retry will find it
        raise ConcurrencyConflictError("Company", company_name) from exc
    logger.info("Registered company %s", company_name)
    return company


async def _account_number(db: AsyncSession, company: Company) -> str:
    if company.bank_account_id is None:
        return settings.collection_account_number
    account = await db.get(BankAccount, company.bank_account_id)
    return account.account_number if account else settings.collection_account_number


async def create_pickup(
    db: AsyncSession,
    company_name: str,
    quantity: int,
    recipient_name: str,
    pickup_location: Optional[str] = None,
    delivery_location: Optional[str] = None,
    unit_price: Optional[Decimal] = None,
    requested_pickup_at: Optional[datetime] = None,
    service_type: ServiceType = ServiceType.COLLECTION,
) -> PickupCreated:
    """
    Create a pickup, its invoice and its logistics details in one transaction.

    The invoice total is ``quantity * unit_price``; the reference number is
    generated here once and never changes.

    Returns:
        PickupCreated with the payment instructions for the customer
    """
    price = quantize_money(unit_price if unit_price is not None else settings.unit_price)
    total = quantize_money(price * quantity)

    async def _create(session: AsyncSession) -> PickupCreated:
        company = await _find_or_create_company(session, company_name)
        now = utcnow()

        invoice = Invoice(
            reference_number=uuid.uuid4().hex,
            total_amount=total,
            paid=False,
            payment_status=PaymentStatus.AWAITING_PAYMENT,
            version=0,
        )
        session.add(invoice)
        await session.flush()

        pickup = Pickup(
            company_id=company.id,
            invoice_id=invoice.id,
            unit_price=price,
            phone_units=quantity,
            order_date=now.date(),
            order_timestamp=now,
            order_timestamp_simulated=simulation_clock.to_simulated(now),
            recipient_name=recipient_name,
            pickup_location=pickup_location,
            delivery_location=delivery_location,
        )
        session.add(pickup)
        await session.flush()

        pickup_at = requested_pickup_at or next_collection_day(now)
        delivery_at = pickup_at + timedelta(days=1)
        details = LogisticsDetails(
            pickup_id=pickup.id,
            service_type=service_type,
            quantity=quantity,
            logistics_status=LogisticsStatus.PENDING_PLANNING,
            scheduled_real_pickup_at=pickup_at,
            scheduled_real_delivery_at=delivery_at,
            scheduled_simulated_pickup_at=simulation_clock.to_simulated(pickup_at),
            scheduled_simulated_delivery_at=simulation_clock.to_simulated(delivery_at),
        )
        session.add(details)
        await session.flush()

        return PickupCreated(
            pickup_id=pickup.id,
            invoice_id=invoice.id,
            logistics_details_id=details.id,
            reference_number=invoice.reference_number,
            amount_due=total,
            account_number=await _account_number(session, company),
        )

    created = await run_in_transaction(db, _create, label=f"create pickup for {company_name}")
    logger.info(
        "Created pickup %s (invoice %s, total %s)",
        created.pickup_id, created.reference_number, created.amount_due,
        extra={"pickup_id": created.pickup_id, "invoice_id": created.invoice_id},
    )
    return created


async def get_pickup(db: AsyncSession, pickup_id: int) -> OrderView:
    return await load_order(db, pickup_id=pickup_id)


async def get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    invoice = await db.get(Invoice, invoice_id)
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)
    return invoice


async def get_invoice_by_reference(db: AsyncSession, reference_number: str) -> Invoice:
    result = await db.execute(select(Invoice).where(Invoice.reference_number == reference_number.strip()))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", reference_number)
    return invoice


async def list_pickups(
    db: AsyncSession,
    company_name: str,
    status: Optional[str] = None,
) -> List[OrderView]:
    """
    List a company's pickups, newest first.

    ``status`` matches either the catalog status or the display status.
    An unknown company has no pickups.
    """
    result = await db.execute(
        _order_query().where(Company.name == company_name).order_by(Pickup.id.desc())
    )
    orders = [
        OrderView(pickup=pickup, invoice=invoice, details=details, company=company)
        for pickup, invoice, details, company in result.all()
    ]
    if status:
        orders = [
            order for order in orders
            if status in (order.pickup_status.value, order.display_status.value)
        ]
    return orders


async def advance_logistics(
    db: AsyncSession,
    logistics_details_id: int,
    target: LogisticsStatus,
) -> OrderView:
    """
    Move the physical axis one step forward (COLLECTED, OUT_FOR_DELIVERY,
    DELIVERED) and commit.

    READY_FOR_COLLECTION is reached through allocation and CANCELLED
    through cancel_pickup.
    """
    async def _advance(session: AsyncSession) -> Tuple[OrderView, LogisticsStatus]:
        order = await load_order(session, logistics_details_id=logistics_details_id, lock=True)
        current = order.details.logistics_status
        if target not in ADVANCEABLE_STATUSES and target != current:
            raise InvalidTransitionError(
                "LogisticsDetails", logistics_details_id, current.value, target.value,
                "only COLLECTED, OUT_FOR_DELIVERY and DELIVERED can be requested directly",
            )
        state_machine.transition_logistics(logistics_details_id, current, target)
        await check_gate(session, order.details, order.invoice, order.company, target)
        await set_logistics_status(session, order.details, target)
        return order, current

    order, previous = await run_in_transaction(db, _advance, label=f"advance logistics {logistics_details_id}")
    if previous != target:
        logger.info("Logistics %s moved %s -> %s", logistics_details_id, previous.value, target.value)
    return order


async def cancel_pickup(db: AsyncSession, pickup_id: int) -> OrderView:
    """
    Cancel a pickup and commit.

    The payment axis becomes CANCELLED unless the invoice is already PAID;
    the physical axis becomes CANCELLED unless it is terminal. A delivered
    pickup cannot be cancelled. Cancelling twice is a no-op.
    """
    async def _cancel(session: AsyncSession) -> OrderView:
        order = await load_order(session, pickup_id=pickup_id, lock=True)
        details, invoice = order.details, order.invoice

        if details.logistics_status == LogisticsStatus.DELIVERED:
            raise InvalidTransitionError(
                "Pickup", pickup_id, details.logistics_status.value, LogisticsStatus.CANCELLED.value,
                "delivered pickups cannot be cancelled",
            )

        if invoice.payment_status in (PaymentStatus.AWAITING_PAYMENT, PaymentStatus.PARTIALLY_PAID):
            target = state_machine.transition_payment(invoice.id, invoice.payment_status, PaymentStatus.CANCELLED)
            await LedgerService.write_invoice_state(session, invoice, target, invoice.paid)

        if details.logistics_status != LogisticsStatus.CANCELLED:
            await set_logistics_status(session, details, LogisticsStatus.CANCELLED)
        return order

    order = await run_in_transaction(db, _cancel, label=f"cancel pickup {pickup_id}")
    logger.info("Cancelled pickup %s", pickup_id)
    return order
