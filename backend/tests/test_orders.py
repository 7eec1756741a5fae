"""
Order & Invoice Store Tests.

Pickup creation, lookups, physical-axis advancement and cancellation.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy import select, func

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    InvalidTransitionError,
    PaymentGateError,
    ResourceNotFoundError,
)
from backend.app.domain.allocation.scheduler import allocate_trucks
from backend.app.domain.orders import order_store
from backend.app.models.company import Company
from backend.app.models.invoice import Invoice
from backend.app.models.order_enums import (
    PaymentStatus,
    LogisticsStatus,
    PickupStatus,
    DisplayStatus,
)
from backend.app.services.simulation_clock import as_utc


@pytest.mark.asyncio
async def test_create_pickup_creates_invoice_and_details(order_factory, db_session):
    created = await order_factory(quantity=12)

    assert created.amount_due == Decimal("120.00")
    assert created.account_number == settings.collection_account_number
    assert len(created.reference_number) == 32

    order = await order_store.get_pickup(db_session, created.pickup_id)
    assert order.invoice.total_amount == Decimal("120.00")
    assert order.invoice.payment_status == PaymentStatus.AWAITING_PAYMENT
    assert order.invoice.paid is False
    assert order.details.quantity == 12
    assert order.details.logistics_status == LogisticsStatus.PENDING_PLANNING
    assert order.pickup_status == PickupStatus.ORDER_RECEIVED
    assert order.display_status == DisplayStatus.AWAITING_PAYMENT
    assert as_utc(order.details.scheduled_real_delivery_at) - as_utc(order.details.scheduled_real_pickup_at) == timedelta(days=1)
    # Simulated schedule is a separate channel
    assert order.details.scheduled_simulated_pickup_at is not None


@pytest.mark.asyncio
async def test_create_pickup_custom_price_and_schedule(order_factory, db_session):
    requested = datetime(2031, 5, 4, 9, 0, tzinfo=timezone.utc)

    created = await order_factory(quantity=3, unit_price="12.50", requested_pickup_at=requested)

    assert created.amount_due == Decimal("37.50")
    order = await order_store.get_pickup(db_session, created.pickup_id)
    assert as_utc(order.details.scheduled_real_pickup_at) == requested


@pytest.mark.asyncio
async def test_companies_are_reused_and_references_unique(order_factory, db_session):
    first = await order_factory(company_name="Acme Phones")
    second = await order_factory(company_name="Acme Phones")

    assert first.reference_number != second.reference_number
    companies = (await db_session.execute(select(func.count(Company.id)))).scalar_one()
    invoices = (await db_session.execute(select(func.count(Invoice.id)))).scalar_one()
    assert companies == 1
    assert invoices == 2


@pytest.mark.asyncio
async def test_invoice_lookups(order_factory, db_session):
    created = await order_factory()

    by_id = await order_store.get_invoice(db_session, created.invoice_id)
    by_ref = await order_store.get_invoice_by_reference(db_session, f" {created.reference_number} ")
    assert by_id.id == by_ref.id

    with pytest.raises(ResourceNotFoundError):
        await order_store.get_invoice_by_reference(db_session, "missing")
    with pytest.raises(ResourceNotFoundError):
        await order_store.get_pickup(db_session, 9999)


@pytest.mark.asyncio
async def test_list_pickups_filters_by_status(order_factory, pay, db_session):
    unpaid = await order_factory(company_name="Globex")
    paid = await order_factory(company_name="Globex")
    await order_factory(company_name="Initech")
    await pay(paid.reference_number, "100.00")

    everything = await order_store.list_pickups(db_session, "Globex")
    assert [o.pickup.id for o in everything] == [paid.pickup_id, unpaid.pickup_id]

    awaiting = await order_store.list_pickups(db_session, "Globex", "Awaiting Payment")
    assert [o.pickup.id for o in awaiting] == [unpaid.pickup_id]

    received = await order_store.list_pickups(db_session, "Globex", "Order Received")
    assert len(received) == 2

    assert await order_store.list_pickups(db_session, "Nobody") == []


@pytest.mark.asyncio
async def test_advance_requires_payment(order_factory, db_session):
    created = await order_factory()

    with pytest.raises((PaymentGateError, InvalidTransitionError)):
        await order_store.advance_logistics(db_session, created.logistics_details_id, LogisticsStatus.COLLECTED)


@pytest.mark.asyncio
async def test_advance_through_delivery(order_factory, pay, truck_factory, db_session):
    await truck_factory()
    created = await order_factory()
    await pay(created.reference_number, "100.00")
    await allocate_trucks(db_session, created.logistics_details_id)

    for status in (LogisticsStatus.COLLECTED, LogisticsStatus.OUT_FOR_DELIVERY, LogisticsStatus.DELIVERED):
        order = await order_store.advance_logistics(db_session, created.logistics_details_id, status)
        assert order.details.logistics_status == status

    assert order.display_status == DisplayStatus.DELIVERED
    # Re-applying the current status is a no-op
    order = await order_store.advance_logistics(db_session, created.logistics_details_id, LogisticsStatus.DELIVERED)
    assert order.details.logistics_status == LogisticsStatus.DELIVERED


@pytest.mark.asyncio
async def test_advance_rejects_skips_and_direct_ready(order_factory, pay, truck_factory, db_session):
    await truck_factory()
    created = await order_factory()
    await pay(created.reference_number, "100.00")

    with pytest.raises(InvalidTransitionError):
        await order_store.advance_logistics(
            db_session, created.logistics_details_id, LogisticsStatus.READY_FOR_COLLECTION
        )

    await allocate_trucks(db_session, created.logistics_details_id)
    with pytest.raises(InvalidTransitionError, match="skip"):
        await order_store.advance_logistics(db_session, created.logistics_details_id, LogisticsStatus.DELIVERED)


@pytest.mark.asyncio
async def test_cancel_unpaid_pickup(order_factory, db_session, session_factory):
    created = await order_factory()

    order = await order_store.cancel_pickup(db_session, created.pickup_id)

    assert order.invoice.payment_status == PaymentStatus.CANCELLED
    assert order.details.logistics_status == LogisticsStatus.CANCELLED
    assert order.pickup_status == PickupStatus.CANCELLED

    # Cancelling twice is a no-op
    await order_store.cancel_pickup(db_session, created.pickup_id)
    async with session_factory() as session:
        invoice = await order_store.get_invoice(session, created.invoice_id)
        assert invoice.payment_status == PaymentStatus.CANCELLED
        assert invoice.version == 1


@pytest.mark.asyncio
async def test_cancel_paid_pickup_keeps_invoice_paid(order_factory, pay, db_session):
    created = await order_factory()
    await pay(created.reference_number, "100.00")

    order = await order_store.cancel_pickup(db_session, created.pickup_id)

    assert order.invoice.payment_status == PaymentStatus.PAID
    assert order.invoice.paid is True
    assert order.details.logistics_status == LogisticsStatus.CANCELLED
    assert order.display_status == DisplayStatus.CANCELLED


@pytest.mark.asyncio
async def test_delivered_pickup_cannot_be_cancelled(order_factory, pay, truck_factory, db_session):
    await truck_factory()
    created = await order_factory()
    await pay(created.reference_number, "100.00")
    await allocate_trucks(db_session, created.logistics_details_id)
    for status in (LogisticsStatus.COLLECTED, LogisticsStatus.OUT_FOR_DELIVERY, LogisticsStatus.DELIVERED):
        await order_store.advance_logistics(db_session, created.logistics_details_id, status)

    with pytest.raises(InvalidTransitionError, match="delivered"):
        await order_store.cancel_pickup(db_session, created.pickup_id)


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_allocated(order_factory, pay, truck_factory, db_session):
    await truck_factory()
    created = await order_factory()
    await pay(created.reference_number, "100.00")
    await order_store.cancel_pickup(db_session, created.pickup_id)

    with pytest.raises(InvalidTransitionError):
        await allocate_trucks(db_session, created.logistics_details_id)
