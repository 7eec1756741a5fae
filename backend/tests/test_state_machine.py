"""
Unit tests for the order state machine.

Covers both status axes, the payment gate and the derived statuses.
"""

import pytest
from decimal import Decimal

from backend.app.core.exceptions import InvalidTransitionError, PaymentGateError
from backend.app.domain.orders.state_machine import (
    transition_payment,
    transition_logistics,
    physical_gate,
    ensure_gate,
    pickup_status,
    display_status,
)
from backend.app.models.order_enums import PaymentStatus, LogisticsStatus, PickupStatus, DisplayStatus


def test_payment_axis_moves_forward():
    assert transition_payment(1, PaymentStatus.AWAITING_PAYMENT, PaymentStatus.PARTIALLY_PAID) == PaymentStatus.PARTIALLY_PAID
    assert transition_payment(1, PaymentStatus.PARTIALLY_PAID, PaymentStatus.PAID) == PaymentStatus.PAID
    # A single payment may settle the whole invoice
    assert transition_payment(1, PaymentStatus.AWAITING_PAYMENT, PaymentStatus.PAID) == PaymentStatus.PAID


def test_payment_axis_reapply_is_noop():
    assert transition_payment(1, PaymentStatus.PAID, PaymentStatus.PAID) == PaymentStatus.PAID


@pytest.mark.parametrize("current,target", [
    (PaymentStatus.PAID, PaymentStatus.PARTIALLY_PAID),
    (PaymentStatus.PAID, PaymentStatus.CANCELLED),
    (PaymentStatus.CANCELLED, PaymentStatus.AWAITING_PAYMENT),
    (PaymentStatus.PARTIALLY_PAID, PaymentStatus.AWAITING_PAYMENT),
])
def test_payment_axis_rejects_regression(current, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        transition_payment(7, current, target)
    assert exc_info.value.details["id"] == 7
    assert exc_info.value.details["current"] == current.value
    assert exc_info.value.details["requested"] == target.value


def test_logistics_axis_single_steps():
    status = LogisticsStatus.PENDING_PLANNING
    for target in (
        LogisticsStatus.READY_FOR_COLLECTION,
        LogisticsStatus.COLLECTED,
        LogisticsStatus.OUT_FOR_DELIVERY,
        LogisticsStatus.DELIVERED,
    ):
        status = transition_logistics(3, status, target)
    assert status == LogisticsStatus.DELIVERED


def test_logistics_axis_rejects_skip_and_backward():
    with pytest.raises(InvalidTransitionError, match="skip"):
        transition_logistics(3, LogisticsStatus.READY_FOR_COLLECTION, LogisticsStatus.OUT_FOR_DELIVERY)
    with pytest.raises(InvalidTransitionError, match="backward"):
        transition_logistics(3, LogisticsStatus.COLLECTED, LogisticsStatus.READY_FOR_COLLECTION)


def test_logistics_cancel_from_any_non_terminal():
    for current in (
        LogisticsStatus.PENDING_PLANNING,
        LogisticsStatus.READY_FOR_COLLECTION,
        LogisticsStatus.COLLECTED,
        LogisticsStatus.OUT_FOR_DELIVERY,
    ):
        assert transition_logistics(3, current, LogisticsStatus.CANCELLED) == LogisticsStatus.CANCELLED


def test_logistics_terminal_states_are_final():
    with pytest.raises(InvalidTransitionError, match="terminal"):
        transition_logistics(3, LogisticsStatus.DELIVERED, LogisticsStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError, match="terminal"):
        transition_logistics(3, LogisticsStatus.CANCELLED, LogisticsStatus.PENDING_PLANNING)
    assert transition_logistics(3, LogisticsStatus.DELIVERED, LogisticsStatus.DELIVERED) == LogisticsStatus.DELIVERED


def test_gate_requires_paid():
    assert physical_gate(PaymentStatus.PAID, LogisticsStatus.READY_FOR_COLLECTION)
    assert not physical_gate(PaymentStatus.PARTIALLY_PAID, LogisticsStatus.READY_FOR_COLLECTION)
    assert not physical_gate(PaymentStatus.AWAITING_PAYMENT, LogisticsStatus.COLLECTED)
    # Cancelling is never gated
    assert physical_gate(PaymentStatus.AWAITING_PAYMENT, LogisticsStatus.CANCELLED)


def test_gate_loan_financed_partial_payment():
    balances = {
        "total_amount": Decimal("500.00"),
        "settled_balance": Decimal("300.00"),
    }
    assert not physical_gate(
        PaymentStatus.PARTIALLY_PAID, LogisticsStatus.READY_FOR_COLLECTION,
        financed_amount=Decimal("100.00"), loan_financed=True, **balances
    )
    assert physical_gate(
        PaymentStatus.PARTIALLY_PAID, LogisticsStatus.READY_FOR_COLLECTION,
        financed_amount=Decimal("200.00"), loan_financed=True, **balances
    )
    # Policy disabled: financing is ignored
    assert not physical_gate(
        PaymentStatus.PARTIALLY_PAID, LogisticsStatus.READY_FOR_COLLECTION,
        financed_amount=Decimal("200.00"), loan_financed=False, **balances
    )


def test_ensure_gate_raises_payment_gate_error():
    with pytest.raises(PaymentGateError) as exc_info:
        ensure_gate(11, LogisticsStatus.PENDING_PLANNING, LogisticsStatus.READY_FOR_COLLECTION,
                    PaymentStatus.AWAITING_PAYMENT)
    assert exc_info.value.error_code == "ERR_PAYMENT_GATE"
    assert exc_info.value.details["payment_status"] == "AWAITING_PAYMENT"


@pytest.mark.parametrize("payment,logistics,expected_pickup,expected_display", [
    (PaymentStatus.AWAITING_PAYMENT, LogisticsStatus.PENDING_PLANNING,
     PickupStatus.ORDER_RECEIVED, DisplayStatus.AWAITING_PAYMENT),
    (PaymentStatus.PARTIALLY_PAID, LogisticsStatus.PENDING_PLANNING,
     PickupStatus.ORDER_RECEIVED, DisplayStatus.PARTIALLY_PAID),
    (PaymentStatus.PAID, LogisticsStatus.PENDING_PLANNING,
     PickupStatus.ORDER_RECEIVED, DisplayStatus.PAID_TO_LOGISTICS_CO),
    (PaymentStatus.PAID, LogisticsStatus.READY_FOR_COLLECTION,
     PickupStatus.READY_FOR_COLLECTION, DisplayStatus.READY_FOR_PICKUP),
    (PaymentStatus.PAID, LogisticsStatus.OUT_FOR_DELIVERY,
     PickupStatus.COLLECTED, DisplayStatus.OUT_FOR_DELIVERY),
    (PaymentStatus.PAID, LogisticsStatus.DELIVERED,
     PickupStatus.DELIVERED, DisplayStatus.DELIVERED),
    (PaymentStatus.PAID, LogisticsStatus.CANCELLED,
     PickupStatus.CANCELLED, DisplayStatus.CANCELLED),
    (PaymentStatus.CANCELLED, LogisticsStatus.CANCELLED,
     PickupStatus.CANCELLED, DisplayStatus.CANCELLED),
])
def test_derived_statuses(payment, logistics, expected_pickup, expected_display):
    assert pickup_status(payment, logistics) == expected_pickup
    assert display_status(payment, logistics) == expected_display
