"""
Order state machine.

Two independent axes describe a pickup:
    Payment axis (Invoice.payment_status):
        AWAITING_PAYMENT -> PARTIALLY_PAID -> PAID
        CANCELLED only from AWAITING_PAYMENT / PARTIALLY_PAID
    Physical axis (LogisticsDetails.logistics_status):
        PENDING_PLANNING -> READY_FOR_COLLECTION -> COLLECTED
        -> OUT_FOR_DELIVERY -> DELIVERED
        CANCELLED from any non-terminal state

The physical axis is coupled to the payment axis only through
``physical_gate``.
"""

from decimal import Decimal
from typing import Any

from backend.app.core.exceptions import InvalidTransitionError, PaymentGateError
from backend.app.models.order_enums import (
    PaymentStatus,
    LogisticsStatus,
    PickupStatus,
    DisplayStatus,
)


PAYMENT_TRANSITIONS = {
    # A single settlement may cover the full total in one event
    PaymentStatus.AWAITING_PAYMENT: {
        PaymentStatus.PARTIALLY_PAID,
        PaymentStatus.PAID,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PARTIALLY_PAID: {PaymentStatus.PAID, PaymentStatus.CANCELLED},
    PaymentStatus.PAID: set(),
    PaymentStatus.CANCELLED: set(),
}

LOGISTICS_SEQUENCE = [
    LogisticsStatus.PENDING_PLANNING,
    LogisticsStatus.READY_FOR_COLLECTION,
    LogisticsStatus.COLLECTED,
    LogisticsStatus.OUT_FOR_DELIVERY,
    LogisticsStatus.DELIVERED,
]

LOGISTICS_TERMINAL = {LogisticsStatus.DELIVERED, LogisticsStatus.CANCELLED}
PAYMENT_TERMINAL = {PaymentStatus.PAID, PaymentStatus.CANCELLED}

# Targets that require the payment gate to be open
GATED_LOGISTICS_STATUSES = {
    LogisticsStatus.READY_FOR_COLLECTION,
    LogisticsStatus.COLLECTED,
    LogisticsStatus.OUT_FOR_DELIVERY,
    LogisticsStatus.DELIVERED,
}


def transition_payment(invoice_id: Any, current: PaymentStatus, target: PaymentStatus) -> PaymentStatus:
    """
    Validate a payment-axis move and return the resulting status.

    Re-applying the current status is a no-op.

    Raises:
        InvalidTransitionError: On regression or leaving a terminal status
    """
    if current == target:
        return current
    if target not in PAYMENT_TRANSITIONS[current]:
        reason = "terminal status" if current in PAYMENT_TERMINAL else None
        raise InvalidTransitionError("Invoice", invoice_id, current.value, target.value, reason)
    return target


def transition_logistics(
    logistics_details_id: Any,
    current: LogisticsStatus,
    target: LogisticsStatus,
) -> LogisticsStatus:
    """
    Validate a physical-axis move and return the resulting status.

    Only single forward steps are allowed, except CANCELLED which is
    reachable from any non-terminal status.

    Raises:
        InvalidTransitionError: On regression, skip, or leaving a terminal status
    """
    if current == target:
        return current
    if current in LOGISTICS_TERMINAL:
        raise InvalidTransitionError(
            "LogisticsDetails", logistics_details_id, current.value, target.value, "terminal status"
        )
    if target == LogisticsStatus.CANCELLED:
        return target

    current_index = LOGISTICS_SEQUENCE.index(current)
    target_index = LOGISTICS_SEQUENCE.index(target)
    if target_index < current_index:
        raise InvalidTransitionError(
            "LogisticsDetails", logistics_details_id, current.value, target.value, "status cannot move backward"
        )
    if target_index > current_index + 1:
        raise InvalidTransitionError(
            "LogisticsDetails", logistics_details_id, current.value, target.value, "status cannot skip a step"
        )
    return target


def physical_gate(
    payment_status: PaymentStatus,
    target: LogisticsStatus,
    total_amount: Decimal = Decimal("0"),
    settled_balance: Decimal = Decimal("0"),
    financed_amount: Decimal = Decimal("0"),
    loan_financed: bool = False,
) -> bool:
    """
    Decide whether the physical axis may move to ``target``.

    Allocation and anything past READY_FOR_COLLECTION require a PAID
    invoice. With loan-financed dispatch enabled, a PARTIALLY_PAID invoice
    passes when settled balance plus outstanding financing covers the total.
    """
    if target not in GATED_LOGISTICS_STATUSES:
        return True
    if payment_status == PaymentStatus.PAID:
        return True
    if loan_financed and payment_status == PaymentStatus.PARTIALLY_PAID:
        return settled_balance + financed_amount >= total_amount
    return False


def ensure_gate(
    logistics_details_id: Any,
    current: LogisticsStatus,
    target: LogisticsStatus,
    payment_status: PaymentStatus,
    **balances,
) -> None:
    """Raise PaymentGateError when ``physical_gate`` is closed."""
    if not physical_gate(payment_status, target, **balances):
        raise PaymentGateError(logistics_details_id, current.value, target.value, payment_status.value)


def pickup_status(payment_status: PaymentStatus, logistics_status: LogisticsStatus) -> PickupStatus:
    """Catalog status derived from both axes."""
    if logistics_status == LogisticsStatus.CANCELLED or payment_status == PaymentStatus.CANCELLED:
        return PickupStatus.CANCELLED
    if logistics_status == LogisticsStatus.DELIVERED:
        return PickupStatus.DELIVERED
    if logistics_status in (LogisticsStatus.COLLECTED, LogisticsStatus.OUT_FOR_DELIVERY):
        return PickupStatus.COLLECTED
    if logistics_status == LogisticsStatus.READY_FOR_COLLECTION:
        return PickupStatus.READY_FOR_COLLECTION
    return PickupStatus.ORDER_RECEIVED


def display_status(payment_status: PaymentStatus, logistics_status: LogisticsStatus) -> DisplayStatus:
    """External status vocabulary derived from both axes."""
    if logistics_status == LogisticsStatus.CANCELLED or payment_status == PaymentStatus.CANCELLED:
        return DisplayStatus.CANCELLED
    if logistics_status == LogisticsStatus.DELIVERED:
        return DisplayStatus.DELIVERED
    if logistics_status in (LogisticsStatus.COLLECTED, LogisticsStatus.OUT_FOR_DELIVERY):
        return DisplayStatus.OUT_FOR_DELIVERY
    if logistics_status == LogisticsStatus.READY_FOR_COLLECTION:
        return DisplayStatus.READY_FOR_PICKUP
    if payment_status == PaymentStatus.PAID:
        return DisplayStatus.PAID_TO_LOGISTICS_CO
    if payment_status == PaymentStatus.PARTIALLY_PAID:
        return DisplayStatus.PARTIALLY_PAID
    return DisplayStatus.AWAITING_PAYMENT
