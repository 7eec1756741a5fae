"""
Order-related enumerations.

A pickup moves along two axes: the payment axis (owned by its invoice)
and the physical axis (owned by its logistics details).
"""

import enum


class PaymentStatus(str, enum.Enum):
    """
    Payment axis.

    Status flow:
        AWAITING_PAYMENT → PARTIALLY_PAID → PAID
        AWAITING_PAYMENT / PARTIALLY_PAID → CANCELLED
    """
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class LogisticsStatus(str, enum.Enum):
    """
    Physical axis.

    Status flow:
        PENDING_PLANNING → READY_FOR_COLLECTION → COLLECTED → OUT_FOR_DELIVERY → DELIVERED
        Any non-terminal status can transition to CANCELLED
    """
    PENDING_PLANNING = "PENDING_PLANNING"
    READY_FOR_COLLECTION = "READY_FOR_COLLECTION"
    COLLECTED = "COLLECTED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ServiceType(str, enum.Enum):
    """Leg a logistics detail books on a truck."""
    COLLECTION = "COLLECTION"  # Counts against max_pickups
    DELIVERY = "DELIVERY"  # Counts against max_dropoffs


class PickupStatus(str, enum.Enum):
    """Pickup status catalog, in display order."""
    ORDER_RECEIVED = "Order Received"
    READY_FOR_COLLECTION = "Ready for Collection"
    COLLECTED = "Collected"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class DisplayStatus(str, enum.Enum):
    """Customer-facing vocabulary combining both axes."""
    AWAITING_PAYMENT = "Awaiting Payment"
    PARTIALLY_PAID = "Partially Paid"
    PAID_TO_LOGISTICS_CO = "Paid To Logistics Co"
    READY_FOR_PICKUP = "Ready For Pickup"
    OUT_FOR_DELIVERY = "Out For Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
