"""
Ledger and payment enumerations.
"""

import enum


class TransactionType(str, enum.Enum):
    """Ledger entry type enumeration."""
    BUSINESS_EXPENSE = "BUSINESS_EXPENSE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    REFUND = "REFUND"
    LOAN_DISBURSEMENT = "LOAN_DISBURSEMENT"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    PAYMENT_FAILED = "PAYMENT_FAILED"  # Zero-amount marker for a failed payment attempt


class PaymentEventStatus(str, enum.Enum):
    """Outcome reported by the payment channel."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ReconciliationStatus(str, enum.Enum):
    """Whether a recorded payment could be matched to an invoice."""
    RECONCILED = "RECONCILED"
    UNRESOLVED = "UNRESOLVED"  # Money moved externally; needs manual matching
