"""
Transaction Ledger database model.

Append-only record of money movements keyed by invoice.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, String
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import TransactionType


class TransactionLedgerEntry(Base):
    """
    Ledger Entry model.

    Immutable record of a signed money movement attributed to an invoice.
    NO updates or deletions allowed; corrections are new offsetting entries.
    """
    __tablename__ = "transaction_ledger"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    payment_record_id = Column(Integer, ForeignKey("payment_records.id"), nullable=True, index=True)

    # Entry details
    transaction_type = Column(Enum(TransactionType), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)  # Signed
    description = Column(String(255), nullable=True)

    # Timestamps (Immutable - no updated_at)
    transaction_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TransactionLedgerEntry(id={self.id}, type='{self.transaction_type.value}', amount={self.amount})>"
