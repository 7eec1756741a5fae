"""
Payment Record database model.

Deduplicated record of an inbound payment notification. The unique
transaction number is the idempotency boundary between the payment
channel and the ledger.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import PaymentEventStatus, ReconciliationStatus


class PaymentRecord(Base):
    """
    Payment Record model.

    result stores the reconciliation outcome computed on first delivery,
    returned verbatim when the payment channel redelivers the event.
    """
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    transaction_number = Column(String(100), unique=True, nullable=False, index=True)

    # Notification payload
    status = Column(Enum(PaymentEventStatus), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=False, default="")
    from_party = Column(String(255), nullable=True)
    to_party = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True)

    # Reconciliation
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)
    reconciliation_status = Column(Enum(ReconciliationStatus), nullable=False, index=True)
    result = Column(JSON, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentRecord(id={self.id}, txn='{self.transaction_number}', status='{self.status.value}')>"
