"""
Invoice database model.

One invoice per pickup. The paid flag is a cache of the ledger balance and
is written only in the same transaction as a ledger append.
"""

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.order_enums import PaymentStatus


class Invoice(Base):
    """
    Invoice model.

    reference_number is generated once at creation and never reused.
    version is bumped by every ledger write against the invoice so two
    concurrent reconciliations cannot both commit on a stale balance.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    reference_number = Column(String(64), unique=True, nullable=False, index=True)

    # Financials
    total_amount = Column(Numeric(10, 2), nullable=False)
    paid = Column(Boolean, default=False, nullable=False)

    # Payment axis
    payment_status = Column(
        Enum(PaymentStatus), default=PaymentStatus.AWAITING_PAYMENT, nullable=False, index=True
    )

    version = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Invoice(id={self.id}, ref='{self.reference_number}', status='{self.payment_status.value}')>"
