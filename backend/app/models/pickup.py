"""
Pickup (order) database model.

A pickup links a company, its invoice and the physical fulfillment record.
"""

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Pickup(Base):
    """
    Pickup model.

    Created once together with its invoice and logistics details.
    Order fields are immutable; status lives on the invoice (payment axis)
    and on the logistics details (physical axis).
    """
    __tablename__ = "pickups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, unique=True, index=True)

    # Order
    unit_price = Column(Numeric(10, 2), nullable=False)
    phone_units = Column(Integer, nullable=False)
    order_date = Column(Date, nullable=False)
    order_timestamp = Column(DateTime(timezone=True), nullable=False)
    order_timestamp_simulated = Column(DateTime(timezone=True), nullable=True)

    # Parties and places
    recipient_name = Column(String(255), nullable=False)
    pickup_location = Column(String(255), nullable=True)
    delivery_location = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Pickup(id={self.id}, company_id={self.company_id}, invoice_id={self.invoice_id})>"
