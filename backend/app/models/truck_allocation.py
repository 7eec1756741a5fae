"""
Truck Allocation database model.

Committed capacity reservation binding a truck to a logistics detail.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class TruckAllocation(Base):
    """
    Truck Allocation model.

    Composite primary key (logistics_details_id, truck_id).
    An allocation is active while its logistics detail is not DELIVERED
    or CANCELLED, and immutable afterwards.
    """
    __tablename__ = "truck_allocations"

    logistics_details_id = Column(Integer, ForeignKey("logistics_details.id"), primary_key=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), primary_key=True, index=True)

    # Units of the order carried by this truck
    quantity = Column(Integer, nullable=False)

    allocated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TruckAllocation(logistics_details_id={self.logistics_details_id}, truck_id={self.truck_id})>"
