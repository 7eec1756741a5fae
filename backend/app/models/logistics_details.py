"""
Logistics Details database model.

Physical-fulfillment record of a pickup (one-to-one).
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.order_enums import LogisticsStatus, ServiceType


class LogisticsDetails(Base):
    """
    Logistics Details model.

    Carries two timestamp pairs: the real schedule used by allocation and
    gating, and the simulated schedule used only for replay and testing.
    """
    __tablename__ = "logistics_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    pickup_id = Column(Integer, ForeignKey("pickups.id"), nullable=False, unique=True, index=True)

    service_type = Column(Enum(ServiceType), default=ServiceType.COLLECTION, nullable=False)
    quantity = Column(Integer, nullable=False)

    # Physical axis
    logistics_status = Column(
        Enum(LogisticsStatus), default=LogisticsStatus.PENDING_PLANNING, nullable=False, index=True
    )

    # Real schedule
    scheduled_real_pickup_at = Column(DateTime(timezone=True), nullable=True)
    scheduled_real_delivery_at = Column(DateTime(timezone=True), nullable=True)

    # Simulated schedule (replay channel)
    scheduled_simulated_pickup_at = Column(DateTime(timezone=True), nullable=True)
    scheduled_simulated_delivery_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<LogisticsDetails(id={self.id}, pickup_id={self.pickup_id}, status='{self.logistics_status.value}')>"
