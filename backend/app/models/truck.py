"""
Truck and Truck Type database models.

Fleet definitions with capacity ceilings. Read-mostly; truck CRUD is
handled by the fleet catalog tooling.
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.order_enums import ServiceType


class TruckType(Base):
    """
    Truck Type model.

    service_type restricts which legs the type may run. Null means the
    type is compatible with every service type.
    """
    __tablename__ = "truck_types"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    service_type = Column(Enum(ServiceType), nullable=True)

    def __repr__(self):
        return f"<TruckType(id={self.id}, name='{self.name}')>"


class Truck(Base):
    """
    Truck model.

    Capacity ceilings (authoritative source):
        max_pickups: distinct orders with a collection leg
        max_dropoffs: distinct orders with a delivery leg
        max_capacity: unit ceiling across all active allocations

    Committed usage is always recomputed from active allocations.
    allocation_version is bumped whenever an allocation commits against
    the truck.
    """
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    truck_type_id = Column(Integer, ForeignKey("truck_types.id"), nullable=False, index=True)

    # Capacity constraints
    max_pickups = Column(Integer, nullable=False)
    max_dropoffs = Column(Integer, nullable=False)
    max_capacity = Column(Numeric(10, 2), nullable=False)

    # Economics
    daily_operating_cost = Column(Numeric(10, 2), nullable=False)

    # Availability
    is_available = Column(Boolean, default=True, nullable=False, index=True)
    available_from = Column(DateTime(timezone=True), nullable=True)
    available_until = Column(DateTime(timezone=True), nullable=True)

    allocation_version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Truck(id={self.id}, type_id={self.truck_type_id}, available={self.is_available})>"
