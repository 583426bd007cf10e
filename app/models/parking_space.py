# app/models/parking_space.py
"""
Parking space catalog (registry) and its per-vehicle-type slot pools.

Each space owns one SlotPool per vehicle type. `available_slots` is the live
counter that reservations decrement and releases increment; it is only ever
changed through the conditional UPDATEs in slot_pool_service, never by
assigning the attribute. The CHECK constraint backs the 0..total invariant at
the store level.
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, JSON, String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.enums import VehicleType


class ParkingSpace(Base):
    __tablename__ = "parking_spaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    space_id = Column(String(50), unique=True, nullable=False, index=True)  # human-readable, e.g. PS-1718000000000-3fa2
    name = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)
    space_type = Column(String(20), nullable=False)   # Open | Covered | Underground | Multilevel | Indoor | Outdoor
    latitude = Column(Float, nullable=False, index=True)
    longitude = Column(Float, nullable=False, index=True)
    facilities = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    slot_pools = relationship(
        "SlotPool",
        back_populates="space",
        cascade="all, delete-orphan",
        order_by="SlotPool.position",
        lazy="selectin",
    )

    def pool_for(self, vehicle_type):
        """The SlotPool for a vehicle type (case-insensitive), or None."""
        wanted = VehicleType.parse(vehicle_type)
        if wanted is None:
            return None
        for pool in self.slot_pools:
            if pool.vehicle_type == wanted.value:
                return pool
        return None

    @property
    def total_capacity(self) -> int:
        return sum(p.total_slots for p in self.slot_pools)

    @property
    def total_available_slots(self) -> int:
        return sum(p.available_slots or 0 for p in self.slot_pools)

    @property
    def daily_potential_revenue(self) -> float:
        return sum(p.total_slots * p.price_per_hour * 24 for p in self.slot_pools)

    def __repr__(self):
        return f"<ParkingSpace {self.space_id} name={self.name} active={self.is_active}>"


class SlotPool(Base):
    __tablename__ = "slot_pools"
    __table_args__ = (
        UniqueConstraint("space_pk", "vehicle_type", name="uq_slot_pool_space_vehicle"),
        CheckConstraint("total_slots >= 1", name="ck_slot_pool_total_positive"),
        CheckConstraint(
            "available_slots >= 0 AND available_slots <= total_slots",
            name="ck_slot_pool_available_range",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    space_pk = Column(Integer, ForeignKey("parking_spaces.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)     # order within the space
    vehicle_type = Column(String(20), nullable=False)         # Car | Motorcycle | Bus | Truck | Bicycle | Van
    total_slots = Column(Integer, nullable=False)
    available_slots = Column(Integer, nullable=False)
    price_per_hour = Column(Float, nullable=False, default=0.0)
    length = Column(Float, nullable=False, default=0.0)
    width = Column(Float, nullable=False, default=0.0)
    height = Column(Float, nullable=False, default=0.0)

    space = relationship("ParkingSpace", back_populates="slot_pools")

    @property
    def dimensions(self) -> dict:
        return {"length": self.length, "width": self.width, "height": self.height}

    @property
    def held_slots(self) -> int:
        return self.total_slots - self.available_slots

    def __repr__(self):
        return f"<SlotPool {self.vehicle_type} {self.available_slots}/{self.total_slots}>"
