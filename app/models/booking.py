# app/models/booking.py
"""
Bookings ledger — one row per reserved slot.
A booking references its space by `space_id` (no foreign key): bookings are a
separate ledger and must outlive a deleted space.
`starts_at` / `ends_at` are naive UTC; `booking_date` / `start_time` /
`end_time` are the wall-clock values in settings.TIMEZONE.
"""

from sqlalchemy import Column, Date, DateTime, Float, Index, Integer, String, Time
from app.database import Base
from app.models.enums import BookingStatus, ParkingStatus


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_pool_window", "space_id", "vehicle_type", "status", "starts_at", "ends_at"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(32), unique=True, nullable=False, index=True)   # BOOK + 10 hex chars
    user_id = Column(String(100), nullable=False)
    user_email = Column(String(200))
    space_id = Column(String(50), nullable=False)
    space_name = Column(String(100))
    vehicle_type = Column(String(20), nullable=False)
    number_plate = Column(String(30), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False, index=True)
    duration_hours = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False, default=0.0)
    payment_intent_id = Column(String(100), unique=True)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    parking_status = Column(String(20), nullable=False, default=ParkingStatus.PARKED.value)
    push_token = Column(String(200))
    reminder_sent_at = Column(DateTime)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<Booking {self.booking_id} space={self.space_id} {self.vehicle_type} status={self.status}>"
