# app/services/booking_service.py
"""
Booking lifecycle rules and ledger queries.

    confirmed ──► completed   (window elapsed or vehicle checked out)
        │
        └──────► cancelled   (explicit cancellation)

While confirmed, parking_status moves parked → unparked exactly once (checkout).
completed and cancelled are terminal.
"""

import uuid
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session
from app.exceptions import InvalidTransition, NotFound, ValidationError
from app.models.booking import Booking
from app.models.enums import BookingStatus, ParkingStatus, RELEASE_REASONS

ALLOWED_TRANSITIONS = {
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def generate_booking_id() -> str:
    return "BOOK" + uuid.uuid4().hex[:10].upper()


def parse_reason(reason) -> BookingStatus:
    try:
        parsed = BookingStatus(getattr(reason, "value", reason))
    except ValueError:
        parsed = None
    if parsed not in RELEASE_REASONS:
        raise ValidationError.single("reason", "Release reason must be 'completed' or 'cancelled'")
    return parsed


def ensure_transition(booking: Booking, target: BookingStatus) -> None:
    current = BookingStatus(booking.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Booking {booking.booking_id} cannot move from {current.value} to {target.value}",
            booking_id=booking.booking_id,
        )


def ensure_can_checkout(booking: Booking) -> None:
    if booking.status != BookingStatus.CONFIRMED.value:
        raise InvalidTransition(
            f"Booking {booking.booking_id} is {booking.status}; only confirmed bookings can check out",
            booking_id=booking.booking_id,
        )
    if booking.parking_status != ParkingStatus.PARKED.value:
        raise InvalidTransition(
            f"Booking {booking.booking_id} is already checked out",
            booking_id=booking.booking_id,
        )


def get_booking(db: Session, booking_id: str, user_id: Optional[str] = None) -> Booking:
    """Load a booking. When `user_id` is given, other users' bookings are reported as missing."""
    q = db.query(Booking).filter(Booking.booking_id == booking_id)
    if user_id is not None:
        q = q.filter(Booking.user_id == user_id)
    booking = q.first()
    if not booking:
        raise NotFound(f"Booking '{booking_id}' not found", booking_id=booking_id)
    return booking


def find_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[Booking]:
    return db.query(Booking).filter(Booking.payment_intent_id == payment_intent_id).first()


def list_user_bookings(db: Session, user_id: str, limit: int = 50) -> list[Booking]:
    """Booking history for one user, newest first."""
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc())
        .limit(limit)
        .all()
    )


def list_active_bookings(db: Session, on_date: date, user_id: Optional[str] = None) -> list[Booking]:
    """Confirmed, still-parked bookings for a date (the vehicles expected on site)."""
    q = db.query(Booking).filter(
        Booking.booking_date == on_date,
        Booking.status == BookingStatus.CONFIRMED.value,
        Booking.parking_status == ParkingStatus.PARKED.value,
    )
    if user_id is not None:
        q = q.filter(Booking.user_id == user_id)
    return q.order_by(Booking.created_at.desc()).all()


def list_bookings_for_date(db: Session, on_date: date, status: Optional[BookingStatus] = None) -> list[Booking]:
    """Every booking for a date, in any status unless `status` narrows it."""
    q = db.query(Booking).filter(Booking.booking_date == on_date)
    if status is not None:
        q = q.filter(Booking.status == BookingStatus(status).value)
    return q.order_by(Booking.start_time, Booking.created_at).all()


def find_bookings_by_user(db: Session, user_id: Optional[str] = None,
                          user_email: Optional[str] = None) -> list[Booking]:
    """Bookings matching a user id and/or email, latest booking date first."""
    if not user_id and not user_email:
        raise ValidationError.single("user", "Either user_id or user_email is required")
    q = db.query(Booking)
    if user_id:
        q = q.filter(Booking.user_id == user_id)
    if user_email:
        q = q.filter(Booking.user_email == user_email.strip())
    return q.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).all()
