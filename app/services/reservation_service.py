# app/services/reservation_service.py
"""
Reserve / release protocol.

reserve():  space lookup → pool lookup → conditional decrement → booking insert,
            decrement and insert committed together. Anything that fails after
            the decrement rolls the whole transaction back, so the slot is
            never stranded.

release():  status claim (conditional UPDATE confirmed → reason) → conditional
            increment, committed together. Only the caller whose claim matched
            the row touches the pool, which is what makes repeated releases and
            overlapping reconciler sweeps safe.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.exceptions import (
    CapacityExhausted, DuplicateId, NotFound, PaymentNotCompleted, ValidationError,
)
from app.models.booking import Booking
from app.models.enums import BookingStatus, ParkingStatus
from app.models.parking_space import ParkingSpace, SlotPool
from app.services import booking_service, parking_space_service, slot_pool_service
from app.utils.logger import get_logger, with_context
from app.utils.time_window import TimeWindow

logger = get_logger(__name__)


@dataclass
class ReleaseOutcome:
    booking: Booking
    released: bool   # False → booking was already in the requested state; pool untouched


def price_for(pool: SlotPool, window: TimeWindow) -> float:
    return round(pool.price_per_hour * window.duration_hours, 2)


def quote(db: Session, space_id: str, vehicle_type, window: TimeWindow) -> tuple[ParkingSpace, SlotPool, float]:
    """Resolve the pool a reservation would use and its price for the window."""
    space = parking_space_service.get_space(db, space_id)
    if not space.is_active:
        raise NotFound(f"Parking space '{space_id}' is not accepting bookings", space_id=space_id)
    pool = parking_space_service.get_pool(space, vehicle_type)
    return space, pool, price_for(pool, window)


def reserve(
    db: Session,
    space_id: str,
    vehicle_type,
    window: TimeWindow,
    user_id: str,
    number_plate: str,
    user_email: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    push_token: Optional[str] = None,
) -> Booking:
    space, pool, amount = quote(db, space_id, vehicle_type, window)
    log = with_context(logger, space_id, pool.vehicle_type)

    plate = (number_plate or "").strip().upper()
    if not plate:
        raise ValidationError.single("number_plate", "Number plate is required")

    try:
        slot_pool_service.reserve_slot(db, pool, space_id=space_id)
        now = datetime.utcnow()
        booking = Booking(
            booking_id=booking_service.generate_booking_id(),
            user_id=user_id,
            user_email=user_email,
            space_id=space.space_id,
            space_name=space.name,
            vehicle_type=pool.vehicle_type,
            number_plate=plate,
            booking_date=window.booking_date,
            start_time=window.start_time,
            end_time=window.end_time,
            starts_at=window.start_utc,
            ends_at=window.end_utc,
            duration_hours=window.duration_hours,
            total_amount=amount,
            payment_intent_id=payment_intent_id,
            status=BookingStatus.CONFIRMED.value,
            parking_status=ParkingStatus.PARKED.value,
            push_token=push_token,
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        db.commit()
    except CapacityExhausted:
        db.rollback()
        log.info(f"Capacity exhausted for {window}")
        raise
    except IntegrityError as e:
        db.rollback()
        log.error(f"Booking write rejected, slot decrement rolled back: {e.orig}")
        raise DuplicateId("A booking for this payment already exists",
                          space_id=space_id, payment_intent_id=payment_intent_id)
    except Exception:
        db.rollback()
        log.error("Booking write failed, slot decrement rolled back", exc_info=True)
        raise

    log.info(f"Reserved {window} for user {user_id} → {booking.booking_id}")
    return booking


def confirm_and_reserve(db: Session, gateway, payment_intent_id: str, window: TimeWindow,
                        space_id: str, vehicle_type, user_id: str, number_plate: str,
                        user_email: Optional[str] = None, push_token: Optional[str] = None) -> tuple[Booking, bool]:
    """
    Reserve once the gateway reports the payment intent as succeeded.
    Returns (booking, created). Confirming the same intent twice returns the
    booking from the first confirmation.
    """
    existing = booking_service.find_by_payment_intent(db, payment_intent_id)
    if existing:
        if existing.user_id != user_id:
            raise DuplicateId("Payment has already been used for another booking",
                              payment_intent_id=payment_intent_id)
        return existing, False

    _, pool, amount = quote(db, space_id, vehicle_type, window)
    intent = gateway.retrieve_intent(payment_intent_id)   # UpstreamPaymentError propagates
    if intent.status != "succeeded":
        raise PaymentNotCompleted(f"Payment not successful (status: {intent.status})",
                                  payment_intent_id=payment_intent_id)
    if intent.amount is not None and intent.amount < round(amount * 100):
        raise PaymentNotCompleted("Payment amount does not cover the booking",
                                  payment_intent_id=payment_intent_id)

    try:
        booking = reserve(db, space_id, vehicle_type, window, user_id, number_plate,
                          user_email=user_email, payment_intent_id=payment_intent_id,
                          push_token=push_token)
    except CapacityExhausted:
        with_context(logger, space_id, pool.vehicle_type).warning(
            f"Payment {payment_intent_id} succeeded but no slot was left — refund required"
        )
        raise
    except DuplicateId:
        # A concurrent confirmation of the same intent won the insert
        existing = booking_service.find_by_payment_intent(db, payment_intent_id)
        if existing:
            return existing, False
        raise
    return booking, True


def claim_and_release(db: Session, booking: Booking, reason: BookingStatus) -> bool:
    """
    Move a confirmed booking to `reason` and return its slot. Does not commit.
    Returns False when another caller already made the same transition.
    """
    claimed = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED.value)
        .values(status=reason.value, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount == 1
    db.expire(booking, ["status", "updated_at"])

    if not claimed:
        if booking.status == reason.value:
            return False
        booking_service.ensure_transition(booking, reason)
        # Still reads confirmed but the claim missed: someone else holds it
        return False

    log = with_context(logger, booking.space_id, booking.vehicle_type, booking.booking_id)
    space = db.query(ParkingSpace).filter(ParkingSpace.space_id == booking.space_id).first()
    pool = space.pool_for(booking.vehicle_type) if space else None
    if pool is None:
        log.warning(f"Space or pool no longer exists; booking marked {reason.value} without crediting a slot")
        return True

    slot_pool_service.release_slot(db, pool, space_id=booking.space_id, booking_id=booking.booking_id)
    return True


def release(db: Session, booking_id: str, reason, user_id: Optional[str] = None) -> ReleaseOutcome:
    reason = booking_service.parse_reason(reason)
    booking = booking_service.get_booking(db, booking_id, user_id)
    log = with_context(logger, booking.space_id, booking.vehicle_type, booking.booking_id)

    if booking.status == reason.value:
        log.debug(f"Already {reason.value}; nothing to release")
        return ReleaseOutcome(booking, False)
    booking_service.ensure_transition(booking, reason)

    try:
        released = claim_and_release(db, booking, reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if released:
        log.info(f"Released slot ({reason.value})")
    return ReleaseOutcome(booking, released)


def checkout(db: Session, booking_id: str, overtime_charges: float = 0,
             payment_intent_id: Optional[str] = None, user_id: Optional[str] = None) -> ReleaseOutcome:
    """Vehicle leaves: parked → unparked, optional overtime charge, then release as completed."""
    if overtime_charges is None or overtime_charges < 0:
        raise ValidationError.single("overtime_charges", "Overtime charges cannot be negative")

    booking = booking_service.get_booking(db, booking_id, user_id)
    booking_service.ensure_can_checkout(booking)
    log = with_context(logger, booking.space_id, booking.vehicle_type, booking.booking_id)

    try:
        booking.parking_status = ParkingStatus.UNPARKED.value
        if overtime_charges > 0:
            booking.total_amount = round(booking.total_amount + overtime_charges, 2)
            if payment_intent_id:
                booking.payment_intent_id = payment_intent_id
        booking.updated_at = datetime.utcnow()
        db.flush()
        released = claim_and_release(db, booking, BookingStatus.COMPLETED)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateId("Overtime payment has already been used for another booking",
                          payment_intent_id=payment_intent_id)
    except Exception:
        db.rollback()
        raise

    log.info(f"Checked out (overtime {overtime_charges:.2f})")
    return ReleaseOutcome(booking, released)
