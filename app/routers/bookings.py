# app/routers/bookings.py
"""
Booking endpoints — reserve (after payment), release, cancel, checkout, queries.

Users only see their own bookings; admins may act on any booking.
Push notifications go out as background tasks after the response.
"""

from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.models.enums import BookingStatus
from app.schemas.booking import BookingCreate, BookingOut, CheckoutRequest, ReleaseOut, ReleaseRequest
from app.services import booking_service, reservation_service
from app.services.notification_service import notify_booking
from app.services.payment_gateway import get_payment_gateway
from app.utils.time_window import TimeWindow, get_zone

router = APIRouter()


def _scope(user: CurrentUser) -> Optional[str]:
    return None if user.is_admin else user.user_id


def _notify_release(background: BackgroundTasks, outcome, kind: str):
    booking = outcome.booking
    if outcome.released and booking.push_token:
        background.add_task(notify_booking, kind, booking.push_token, booking.space_name, booking.booking_id)


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED,
             summary="Confirm payment and reserve a slot")
def create_booking(
    payload: BookingCreate,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    user: CurrentUser = Depends(get_current_user),
):
    window = TimeWindow.from_booking(payload.booking_date, payload.start_time, payload.end_time)
    booking, created = reservation_service.confirm_and_reserve(
        db, gateway,
        payment_intent_id=payload.payment_intent_id,
        window=window,
        space_id=payload.space_id,
        vehicle_type=payload.vehicle_type,
        user_id=user.user_id,
        number_plate=payload.number_plate,
        user_email=payload.user_email,
        push_token=payload.push_token,
    )
    if created and booking.push_token:
        background.add_task(notify_booking, "CONFIRMED", booking.push_token, booking.space_name, booking.booking_id)
    return booking


@router.get("/bookings", response_model=list[BookingOut], summary="Caller's booking history")
def list_bookings(limit: int = 50, db: Session = Depends(get_db),
                  user: CurrentUser = Depends(get_current_user)):
    return booking_service.list_user_bookings(db, user.user_id, limit)


@router.get("/bookings/active", response_model=list[BookingOut],
            summary="Confirmed, still-parked bookings for a date (default today)")
def active_bookings(on_date: Optional[date] = None, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    on_date = on_date or datetime.now(get_zone()).date()
    return booking_service.list_active_bookings(db, on_date, _scope(user))


@router.get("/bookings/{booking_id}", response_model=BookingOut, summary="One booking")
def get_booking(booking_id: str, db: Session = Depends(get_db),
                user: CurrentUser = Depends(get_current_user)):
    return booking_service.get_booking(db, booking_id, _scope(user))


@router.post("/bookings/{booking_id}/release", response_model=ReleaseOut,
             summary="Release a booking's slot (completed or cancelled)")
def release_booking(booking_id: str, payload: ReleaseRequest, background: BackgroundTasks,
                    db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    """Repeating a release with the same reason is a no-op (released=false)."""
    outcome = reservation_service.release(db, booking_id, payload.reason, _scope(user))
    _notify_release(background, outcome, payload.reason.value.upper())
    return ReleaseOut(booking=BookingOut.model_validate(outcome.booking), released=outcome.released)


@router.post("/bookings/{booking_id}/cancel", response_model=ReleaseOut, summary="Cancel a booking")
def cancel_booking(booking_id: str, background: BackgroundTasks,
                   db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    outcome = reservation_service.release(db, booking_id, BookingStatus.CANCELLED, _scope(user))
    _notify_release(background, outcome, "CANCELLED")
    return ReleaseOut(booking=BookingOut.model_validate(outcome.booking), released=outcome.released)


@router.post("/bookings/{booking_id}/checkout", response_model=ReleaseOut,
             summary="Vehicle left — settle overtime and complete the booking")
def checkout_booking(booking_id: str, payload: CheckoutRequest, background: BackgroundTasks,
                     db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    outcome = reservation_service.checkout(
        db, booking_id,
        overtime_charges=payload.overtime_charges,
        payment_intent_id=payload.payment_intent_id,
        user_id=_scope(user),
    )
    _notify_release(background, outcome, "COMPLETED")
    return ReleaseOut(booking=BookingOut.model_validate(outcome.booking), released=outcome.released)
