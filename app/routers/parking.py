# app/routers/parking.py
"""
Parking space registry + availability endpoints.

Writes are admin-only. Availability endpoints accept an optional window
(booking_date + start_time + end_time); without one they answer for "now".
"""

from datetime import date, time
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.dependencies import CurrentUser, require_admin
from app.exceptions import ValidationError
from app.schemas.parking_space import (
    EffectiveAvailabilityOut, ParkingSpaceCreate, ParkingSpaceOut, SlotPoolResize,
    SpaceActiveUpdate, SpaceAvailabilityOut,
)
from app.services import availability_service, parking_space_service
from app.utils.time_window import TimeWindow

router = APIRouter()


def _window(booking_date: Optional[date], start_time: Optional[time], end_time: Optional[time]) -> TimeWindow:
    given = [v is not None for v in (booking_date, start_time, end_time)]
    if not any(given):
        return TimeWindow.instant()
    if not all(given):
        raise ValidationError.single(
            "booking_date", "booking_date, start_time and end_time must be given together",
        )
    return TimeWindow.from_booking(booking_date, start_time, end_time)


@router.post("/parking/spaces", response_model=ParkingSpaceOut,
             status_code=status.HTTP_201_CREATED, summary="Register a parking space")
def create_space(payload: ParkingSpaceCreate, db: Session = Depends(get_db),
                 _: CurrentUser = Depends(require_admin)):
    return parking_space_service.create_space(db, payload)


@router.get("/parking/spaces", response_model=list[ParkingSpaceOut], summary="All parking spaces")
def list_spaces(db: Session = Depends(get_db)):
    return parking_space_service.list_spaces(db)


@router.get("/parking/spaces/nearby", response_model=list[SpaceAvailabilityOut],
            summary="Active spaces within a radius, nearest first")
def nearby_spaces(latitude: float, longitude: float, radius: Optional[float] = None,
                  db: Session = Depends(get_db)):
    radius = settings.DEFAULT_NEARBY_RADIUS_METERS if radius is None else radius
    nearby = parking_space_service.find_nearby(db, latitude, longitude, radius)
    return availability_service.availability_view(db, nearby, TimeWindow.instant())


@router.get("/parking/availability/nearby", response_model=list[SpaceAvailabilityOut],
            summary="Nearby spaces with effective availability for a window")
def nearby_availability(
    latitude: float,
    longitude: float,
    radius: Optional[float] = None,
    booking_date: Optional[date] = None,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    db: Session = Depends(get_db),
):
    """Each pool's available_slots is totalSlots minus confirmed bookings overlapping the window."""
    window = _window(booking_date, start_time, end_time)
    return availability_service.nearby_availability(
        db, latitude, longitude,
        settings.DEFAULT_NEARBY_RADIUS_METERS if radius is None else radius, window,
    )


@router.get("/parking/spaces/{space_id}", response_model=ParkingSpaceOut, summary="One parking space")
def get_space(space_id: str, db: Session = Depends(get_db)):
    return parking_space_service.get_space(db, space_id)


@router.delete("/parking/spaces/{space_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Remove a parking space and its pools")
def delete_space(space_id: str, db: Session = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    parking_space_service.delete_space(db, space_id)


@router.put("/parking/spaces/{space_id}/active", response_model=ParkingSpaceOut,
            summary="Open or close a space for new bookings")
def set_active(space_id: str, payload: SpaceActiveUpdate, db: Session = Depends(get_db),
               _: CurrentUser = Depends(require_admin)):
    return parking_space_service.set_active(db, space_id, payload.is_active)


@router.put("/parking/spaces/{space_id}/slots/{vehicle_type}", response_model=ParkingSpaceOut,
            summary="Resize a slot pool (held slots stay held)")
def resize_pool(space_id: str, vehicle_type: str, payload: SlotPoolResize,
                db: Session = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    return parking_space_service.resize_pool(db, space_id, vehicle_type, payload.total_slots)


@router.get("/parking/spaces/{space_id}/availability", response_model=EffectiveAvailabilityOut,
            summary="Effective availability of one pool for a window")
def space_availability(
    space_id: str,
    vehicle_type: str,
    booking_date: Optional[date] = None,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    db: Session = Depends(get_db),
):
    window = _window(booking_date, start_time, end_time)
    space = parking_space_service.get_space(db, space_id)
    pool = parking_space_service.get_pool(space, vehicle_type)
    return EffectiveAvailabilityOut(
        space_id=space.space_id,
        vehicle_type=pool.vehicle_type,
        booking_date=window.booking_date,
        start_time=window.start_time,
        end_time=window.end_time,
        available_slots=availability_service.effective_availability(db, space_id, pool.vehicle_type, window),
    )
