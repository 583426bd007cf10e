# app/services/availability_service.py
"""
Read-only availability views.

The persisted `available_slots` counter describes "right now". Forward-looking
questions ("room for a Car 15:00-17:00 today?") are answered by overlaying
confirmed bookings on the pool's total:

    effective = max(0, total_slots − #confirmed bookings for the pool overlapping [start, end))

Nothing in this module writes to the store.
"""

from collections import Counter, defaultdict
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.booking import Booking
from app.models.enums import BookingStatus
from app.services import parking_space_service
from app.utils.time_window import TimeWindow


def _overlapping(query, window: TimeWindow):
    return query.filter(
        Booking.status == BookingStatus.CONFIRMED.value,
        Booking.starts_at < window.end_utc,
        Booking.ends_at > window.start_utc,
    )


def count_overlapping(db: Session, space_id: str, vehicle_type: str, window: TimeWindow) -> int:
    q = db.query(func.count(Booking.id)).filter(
        Booking.space_id == space_id,
        Booking.vehicle_type == vehicle_type,
    )
    return _overlapping(q, window).scalar() or 0


def effective_availability(db: Session, space_id: str, vehicle_type, window: TimeWindow) -> int:
    space = parking_space_service.get_space(db, space_id)
    pool = parking_space_service.get_pool(space, vehicle_type)
    booked = count_overlapping(db, space.space_id, pool.vehicle_type, window)
    return max(0, pool.total_slots - booked)


def availability_view(db: Session, spaces_with_distance: list[tuple], window: TimeWindow) -> list[dict]:
    """
    Per-space, per-pool effective availability for `window`, plus each pool's
    upcoming confirmed bookings (starting after the window start).
    Two queries regardless of how many spaces are passed in.
    """
    if not spaces_with_distance:
        return []
    space_ids = [space.space_id for space, _ in spaces_with_distance]

    overlapping = _overlapping(
        db.query(Booking.space_id, Booking.vehicle_type).filter(Booking.space_id.in_(space_ids)),
        window,
    ).all()
    booked = Counter((row.space_id, row.vehicle_type) for row in overlapping)

    upcoming_rows = (
        db.query(Booking)
        .filter(
            Booking.space_id.in_(space_ids),
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.starts_at > window.start_utc,
        )
        .order_by(Booking.starts_at)
        .all()
    )
    upcoming = defaultdict(list)
    for b in upcoming_rows:
        upcoming[(b.space_id, b.vehicle_type)].append({
            "booking_date": b.booking_date, "start_time": b.start_time, "end_time": b.end_time,
        })

    view = []
    for space, distance in spaces_with_distance:
        pools = []
        for pool in space.slot_pools:
            key = (space.space_id, pool.vehicle_type)
            pools.append({
                "vehicle_type": pool.vehicle_type,
                "total_slots": pool.total_slots,
                "available_slots": max(0, pool.total_slots - booked[key]),
                "price_per_hour": pool.price_per_hour,
                "dimensions": pool.dimensions,
                "upcoming_bookings": upcoming[key],
            })
        view.append({
            "space_id": space.space_id,
            "name": space.name,
            "address": space.address,
            "space_type": space.space_type,
            "latitude": space.latitude,
            "longitude": space.longitude,
            "facilities": space.facilities or [],
            "distance_meters": round(distance, 1) if distance is not None else None,
            "vehicle_slots": pools,
            "total_available_slots": sum(p["available_slots"] for p in pools),
            "total_capacity": space.total_capacity,
        })
    return view


def nearby_availability(db: Session, latitude: float, longitude: float, radius_meters: float,
                        window: Optional[TimeWindow] = None) -> list[dict]:
    window = window or TimeWindow.instant()
    nearby = parking_space_service.find_nearby(db, latitude, longitude, radius_meters)
    return availability_view(db, nearby, window)
