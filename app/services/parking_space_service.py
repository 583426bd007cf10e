# app/services/parking_space_service.py
"""
Parking space registry: create, look up, search nearby, delete, and
administrative pool corrections.
"""

import time
import uuid
from datetime import datetime
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.exceptions import DuplicateId, NotFound, ValidationError, VehicleTypeNotOffered
from app.models.booking import Booking
from app.models.enums import BookingStatus
from app.models.parking_space import ParkingSpace, SlotPool
from app.schemas.parking_space import ParkingSpaceCreate
from app.services import slot_pool_service
from app.utils.geo import haversine_m, is_valid_latitude, is_valid_longitude
from app.utils.logger import get_logger

logger = get_logger(__name__)

MAX_FACILITY_LENGTH = 50
MAX_SPACE_ID_LENGTH = 50


def _generate_space_id() -> str:
    return f"PS-{int(time.time() * 1000)}-{uuid.uuid4().hex[:4]}"


def validate_space(payload: ParkingSpaceCreate) -> list[dict]:
    """Collect every field-level problem with a space definition."""
    errors = []

    def err(field, message):
        errors.append({"field": field, "message": message})

    name = (payload.name or "").strip()
    if not 2 <= len(name) <= 100:
        err("name", "Name must be between 2 and 100 characters")
    address = (payload.address or "").strip()
    if not 5 <= len(address) <= 200:
        err("address", "Address must be between 5 and 200 characters")

    if not is_valid_latitude(payload.latitude):
        err("latitude", "Latitude must be between -90 and 90")
    if not is_valid_longitude(payload.longitude):
        err("longitude", "Longitude must be between -180 and 180")

    if payload.space_id is not None:
        sid = payload.space_id.strip()
        if not sid or len(sid) > MAX_SPACE_ID_LENGTH:
            err("space_id", f"Space ID must be 1-{MAX_SPACE_ID_LENGTH} characters")

    for i, facility in enumerate(payload.facilities):
        if len(facility.strip()) > MAX_FACILITY_LENGTH:
            err(f"facilities[{i}]", f"Facility name cannot exceed {MAX_FACILITY_LENGTH} characters")

    if not payload.vehicle_slots:
        err("vehicle_slots", "At least one vehicle slot pool is required")

    seen = set()
    for i, slot in enumerate(payload.vehicle_slots):
        prefix = f"vehicle_slots[{i}]"
        if slot.vehicle_type in seen:
            err(f"{prefix}.vehicle_type", f"Duplicate vehicle type {slot.vehicle_type.value}")
        seen.add(slot.vehicle_type)
        if slot.total_slots < 1:
            err(f"{prefix}.total_slots", "Total slots must be at least 1")
        if slot.price_per_hour < 0:
            err(f"{prefix}.price_per_hour", "Price must be a positive number")
        for dim in ("length", "width", "height"):
            if getattr(slot.dimensions, dim) < 0:
                err(f"{prefix}.dimensions.{dim}", f"{dim.capitalize()} must be positive")

    return errors


def create_space(db: Session, payload: ParkingSpaceCreate) -> ParkingSpace:
    errors = validate_space(payload)
    if errors:
        raise ValidationError(errors)

    space_id = payload.space_id.strip() if payload.space_id else _generate_space_id()
    if db.query(ParkingSpace.id).filter(ParkingSpace.space_id == space_id).first():
        raise DuplicateId(f"Parking space with ID '{space_id}' already exists", space_id=space_id)

    now = datetime.utcnow()
    space = ParkingSpace(
        space_id=space_id,
        name=payload.name.strip(),
        address=payload.address.strip(),
        space_type=payload.space_type.value,
        latitude=float(payload.latitude),
        longitude=float(payload.longitude),
        facilities=[f.strip() for f in payload.facilities if f and f.strip()],
        is_active=True,
        created_at=now,
        updated_at=now,
        slot_pools=[
            SlotPool(
                position=i,
                vehicle_type=slot.vehicle_type.value,
                total_slots=slot.total_slots,
                available_slots=slot.total_slots,
                price_per_hour=float(slot.price_per_hour),
                length=slot.dimensions.length,
                width=slot.dimensions.width,
                height=slot.dimensions.height,
            )
            for i, slot in enumerate(payload.vehicle_slots)
        ],
    )
    db.add(space)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent create of the same id
        db.rollback()
        raise DuplicateId(f"Parking space with ID '{space_id}' already exists", space_id=space_id)
    db.refresh(space)
    logger.info(f"Parking space {space_id} created with {len(space.slot_pools)} pool(s)")
    return space


def list_spaces(db: Session) -> list[ParkingSpace]:
    return db.query(ParkingSpace).order_by(ParkingSpace.created_at.desc()).all()


def get_space(db: Session, space_id: str) -> ParkingSpace:
    space = db.query(ParkingSpace).filter(ParkingSpace.space_id == space_id).first()
    if not space:
        raise NotFound(f"Parking space '{space_id}' not found", space_id=space_id)
    return space


def get_pool(space: ParkingSpace, vehicle_type) -> SlotPool:
    pool = space.pool_for(vehicle_type)
    if pool is None:
        raise VehicleTypeNotOffered(
            f"Parking space '{space.space_id}' has no {getattr(vehicle_type, 'value', vehicle_type)} slots",
            space_id=space.space_id, vehicle_type=vehicle_type,
        )
    return pool


def find_nearby(db: Session, latitude: float, longitude: float, radius_meters: float) -> list[tuple]:
    """Active spaces within `radius_meters`, as (space, distance_m) pairs, nearest first."""
    errors = []
    if not is_valid_latitude(latitude):
        errors.append({"field": "latitude", "message": "Latitude must be between -90 and 90"})
    if not is_valid_longitude(longitude):
        errors.append({"field": "longitude", "message": "Longitude must be between -180 and 180"})
    if radius_meters is None or radius_meters <= 0:
        errors.append({"field": "radius", "message": "Radius must be a positive number of meters"})
    if errors:
        raise ValidationError(errors)

    nearby = []
    for space in db.query(ParkingSpace).filter(ParkingSpace.is_active.is_(True)).all():
        distance = haversine_m(latitude, longitude, space.latitude, space.longitude)
        if distance <= radius_meters:
            nearby.append((space, distance))
    nearby.sort(key=lambda pair: pair[1])
    logger.debug(f"Nearby ({latitude}, {longitude}) r={radius_meters}m → {len(nearby)} space(s)")
    return nearby


def delete_space(db: Session, space_id: str) -> int:
    """
    Delete a space and its pools. Its confirmed bookings are cancelled in the
    same transaction without crediting any pool. Returns how many were cancelled.
    """
    space = get_space(db, space_id)
    cancelled = db.execute(
        update(Booking)
        .where(Booking.space_id == space_id, Booking.status == BookingStatus.CONFIRMED.value)
        .values(status=BookingStatus.CANCELLED.value, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    db.delete(space)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    if cancelled:
        logger.warning(f"Parking space {space_id} deleted; {cancelled} confirmed booking(s) cancelled")
    else:
        logger.info(f"Parking space {space_id} deleted")
    return cancelled


def set_active(db: Session, space_id: str, is_active: bool) -> ParkingSpace:
    space = get_space(db, space_id)
    space.is_active = is_active
    space.updated_at = datetime.utcnow()
    db.commit()
    logger.info(f"Parking space {space_id} {'activated' if is_active else 'deactivated'}")
    return space


def resize_pool(db: Session, space_id: str, vehicle_type, total_slots: int) -> ParkingSpace:
    space = get_space(db, space_id)
    pool = get_pool(space, vehicle_type)
    try:
        slot_pool_service.resize_pool(db, pool, total_slots, space_id=space_id)
        space.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(space)
    return space
