# app/services/slot_pool_service.py
"""
Slot pool counter operations.

Every change to `available_slots` is a single conditional UPDATE whose WHERE
clause carries the guard ("available_slots > 0", "available_slots <
total_slots", "available_slots == observed"). Whether the guard held at apply
time is read back from the affected row count. Two concurrent reservations
for the last slot therefore cannot both succeed: the store serialises the row
update and the loser matches zero rows.

None of these functions commit — the caller owns the transaction.
"""

from sqlalchemy import update
from sqlalchemy.orm import Session
from app.exceptions import CapacityExhausted, OverRelease, ValidationError
from app.models.parking_space import SlotPool
from app.utils.logger import get_logger, with_context

logger = get_logger(__name__)


def _apply(db: Session, pool: SlotPool, stmt) -> bool:
    result = db.execute(stmt.execution_options(synchronize_session=False))
    # The in-session copy is stale either way; reload on next access.
    db.expire(pool, ["available_slots", "total_slots"])
    return result.rowcount == 1


def reserve_slot(db: Session, pool: SlotPool, space_id: str = None) -> None:
    """Take one slot from the pool or raise CapacityExhausted."""
    taken = _apply(db, pool, (
        update(SlotPool)
        .where(SlotPool.id == pool.id, SlotPool.available_slots > 0)
        .values(available_slots=SlotPool.available_slots - 1)
    ))
    if not taken:
        raise CapacityExhausted(
            f"No {pool.vehicle_type} slots available",
            space_id=space_id, vehicle_type=pool.vehicle_type,
        )


def release_slot(db: Session, pool: SlotPool, space_id: str = None, booking_id: str = None) -> None:
    """Return one slot to the pool. A pool that is already full raises OverRelease."""
    returned = _apply(db, pool, (
        update(SlotPool)
        .where(SlotPool.id == pool.id, SlotPool.available_slots < SlotPool.total_slots)
        .values(available_slots=SlotPool.available_slots + 1)
    ))
    if not returned:
        with_context(logger, space_id, pool.vehicle_type, booking_id).error(
            f"Over-release: pool already at {pool.total_slots}/{pool.total_slots}"
        )
        raise OverRelease(
            "Slot pool is already full",
            space_id=space_id, vehicle_type=pool.vehicle_type, booking_id=booking_id,
        )


def resize_pool(db: Session, pool: SlotPool, new_total: int, space_id: str = None) -> None:
    """
    Administrative correction: change total_slots and shift available_slots by the
    same delta, so slots currently held by bookings stay held.
    Rejected when fewer slots than are currently held would remain.
    """
    if new_total < 1:
        raise ValidationError.single("total_slots", "Total slots must be at least 1")

    delta = new_total - SlotPool.total_slots
    resized = _apply(db, pool, (
        update(SlotPool)
        .where(SlotPool.id == pool.id, SlotPool.total_slots - SlotPool.available_slots <= new_total)
        .values(total_slots=new_total, available_slots=SlotPool.available_slots + delta)
    ))
    if not resized:
        raise ValidationError.single(
            "total_slots",
            f"{pool.held_slots} {pool.vehicle_type} slots are currently held; total cannot go below that",
        )
    with_context(logger, space_id, pool.vehicle_type).info(f"Pool resized to {new_total} slots")


def set_available_if_unchanged(db: Session, pool: SlotPool, observed: int, corrected: int) -> bool:
    """Compare-and-swap used by drift healing. False if the counter moved since it was observed."""
    return _apply(db, pool, (
        update(SlotPool)
        .where(SlotPool.id == pool.id, SlotPool.available_slots == observed)
        .values(available_slots=corrected)
    ))
