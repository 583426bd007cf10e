# app/services/reconciler.py
"""
Availability reconciler — the periodic job that returns capacity from
bookings whose window has elapsed.

Each pass (reconcile_once):
  1. sweep   — every confirmed booking with ends_at <= now is released as
               completed. A failure on one booking is logged and the sweep
               moves on to the next.
  2. drift   — per pool, check  #confirmed bookings == total − available
               and heal a mismatch with a compare-and-swap on the observed
               counter (skipped when the counter moved in the meantime).
  3. remind  — claim confirmed bookings starting within
               UPCOMING_REMINDER_MINUTES that have not been reminded yet.

Passes may overlap (timer + POST /admin/reconcile, or two instances).
Release claims the booking status before touching the pool, so a booking
observed by two sweeps is credited once.

run_reconciler() drives passes from an asyncio task. The DB work of a pass
runs in a worker thread with its own session; push notifications are sent
afterwards on the event loop.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.config import settings
from app.exceptions import InvalidTransition, ParkingError
from app.models.booking import Booking
from app.models.enums import BookingStatus
from app.models.parking_space import ParkingSpace, SlotPool
from app.services import notification_service, reservation_service, slot_pool_service
from app.utils.logger import get_logger, with_context
from app.utils.time_window import utc_now

logger = get_logger(__name__)


@dataclass
class Notification:
    kind: str
    push_token: str
    location: str
    booking_id: str


@dataclass
class DriftReport:
    space_id: str
    vehicle_type: str
    observed_available: int
    expected_available: int
    held_by_bookings: int
    healed: bool = False


@dataclass
class SweepResult:
    released: list[str] = field(default_factory=list)
    skipped: int = 0
    failures: int = 0
    notifications: list[Notification] = field(default_factory=list)


@dataclass
class ReconcileResult:
    ran_at: datetime
    released: int = 0
    failures: int = 0
    drift: list[DriftReport] = field(default_factory=list)
    reminders: int = 0
    notifications: list[Notification] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ran_at": self.ran_at.isoformat(),
            "released": self.released,
            "failures": self.failures,
            "reminders": self.reminders,
            "drift": [d.__dict__ for d in self.drift],
        }


@dataclass
class ReconcilerState:
    """Checkpoint owned by the application instance. In-memory only."""
    last_run_at: Optional[datetime] = None
    runs: int = 0
    released_total: int = 0
    failures_total: int = 0
    drift_detected_total: int = 0
    healed_total: int = 0
    reminders_total: int = 0
    last_error: Optional[str] = None

    def record(self, result: ReconcileResult) -> None:
        self.last_run_at = result.ran_at
        self.runs += 1
        self.released_total += result.released
        self.failures_total += result.failures
        self.drift_detected_total += len(result.drift)
        self.healed_total += sum(1 for d in result.drift if d.healed)
        self.reminders_total += result.reminders

    def to_dict(self) -> dict:
        return {
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "runs": self.runs,
            "released_total": self.released_total,
            "failures_total": self.failures_total,
            "drift_detected_total": self.drift_detected_total,
            "healed_total": self.healed_total,
            "reminders_total": self.reminders_total,
            "last_error": self.last_error,
        }


# ── Sweep ─────────────────────────────────────────────────────────────────────

def sweep_expired_bookings(db: Session, now: Optional[datetime] = None) -> SweepResult:
    """Release every confirmed booking whose window ended at or before `now` (naive UTC)."""
    now = now or utc_now()
    result = SweepResult()

    expired = (
        db.query(Booking)
        .filter(Booking.status == BookingStatus.CONFIRMED.value, Booking.ends_at <= now)
        .order_by(Booking.ends_at)
        .all()
    )
    if not expired:
        return result
    logger.info(f"[SWEEP] {len(expired)} expired booking(s) to complete")

    for booking in expired:
        log = with_context(logger, booking.space_id, booking.vehicle_type, booking.booking_id)
        try:
            released = reservation_service.claim_and_release(db, booking, BookingStatus.COMPLETED)
            db.commit()
        except InvalidTransition as e:
            # Cancelled between the scan and the claim
            db.rollback()
            result.skipped += 1
            log.debug(f"Skipped: {e.message}")
            continue
        except ParkingError as e:
            db.rollback()
            result.failures += 1
            log.error(f"Sweep failed for booking: {e.code}: {e.message}")
            continue
        except SQLAlchemyError as e:
            db.rollback()
            result.failures += 1
            log.error(f"Sweep failed for booking (store error): {e}")
            continue

        if not released:
            result.skipped += 1
            continue
        result.released.append(booking.booking_id)
        log.info("Window elapsed — completed and slot returned")
        if booking.push_token:
            result.notifications.append(Notification(
                "COMPLETED", booking.push_token, booking.space_name, booking.booking_id,
            ))

    return result


# ── Drift check ───────────────────────────────────────────────────────────────

def verify_pool_counters(db: Session, heal: bool = True) -> list[DriftReport]:
    """
    Compare each pool's held slots (total − available) with its confirmed
    bookings. Counters are read before bookings are counted, so a reservation
    committing mid-check moves the counter and the heal CAS misses.
    """
    pools = db.query(SlotPool, ParkingSpace.space_id).join(ParkingSpace, SlotPool.space_pk == ParkingSpace.id).all()
    observed = {pool.id: pool.available_slots for pool, _ in pools}

    held = Counter({
        (row.space_id, row.vehicle_type): row.n
        for row in db.query(Booking.space_id, Booking.vehicle_type, func.count(Booking.id).label("n"))
        .filter(Booking.status == BookingStatus.CONFIRMED.value)
        .group_by(Booking.space_id, Booking.vehicle_type)
        .all()
    })

    reports = []
    for pool, space_id in pools:
        in_use = held[(space_id, pool.vehicle_type)]
        expected = min(pool.total_slots, max(0, pool.total_slots - in_use))
        seen = observed[pool.id]
        if seen == expected:
            continue

        report = DriftReport(space_id, pool.vehicle_type, seen, expected, in_use)
        log = with_context(logger, space_id, pool.vehicle_type)
        log.warning(f"[DRIFT] available={seen} but {in_use} confirmed booking(s) imply {expected}")
        if heal:
            report.healed = slot_pool_service.set_available_if_unchanged(db, pool, seen, expected)
            if report.healed:
                log.warning(f"[DRIFT] healed {seen} → {expected}")
            else:
                log.info("[DRIFT] counter moved during check; heal skipped")
        reports.append(report)

    if heal:
        db.commit()
    return reports


# ── Upcoming reminders ────────────────────────────────────────────────────────

def claim_upcoming_reminders(db: Session, now: Optional[datetime] = None,
                             lead_minutes: Optional[int] = None) -> list[Notification]:
    """
    Claim (reminder_sent_at IS NULL → now) confirmed bookings starting within
    `lead_minutes`. Only claimed bookings are returned, so each gets one reminder.
    """
    now = now or utc_now()
    lead = settings.UPCOMING_REMINDER_MINUTES if lead_minutes is None else lead_minutes

    candidates = (
        db.query(Booking)
        .filter(
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.reminder_sent_at.is_(None),
            Booking.push_token.isnot(None),
            Booking.starts_at > now,
            Booking.starts_at <= now + timedelta(minutes=lead),
        )
        .all()
    )

    claimed = []
    for booking in candidates:
        won = db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.reminder_sent_at.is_(None))
            .values(reminder_sent_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if won:
            claimed.append(Notification("UPCOMING", booking.push_token, booking.space_name, booking.booking_id))
    db.commit()

    if claimed:
        logger.info(f"[REMIND] {len(claimed)} upcoming booking reminder(s) claimed")
    return claimed


# ── Pass / loop ───────────────────────────────────────────────────────────────

def reconcile_once(session_factory: Callable[[], Session], state: ReconcilerState,
                   now: Optional[datetime] = None, heal: Optional[bool] = None) -> ReconcileResult:
    """One full pass with a fresh session. Updates `state` and returns what happened."""
    now = now or utc_now()
    heal = settings.DRIFT_HEAL_ENABLED if heal is None else heal
    result = ReconcileResult(ran_at=now)

    db = session_factory()
    try:
        sweep = sweep_expired_bookings(db, now)
        result.released = len(sweep.released)
        result.failures = sweep.failures
        result.notifications.extend(sweep.notifications)

        result.drift = verify_pool_counters(db, heal=heal)

        reminders = claim_upcoming_reminders(db, now)
        result.reminders = len(reminders)
        result.notifications.extend(reminders)
    except Exception as e:
        db.rollback()
        state.last_error = str(e)
        logger.error(f"Reconciliation pass failed: {e}", exc_info=True)
        raise
    finally:
        db.close()

    state.last_error = None
    state.record(result)
    if result.released or result.failures or result.drift:
        logger.info(
            f"[RECONCILE] released={result.released} failures={result.failures} "
            f"drift={len(result.drift)} reminders={result.reminders}"
        )
    return result


async def send_notifications(notifications: list[Notification]) -> int:
    sent = 0
    for n in notifications:
        if await notification_service.notify_booking(n.kind, n.push_token, n.location, n.booking_id):
            sent += 1
    return sent


async def run_reconciler(session_factory: Callable[[], Session], state: ReconcilerState,
                         interval: Optional[int] = None):
    """
    Run reconciliation passes forever, `interval` seconds apart.
    Started once at backend startup; stops when its task is cancelled.
    """
    interval = interval or settings.RECONCILE_INTERVAL_SECONDS
    logger.info(f"🚀 Reconciler started — every {interval}s")

    while True:
        try:
            result = await asyncio.to_thread(reconcile_once, session_factory, state)
            await send_notifications(result.notifications)
        except asyncio.CancelledError:
            logger.info("Reconciler stopped")
            raise
        except Exception as e:
            # Logged in full by reconcile_once
            logger.warning(f"Reconciler pass skipped: {e}")

        await asyncio.sleep(interval)
