# app/routers/admin.py
from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from app.database import get_db, get_session_factory
from app.dependencies import CurrentUser, require_admin
from app.models.enums import BookingStatus
from app.schemas.booking import BookingOut
from app.services import booking_service
from app.services.reconciler import ReconcilerState, reconcile_once, send_notifications
from app.utils.time_window import get_zone

router = APIRouter()


def get_reconciler_state(request: Request) -> ReconcilerState:
    state = getattr(request.app.state, "reconciler_state", None)
    if state is None:
        state = ReconcilerState()
        request.app.state.reconciler_state = state
    return state


@router.post("/admin/reconcile", summary="Run one reconciliation pass now")
async def reconcile_now(
    background: BackgroundTasks,
    session_factory=Depends(get_session_factory),
    state: ReconcilerState = Depends(get_reconciler_state),
    _: CurrentUser = Depends(require_admin),
):
    """Sweep expired bookings, verify (and heal) pool counters, claim due reminders."""
    result = await run_in_threadpool(reconcile_once, session_factory, state)
    if result.notifications:
        background.add_task(send_notifications, result.notifications)
    return {"result": result.to_dict(), "state": state.to_dict()}


@router.get("/admin/bookings", response_model=list[BookingOut],
            summary="All bookings for a date (default today), any status")
def bookings_for_date(
    on_date: Optional[date] = None,
    status: Optional[BookingStatus] = None,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    on_date = on_date or datetime.now(get_zone()).date()
    return booking_service.list_bookings_for_date(db, on_date, status)


@router.get("/admin/bookings/lookup", response_model=list[BookingOut],
            summary="Bookings of one user, by id and/or email")
def bookings_for_user(
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    return booking_service.find_bookings_by_user(db, user_id, user_email)
