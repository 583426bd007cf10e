# app/routers/payments.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.exceptions import CapacityExhausted
from app.schemas.booking import PaymentIntentCreate, PaymentIntentOut
from app.services import reservation_service
from app.services.payment_gateway import get_payment_gateway
from app.utils.time_window import TimeWindow

router = APIRouter()


@router.post("/payments/intent", response_model=PaymentIntentOut, summary="Price a window and open a payment intent")
def create_payment_intent(
    payload: PaymentIntentCreate,
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    user: CurrentUser = Depends(get_current_user),
):
    """
    The amount is pricePerHour × window hours for the requested pool.
    A pool with no free slot is refused before the customer is charged.
    """
    window = TimeWindow.from_booking(payload.booking_date, payload.start_time, payload.end_time)
    space, pool, amount = reservation_service.quote(db, payload.space_id, payload.vehicle_type, window)
    if pool.available_slots <= 0:
        raise CapacityExhausted(f"No {pool.vehicle_type} slots available",
                                space_id=space.space_id, vehicle_type=pool.vehicle_type)

    intent = gateway.create_intent(amount, settings.PAYMENT_CURRENCY, metadata={
        "userId": user.user_id,
        "spaceId": space.space_id,
        "vehicleType": pool.vehicle_type,
        "bookingDate": window.booking_date.isoformat(),
        "startTime": f"{window.start_time:%H:%M}",
        "endTime": f"{window.end_time:%H:%M}",
    })
    return PaymentIntentOut(
        client_secret=intent.client_secret or "",
        payment_intent_id=intent.intent_id,
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
    )
