# app/schemas/booking.py
from pydantic import BaseModel, field_validator
from datetime import date, datetime, time
from typing import Optional
from app.models.enums import BookingStatus, VehicleType


class BookingWindowIn(BaseModel):
    space_id: str
    vehicle_type: VehicleType
    booking_date: date
    start_time: time
    end_time: time

    @field_validator("vehicle_type", mode="before")
    @classmethod
    def _normalise_vehicle_type(cls, v):
        return VehicleType.parse(v) or v


class BookingCreate(BookingWindowIn):
    payment_intent_id: str
    number_plate: str
    user_email: Optional[str] = None
    push_token: Optional[str] = None


class BookingOut(BaseModel):
    booking_id: str
    user_id: str
    user_email: Optional[str]
    space_id: str
    space_name: Optional[str]
    vehicle_type: str
    number_plate: str
    booking_date: date
    start_time: time
    end_time: time
    duration_hours: float
    total_amount: float
    payment_intent_id: Optional[str]
    status: str
    parking_status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReleaseRequest(BaseModel):
    reason: BookingStatus = BookingStatus.COMPLETED


class ReleaseOut(BaseModel):
    booking: BookingOut
    released: bool   # False when the booking was already in the requested state


class CheckoutRequest(BaseModel):
    overtime_charges: float = 0
    payment_intent_id: Optional[str] = None


class PaymentIntentCreate(BookingWindowIn):
    pass


class PaymentIntentOut(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: float
    currency: str
