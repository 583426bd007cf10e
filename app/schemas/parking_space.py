# app/schemas/parking_space.py
from pydantic import BaseModel, field_validator
from datetime import date, datetime, time
from typing import Optional
from app.models.enums import SpaceType, VehicleType


class Dimensions(BaseModel):
    length: float = 0
    width: float = 0
    height: float = 0


class SlotPoolCreate(BaseModel):
    vehicle_type: VehicleType
    total_slots: int
    price_per_hour: float = 0
    dimensions: Dimensions = Dimensions()

    @field_validator("vehicle_type", mode="before")
    @classmethod
    def _normalise_vehicle_type(cls, v):
        return VehicleType.parse(v) or v


class ParkingSpaceCreate(BaseModel):
    name: str
    address: str
    space_type: SpaceType
    latitude: float
    longitude: float
    vehicle_slots: list[SlotPoolCreate]
    facilities: list[str] = []
    space_id: Optional[str] = None

    @field_validator("space_type", mode="before")
    @classmethod
    def _capitalise_space_type(cls, v):
        # "covered" / "COVERED" → "Covered"
        return v[:1].upper() + v[1:].lower() if isinstance(v, str) else v


class SlotPoolOut(BaseModel):
    vehicle_type: str
    total_slots: int
    available_slots: int
    price_per_hour: float
    dimensions: Dimensions

    class Config:
        from_attributes = True


class ParkingSpaceOut(BaseModel):
    space_id: str
    name: str
    address: str
    space_type: str
    latitude: float
    longitude: float
    facilities: list[str]
    is_active: bool
    slot_pools: list[SlotPoolOut]
    total_capacity: int
    total_available_slots: int
    daily_potential_revenue: float
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class SlotPoolResize(BaseModel):
    total_slots: int


class SpaceActiveUpdate(BaseModel):
    is_active: bool


class UpcomingBooking(BaseModel):
    start_time: time
    end_time: time
    booking_date: date


class PoolAvailabilityOut(BaseModel):
    vehicle_type: str
    total_slots: int
    available_slots: int          # effective, for the queried window
    price_per_hour: float
    dimensions: Dimensions
    upcoming_bookings: list[UpcomingBooking] = []


class SpaceAvailabilityOut(BaseModel):
    space_id: str
    name: str
    address: str
    space_type: str
    latitude: float
    longitude: float
    facilities: list[str]
    distance_meters: Optional[float] = None
    vehicle_slots: list[PoolAvailabilityOut]
    total_available_slots: int
    total_capacity: int


class EffectiveAvailabilityOut(BaseModel):
    space_id: str
    vehicle_type: str
    booking_date: date
    start_time: time
    end_time: time
    available_slots: int
