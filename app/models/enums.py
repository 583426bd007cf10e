# app/models/enums.py
"""Enumerated values stored as plain strings in the parking tables."""

from enum import Enum
from typing import Optional


class VehicleType(str, Enum):
    CAR = "Car"
    MOTORCYCLE = "Motorcycle"
    BUS = "Bus"
    TRUCK = "Truck"
    BICYCLE = "Bicycle"
    VAN = "Van"

    @classmethod
    def parse(cls, value) -> Optional["VehicleType"]:
        """Case-insensitive lookup. Returns None for unknown values."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        return None


class SpaceType(str, Enum):
    OPEN = "Open"
    COVERED = "Covered"
    UNDERGROUND = "Underground"
    MULTILEVEL = "Multilevel"
    INDOOR = "Indoor"
    OUTDOOR = "Outdoor"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParkingStatus(str, Enum):
    PARKED = "parked"
    UNPARKED = "unparked"


RELEASE_REASONS = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)
