# tests/conftest.py
"""Shared fixtures — a throwaway SQLite file DB per test and space/booking builders."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before app.config is imported anywhere
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("RECONCILER_ENABLED", "false")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "true")
os.environ.setdefault("TIMEZONE", "Asia/Kolkata")
os.environ["API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""

import pytest
from sqlalchemy.orm import sessionmaker
from app.database import build_engine, create_tables
from app.schemas.parking_space import ParkingSpaceCreate
from app.services import parking_space_service
from app.utils.time_window import TimeWindow

BOOKING_DAY = "2030-01-15"


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_tables(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def space_payload(space_id="PS-TEST-1", car_slots=5, latitude=12.9716, longitude=77.5946, **extra):
    data = {
        "space_id": space_id,
        "name": "Test Parking",
        "address": "12 Residency Road",
        "space_type": "Covered",
        "latitude": latitude,
        "longitude": longitude,
        "facilities": ["CCTV"],
        "vehicle_slots": [
            {"vehicle_type": "Car", "total_slots": car_slots, "price_per_hour": 50,
             "dimensions": {"length": 5, "width": 2.5, "height": 2}},
            {"vehicle_type": "Motorcycle", "total_slots": 10, "price_per_hour": 20},
        ],
    }
    data.update(extra)
    return data


def window(start="10:00", end="12:00", day=BOOKING_DAY):
    return TimeWindow.from_booking(day, start, end)


@pytest.fixture
def make_space(db):
    def _make(**kwargs):
        return parking_space_service.create_space(db, ParkingSpaceCreate(**space_payload(**kwargs)))
    return _make
