# tests/test_booking_service.py
"""Unit tests for booking lifecycle rules."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from app.exceptions import InvalidTransition, NotFound, ValidationError
from app.models.enums import BookingStatus, ParkingStatus
from app.services import booking_service


def make_booking(status="confirmed", parking_status="parked"):
    booking = MagicMock()
    booking.booking_id = "BOOKABCDEF1234"
    booking.status = status
    booking.parking_status = parking_status
    return booking


class TestBookingId:
    def test_format(self):
        booking_id = booking_service.generate_booking_id()
        assert booking_id.startswith("BOOK")
        assert len(booking_id) == 14
        assert booking_id[4:] == booking_id[4:].upper()

    def test_unique(self):
        assert len({booking_service.generate_booking_id() for _ in range(200)}) == 200


class TestParseReason:
    @pytest.mark.parametrize("raw,expected", [
        ("completed", BookingStatus.COMPLETED),
        (BookingStatus.CANCELLED, BookingStatus.CANCELLED),
    ])
    def test_accepted(self, raw, expected):
        assert booking_service.parse_reason(raw) is expected

    @pytest.mark.parametrize("raw", ["confirmed", "expired", None])
    def test_rejected(self, raw):
        with pytest.raises(ValidationError):
            booking_service.parse_reason(raw)


class TestTransitions:
    def test_confirmed_can_complete_or_cancel(self):
        booking_service.ensure_transition(make_booking(), BookingStatus.COMPLETED)
        booking_service.ensure_transition(make_booking(), BookingStatus.CANCELLED)

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_states_are_final(self, terminal):
        for target in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
            with pytest.raises(InvalidTransition):
                booking_service.ensure_transition(make_booking(terminal), target)

    def test_checkout_requires_parked(self):
        with pytest.raises(InvalidTransition):
            booking_service.ensure_can_checkout(make_booking(parking_status=ParkingStatus.UNPARKED.value))

    def test_checkout_requires_confirmed(self):
        with pytest.raises(InvalidTransition):
            booking_service.ensure_can_checkout(make_booking(status="cancelled"))


class TestQueries:
    def test_get_booking_scoped_to_user(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.filter.return_value.first.return_value = None
        with pytest.raises(NotFound) as exc:
            booking_service.get_booking(db, "BOOK1", user_id="someone-else")
        assert exc.value.status_code == 404
