# app/exceptions.py
"""
Domain error taxonomy for the slot/reservation engine.
Services raise these; app.main renders them as JSON with the matching status.
"""

from typing import Optional


class ParkingError(Exception):
    status_code = 400
    code = "parking_error"
    is_defect = False   # True → logged at error level and reported as a server fault

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(ParkingError):
    status_code = 422
    code = "validation_error"

    def __init__(self, errors: list[dict], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors   # [{"field": ..., "message": ...}]

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "errors": self.errors}


class NotFound(ParkingError):
    status_code = 404
    code = "not_found"


class DuplicateId(ParkingError):
    status_code = 409
    code = "duplicate_id"


class CapacityExhausted(ParkingError):
    status_code = 409
    code = "capacity_exhausted"


class VehicleTypeNotOffered(ParkingError):
    status_code = 422
    code = "vehicle_type_not_offered"


class InvalidTransition(ParkingError):
    status_code = 409
    code = "invalid_transition"


class OverRelease(ParkingError):
    """A release found its pool already full — a reconciliation bug, never a user error."""
    status_code = 500
    code = "over_release"
    is_defect = True

    def to_dict(self) -> dict:
        return {"detail": "Internal server error", "code": self.code}


class UpstreamPaymentError(ParkingError):
    status_code = 502
    code = "upstream_payment_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None, **context):
        super().__init__(message, **context)
        self.upstream_status = upstream_status


class PaymentNotCompleted(ParkingError):
    status_code = 402
    code = "payment_not_completed"
