# app/services/notification_service.py
"""
Push notification dispatcher (Expo push API).

Fire-and-forget: notify() never raises. A failed push is logged and reported
as False so reservation/release paths are never blocked by it.

Endpoint: POST {settings.PUSH_ENDPOINT}
"""

from typing import Optional
import httpx
from app.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

NOTIFICATION_TYPES = {
    "CONFIRMED": ("Booking Confirmed",
                  "Your booking at {location} has been confirmed! We'll notify you before it starts."),
    "UPCOMING": ("Upcoming Booking",
                 "Your booking at {location} starts in less than {minutes} minutes!"),
    "COMPLETED": ("Booking Completed",
                  "Your booking at {location} has ended. Thank you for using our service!"),
    "CANCELLED": ("Booking Cancelled",
                  "Your booking at {location} has been cancelled."),
}


def build_message(kind: str, location: str) -> tuple[str, str]:
    """(title, body) for a notification kind. Unknown kinds raise ValueError."""
    try:
        title, template = NOTIFICATION_TYPES[kind]
    except KeyError:
        raise ValueError(f"Invalid notification type: {kind}")
    return title, template.format(location=location or "your parking space",
                                  minutes=settings.UPCOMING_REMINDER_MINUTES)


async def notify(push_token: Optional[str], title: str, body: str, data: Optional[dict] = None) -> bool:
    if not settings.NOTIFICATIONS_ENABLED or not push_token:
        return False

    message = {
        "to": push_token,
        "sound": "default",
        "title": title,
        "body": body,
        "data": data or {},
        "priority": "high",
        "channelId": "booking-alerts",
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                settings.PUSH_ENDPOINT,
                json=message,
                headers={"Accept": "application/json"},
            )
        if response.status_code != 200:
            logger.warning(f"[PUSH] '{title}' rejected with HTTP {response.status_code}")
            return False
        payload = response.json()
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            logger.warning(f"[PUSH] '{title}' returned errors: {errors}")
            return False
        logger.info(f"[PUSH] Sent '{title}'")
        return True
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"[PUSH] Failed to send '{title}': {e}")
        return False


async def notify_booking(kind: str, push_token: Optional[str], location: str, booking_id: str) -> bool:
    """Send one of the NOTIFICATION_TYPES messages about a booking."""
    if not push_token:
        return False
    title, body = build_message(kind, location)
    return await notify(push_token, title, body, {"bookingId": booking_id, "type": kind.lower()})
