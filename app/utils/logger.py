# app/utils/logger.py
"""
Centralised logging configuration for the entire application.
Logs to console and to a rotating file in LOG_DIR.

Slot and booking code logs through `with_context()` so every line about a
counter carries the space id, vehicle type and booking id it concerns.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from app.config import settings

LOG_LEVEL = settings.LOG_LEVEL.upper()
LOG_DIR = settings.LOG_DIR or os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs"
)

_configured = False


def _configure_root_logger():
    global _configured
    if _configured:
        return
    _configured = True

    fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)

    console = logging.StreamHandler()
    console.setLevel(LOG_LEVEL)
    console.setFormatter(fmt)
    root.addHandler(console)

    if settings.LOG_TO_FILE:
        os.makedirs(LOG_DIR, exist_ok=True)
        # Keeps last 10 × 5MB log files
        file_handler = RotatingFileHandler(
            filename=os.path.join(LOG_DIR, "parking.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)


class ContextAdapter(logging.LoggerAdapter):
    """Prefixes each message with `[key=value ...]` for the bound context."""

    def process(self, msg, kwargs):
        tags = " ".join(f"{k}={v}" for k, v in self.extra.items() if v is not None)
        return (f"[{tags}] {msg}" if tags else msg), kwargs


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    _configure_root_logger()
    return logging.getLogger(name)


def with_context(logger: logging.Logger, space_id=None, vehicle_type=None, booking_id=None) -> ContextAdapter:
    """Bind slot/booking identifiers to a logger."""
    return ContextAdapter(logger, {
        "space": space_id,
        "vehicle": getattr(vehicle_type, "value", vehicle_type),
        "booking": booking_id,
    })
