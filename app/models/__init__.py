# Parking Slot Engine — Database Models
# Import all models here for SQLAlchemy discovery

from app.models.parking_space import ParkingSpace, SlotPool   # noqa
from app.models.booking import Booking                         # noqa
