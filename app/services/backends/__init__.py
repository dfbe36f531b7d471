"""Remote calendar backends."""

from app.services.backends.base import (
    AppointmentMetadata,
    BusyInterval,
    CalendarBackend,
    CustomerInfo,
    RemoteAppointment,
)
from app.services.backends.factory import get_backend

__all__ = [
    "AppointmentMetadata",
    "BusyInterval",
    "CalendarBackend",
    "CustomerInfo",
    "RemoteAppointment",
    "get_backend",
]
