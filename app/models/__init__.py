"""SQLAlchemy models package."""

from app.models.tenant import Tenant
from app.models.credential import BackendCredential, BackendKind
from app.models.appointment import (
    Appointment,
    AppointmentSource,
    AppointmentStatus,
    DepositStatus,
)

__all__ = [
    "Tenant",
    "BackendCredential",
    "BackendKind",
    "Appointment",
    "AppointmentSource",
    "AppointmentStatus",
    "DepositStatus",
]
