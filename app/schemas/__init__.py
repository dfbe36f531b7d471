"""Pydantic schemas for API request/response validation."""

from app.schemas.tenant import (
    CredentialRead,
    CredentialUpsert,
    TenantCreate,
    TenantRead,
    TenantUpdate,
)
from app.schemas.booking import (
    AppointmentRead,
    BookingConfigRead,
    BookingRequest,
    BookingResult,
    CancelResult,
    DashboardAppointment,
    DashboardResponse,
    DepositUpdate,
    Slot,
    SlotCheck,
    SourceBadge,
    SyncRequest,
    SyncResult,
)

__all__ = [
    "TenantCreate",
    "TenantRead",
    "TenantUpdate",
    "CredentialUpsert",
    "CredentialRead",
    "Slot",
    "SlotCheck",
    "BookingRequest",
    "BookingResult",
    "CancelResult",
    "DepositUpdate",
    "AppointmentRead",
    "SyncRequest",
    "SyncResult",
    "SourceBadge",
    "DashboardAppointment",
    "DashboardResponse",
    "BookingConfigRead",
]
