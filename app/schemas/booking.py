"""Pydantic schemas for availability, booking, sync and the dashboard."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.appointment import AppointmentSource, DepositStatus


# ── Availability ──


class Slot(BaseModel):
    """A bookable start time. Computed on demand, never persisted."""

    date: date
    time: time
    display_date: str
    display_time: str
    source: str = "local"
    available: bool = True


class SlotCheck(BaseModel):
    date: date
    time: time
    available: bool


# ── Booking ──


class BookingRequest(BaseModel):
    """Request from a booking front-end (voice, chat, dashboard)."""

    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=1, max_length=50)
    customer_email: EmailStr | None = None
    appointment_date: date
    appointment_time: time
    duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    purpose: str | None = Field(default=None, max_length=500)
    notes: str | None = None
    # Sync provenance (`<kind>_sync`) is assigned by reconciliation only
    source: AppointmentSource = AppointmentSource.LOCAL

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def _collapse_whitespace(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("customer_email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BookingResult(BaseModel):
    """Outcome of a booking attempt: a confirmation code or an actionable error."""

    success: bool
    appointment_id: UUID | None = None
    confirmation_code: str | None = None
    system: str | None = None  # "local" or the remote backend kind holding the write
    error: str | None = None
    message: str


class CancelResult(BaseModel):
    success: bool
    appointment_id: UUID
    status: str
    remote_cancelled: list[str] = Field(default_factory=list)
    remote_errors: list[dict] = Field(default_factory=list)
    message: str


class DepositUpdate(BaseModel):
    deposit_status: DepositStatus


# ── Appointments ──


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    customer_name: str
    customer_phone: str
    customer_email: str | None = None
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    purpose: str | None = None
    notes: str | None = None
    status: str
    source: str
    confirmation_code: str
    ghl_appointment_id: str | None = None
    hubspot_meeting_id: str | None = None
    vagaro_appointment_id: str | None = None
    google_event_id: str | None = None
    zoho_event_id: str | None = None
    deposit_status: str
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Sync ──


class SyncRequest(BaseModel):
    start_date: date
    end_date: date

    @field_validator("end_date")
    @classmethod
    def _end_after_start(cls, value: date, info) -> date:
        start = info.data.get("start_date")
        if start and value < start:
            raise ValueError("end_date must not be before start_date")
        return value


class SyncResult(BaseModel):
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: list[dict] = Field(default_factory=list)


# ── Dashboard ──


class SourceBadge(BaseModel):
    label: str
    color: str
    bg_color: str


class DashboardAppointment(AppointmentRead):
    source_badge: SourceBadge


class DashboardResponse(BaseModel):
    appointments: list[DashboardAppointment]
    count: int
    start_date: date
    end_date: date
    last_sync: datetime | None = None
    sync_result: SyncResult | None = None


# ── Configuration ──


class BookingConfigRead(BaseModel):
    """Resolved booking configuration with credentials reduced to their kinds."""

    tenant_id: UUID
    tenant_name: str
    timezone: str
    business_hours_start: time
    business_hours_end: time
    active_weekdays: list[int]
    slot_duration_minutes: int
    system_of_record: str | None = None
    shadow_backends: list[str] = Field(default_factory=list)
    connected_backends: list[str] = Field(default_factory=list)
    deposit_required: bool = False
    deposit_amount: Decimal | None = None
    mirror_shadow_events: bool = False
