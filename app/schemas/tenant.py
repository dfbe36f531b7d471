"""Tenant schemas."""

from datetime import datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.config import get_settings

settings = get_settings()


class TenantBase(BaseModel):
    """Base tenant schema."""

    name: str
    timezone: str = settings.default_timezone
    business_hours_start: time = time(9, 0)
    business_hours_end: time = time(17, 0)
    active_weekdays: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    appointment_duration_minutes: int = Field(default=30, gt=0, le=24 * 60)
    booking_system: str | None = None
    shadow_backends: list[str] | None = None
    mirror_shadow_events: bool = False
    deposit_required: bool = False
    deposit_amount: Decimal | None = None
    settings: dict | None = None


class TenantCreate(TenantBase):
    """Schema for creating a tenant."""


class TenantUpdate(BaseModel):
    """Schema for updating a tenant."""

    name: str | None = None
    timezone: str | None = None
    business_hours_start: time | None = None
    business_hours_end: time | None = None
    active_weekdays: list[int] | None = None
    appointment_duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    booking_system: str | None = None
    shadow_backends: list[str] | None = None
    mirror_shadow_events: bool | None = None
    deposit_required: bool | None = None
    deposit_amount: Decimal | None = None
    settings: dict | None = None


class TenantRead(TenantBase):
    """Schema for reading a tenant."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime


class CredentialUpsert(BaseModel):
    """Schema for connecting (or reconnecting) a backend."""

    secret_bundle: dict
    calendar_id: str | None = None
    is_active: bool = True


class CredentialRead(BaseModel):
    """Credential as exposed over the API. Secrets are never returned."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: str
    calendar_id: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
