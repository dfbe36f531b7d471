"""Appointment model: the local calendar of record."""

from datetime import date, datetime, time
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.credential import BackendKind

if TYPE_CHECKING:
    from app.models.tenant import Tenant


class AppointmentStatus(str, Enum):
    """Canonical appointment status."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class DepositStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PAID = "paid"


class AppointmentSource(str, Enum):
    """Where an appointment originated. Synced rows use ``<kind>_sync``."""

    LOCAL = "local"
    VOICE = "voice"
    ONLINE = "online"
    MANUAL = "manual"


# Dedup key column for each backend kind
EXTERNAL_ID_COLUMNS: dict[BackendKind, str] = {
    BackendKind.GHL: "ghl_appointment_id",
    BackendKind.HUBSPOT: "hubspot_meeting_id",
    BackendKind.VAGARO: "vagaro_appointment_id",
    BackendKind.GOOGLE: "google_event_id",
    BackendKind.ZOHO: "zoho_event_id",
}

ACTIVE_SLOT_INDEX = "uq_appointments_active_slot"
_NOT_CANCELLED = text("status <> 'cancelled'")


def sync_source(kind: BackendKind) -> str:
    """Source tag for an appointment imported from *kind*."""
    return f"{BackendKind(kind).value}_sync"


class Appointment(Base):
    """A booked appointment. Cancelled rows are kept, never deleted."""

    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Customer
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # When (tenant wall-clock)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)

    purpose: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.SCHEDULED.value,
        nullable=False,
    )
    source: Mapped[str] = mapped_column(String(30), default=AppointmentSource.LOCAL.value)
    confirmation_code: Mapped[str] = mapped_column(String(16), nullable=False)

    # External ids, one per backend kind
    ghl_appointment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hubspot_meeting_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vagaro_appointment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    google_event_id: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    zoho_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    deposit_status: Mapped[str] = mapped_column(
        String(20),
        default=DepositStatus.NOT_REQUIRED.value,
    )

    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="appointments")

    __table_args__ = (
        UniqueConstraint("confirmation_code", name="uq_appointments_confirmation_code"),
        Index(
            ACTIVE_SLOT_INDEX,
            "tenant_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
        Index("ix_appointments_tenant_date", "tenant_id", "appointment_date"),
        Index("ix_appointments_ghl_id", "tenant_id", "ghl_appointment_id"),
        Index("ix_appointments_hubspot_id", "tenant_id", "hubspot_meeting_id"),
        Index("ix_appointments_vagaro_id", "tenant_id", "vagaro_appointment_id"),
        Index("ix_appointments_google_id", "tenant_id", "google_event_id"),
        Index("ix_appointments_zoho_id", "tenant_id", "zoho_event_id"),
    )

    def external_id(self, kind: BackendKind) -> str | None:
        return getattr(self, EXTERNAL_ID_COLUMNS[BackendKind(kind)])

    def set_external_id(self, kind: BackendKind, value: str | None) -> None:
        setattr(self, EXTERNAL_ID_COLUMNS[BackendKind(kind)], value)
