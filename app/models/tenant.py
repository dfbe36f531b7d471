"""Tenant model."""

from datetime import datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Numeric, String, Time, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.appointment import Appointment
    from app.models.credential import BackendCredential

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _default_weekdays() -> list[int]:
    return [0, 1, 2, 3, 4]


class Tenant(Base):
    """A business account owning its hours, backends and appointments."""

    __tablename__ = "tenants"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="America/New_York")

    # Business hours (tenant wall-clock)
    business_hours_start: Mapped[time] = mapped_column(Time, default=time(9, 0))
    business_hours_end: Mapped[time] = mapped_column(Time, default=time(17, 0))
    active_weekdays: Mapped[list[int]] = mapped_column(JSONType, default=_default_weekdays)  # Monday=0
    appointment_duration_minutes: Mapped[int] = mapped_column(default=30)

    # Backend selection: NULL infers from credentials, "none" forces local-only
    booking_system: Mapped[str | None] = mapped_column(String(20), nullable=True)
    shadow_backends: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    mirror_shadow_events: Mapped[bool] = mapped_column(Boolean, default=False)

    # Deposit policy
    deposit_required: Mapped[bool] = mapped_column(Boolean, default=False)
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    settings: Mapped[dict | None] = mapped_column(JSONType, default=dict)

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
    credentials: Mapped[list["BackendCredential"]] = relationship(
        "BackendCredential",
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment",
        back_populates="tenant",
        # Appointments are never deleted; the database refuses to orphan them
        passive_deletes="all",
    )
