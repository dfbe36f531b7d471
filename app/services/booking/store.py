"""
Local appointment store.

The local table is the authoritative record of every appointment. Slot
exclusivity is enforced by the partial unique index over
(tenant_id, appointment_date, appointment_time) for non-cancelled rows;
an insert that violates it surfaces as ``SlotConflict``. There is no
in-process lock, so the guarantee holds across processes.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.errors import BookingError, NotFound, SlotConflict
from app.models.appointment import (
    ACTIVE_SLOT_INDEX,
    EXTERNAL_ID_COLUMNS,
    Appointment,
    AppointmentStatus,
    DepositStatus,
)
from app.models.credential import BackendKind
from app.services.booking.confirmation import generate_confirmation_code

logger = logging.getLogger(__name__)
settings = get_settings()


def _is_confirmation_code_collision(exc: IntegrityError) -> bool:
    return "confirmation_code" in str(exc.orig)


def _is_slot_collision(exc: IntegrityError) -> bool:
    # Postgres names the index; SQLite lists the indexed columns
    message = str(exc.orig)
    return ACTIVE_SLOT_INDEX in message or "appointment_time" in message


class AppointmentStore:
    """Persistence operations on the ``appointments`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, **fields: Any) -> Appointment:
        """Insert a new appointment with a fresh confirmation code.

        The code is regenerated on a uniqueness collision. Raises
        ``SlotConflict`` when the (tenant, date, time) slot is taken.
        """
        max_attempts = settings.confirmation_code_max_attempts
        for attempt in range(1, max_attempts + 1):
            appointment = Appointment(confirmation_code=generate_confirmation_code(), **fields)
            self.db.add(appointment)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if _is_confirmation_code_collision(e):
                    logger.warning("Confirmation code collision (attempt %d/%d)", attempt, max_attempts)
                    continue
                if _is_slot_collision(e):
                    raise SlotConflict(
                        f"{fields.get('appointment_date')} {fields.get('appointment_time')} is already booked"
                    ) from e
                raise
            await self.db.refresh(appointment)
            return appointment

        raise BookingError(f"Could not allocate a unique confirmation code after {max_attempts} attempts")

    async def save(self, appointment: Appointment) -> Appointment:
        """Commit pending changes on *appointment*."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if _is_slot_collision(e):
                raise SlotConflict(
                    f"{appointment.appointment_date} {appointment.appointment_time} is already booked"
                ) from e
            raise
        await self.db.refresh(appointment)
        return appointment

    async def get(self, tenant_id: UUID, appointment_id: UUID) -> Appointment:
        result = await self.db.execute(
            select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.tenant_id == tenant_id,
            )
        )
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    async def get_by_confirmation_code(self, tenant_id: UUID, code: str) -> Appointment:
        result = await self.db.execute(
            select(Appointment).where(
                Appointment.tenant_id == tenant_id,
                Appointment.confirmation_code == code.strip().upper(),
            )
        )
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFound(f"No appointment with confirmation code {code}")
        return appointment

    async def find_by_external_id(
        self,
        tenant_id: UUID,
        kind: BackendKind,
        external_id: str,
    ) -> Appointment | None:
        column = getattr(Appointment, EXTERNAL_ID_COLUMNS[BackendKind(kind)])
        result = await self.db.execute(
            select(Appointment)
            .where(Appointment.tenant_id == tenant_id, column == external_id)
            .order_by(Appointment.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active_on(self, tenant_id: UUID, day: date) -> list[Appointment]:
        """Non-cancelled appointments occupying *day*."""
        return await self.list_range(tenant_id, day, day)

    async def list_range(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        include_cancelled: bool = False,
    ) -> list[Appointment]:
        stmt = select(Appointment).where(
            Appointment.tenant_id == tenant_id,
            Appointment.appointment_date >= start_date,
            Appointment.appointment_date <= end_date,
        )
        if not include_cancelled:
            stmt = stmt.where(Appointment.status != AppointmentStatus.CANCELLED.value)
        result = await self.db.execute(
            stmt.order_by(Appointment.appointment_date, Appointment.appointment_time)
        )
        return list(result.scalars().all())

    async def list_pending_deposits(self, tenant_id: UUID) -> list[Appointment]:
        result = await self.db.execute(
            select(Appointment)
            .where(
                Appointment.tenant_id == tenant_id,
                Appointment.deposit_status == DepositStatus.PENDING.value,
                Appointment.status != AppointmentStatus.CANCELLED.value,
            )
            .order_by(Appointment.appointment_date, Appointment.appointment_time)
        )
        return list(result.scalars().all())

    async def last_synced_at(self, tenant_id: UUID) -> datetime | None:
        result = await self.db.execute(
            select(func.max(Appointment.last_synced_at)).where(Appointment.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()
