"""
Availability aggregation.

Pipeline for one tenant and date:
1. Candidate grid from business hours (``start <= t``, ``t + duration <= end``)
2. Minus slots overlapping non-cancelled local appointments
3. Intersected with the system of record's free slots (dual mode)
4. Minus slots overlapping any shadow backend's busy intervals
5. Sorted, with provenance

Remote reads fan out concurrently. A system-of-record failure degrades to
local-only; a shadow failure blocks nothing. Neither is ever raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime, time, timedelta
from typing import TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.credential import BackendKind
from app.schemas.booking import Slot
from app.services.backends.base import BusyInterval, CalendarBackend
from app.services.backends.factory import get_backend
from app.services.booking.config_resolver import BookingConfig, TenantConfigResolver
from app.services.booking.store import AppointmentStore

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

BackendFactory = Callable[..., CalendarBackend]


def generate_grid(config: BookingConfig, day: date) -> list[time]:
    """Every slot start on *day* that fits entirely within business hours."""
    if day.weekday() not in config.active_weekdays:
        return []

    step = timedelta(minutes=config.slot_duration_minutes)
    cursor = datetime.combine(day, config.business_hours_start)
    close = datetime.combine(day, config.business_hours_end)

    grid = []
    while cursor + step <= close:
        grid.append(cursor.time())
        cursor += step
    return grid


def _blocked(day: date, start: time, duration: timedelta, intervals: list[BusyInterval]) -> bool:
    slot_start = datetime.combine(day, start)
    return any(interval.overlaps(slot_start, slot_start + duration) for interval in intervals)


def format_display_date(day: date) -> str:
    """``Monday, June 2``"""
    return f"{day.strftime('%A, %B')} {day.day}"


def format_display_time(value: time) -> str:
    """``9:00 AM``"""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


class AvailabilityAggregator:
    """Computes bookable slots for a tenant."""

    def __init__(self, db: AsyncSession, backend_factory: BackendFactory = get_backend):
        self.db = db
        self.resolver = TenantConfigResolver(db)
        self.store = AppointmentStore(db)
        self.backend_factory = backend_factory

    async def get_available_slots(self, tenant_id: UUID, day: date) -> list[Slot]:
        config = await self.resolver.get_booking_config(tenant_id)
        return await self.slots_for_config(config, day)

    async def is_slot_available(self, tenant_id: UUID, day: date, at: time) -> bool:
        slots = await self.get_available_slots(tenant_id, day)
        return any(slot.time == at for slot in slots)

    async def slots_for_config(self, config: BookingConfig, day: date) -> list[Slot]:
        grid = generate_grid(config, day)
        if not grid:
            return []

        duration = timedelta(minutes=config.slot_duration_minutes)
        available = self._subtract_local(
            grid,
            day,
            duration,
            await self.store.list_active_on(config.tenant_id, day),
        )

        # Fan out to the system of record and every shadow at once
        sor_task = self._fetch_remote_slots(config, day)
        shadow_tasks = [self._fetch_busy(config, kind, day) for kind in config.shadow_kinds]
        remote_slots, *shadow_busy = await asyncio.gather(sor_task, *shadow_tasks)

        source = "local"
        if remote_slots is not None:
            available = [t for t in available if t in remote_slots]
            source = config.system_of_record.value

        busy = [interval for intervals in shadow_busy for interval in intervals]
        available = [t for t in available if not _blocked(day, t, duration, busy)]

        return [
            Slot(
                date=day,
                time=t,
                display_date=format_display_date(day),
                display_time=format_display_time(t),
                source=source,
            )
            for t in sorted(set(available))
        ]

    @staticmethod
    def _subtract_local(grid: list[time], day: date, duration: timedelta, appointments) -> list[time]:
        occupied = []
        for appt in appointments:
            start = datetime.combine(appt.appointment_date, appt.appointment_time)
            length = timedelta(minutes=appt.duration_minutes) if appt.duration_minutes else duration
            occupied.append(BusyInterval(start, start + length))
        return [t for t in grid if not _blocked(day, t, duration, occupied)]

    async def _fetch_remote_slots(self, config: BookingConfig, day: date) -> set[time] | None:
        """System-of-record free slots, or None to fall back to local-only."""
        kind = config.system_of_record
        if kind is None:
            return None
        try:
            backend = self.backend_factory(kind, config.credentials[kind], config.timezone)
            return set(await self._bounded(backend.list_available_slots(day)))
        except Exception as e:
            logger.warning(
                "Tenant %s: %s availability failed, using local-only: %s",
                config.tenant_id,
                kind.value,
                str(e) or type(e).__name__,
            )
            return None

    async def _fetch_busy(self, config: BookingConfig, kind: BackendKind, day: date) -> list[BusyInterval]:
        """Shadow busy intervals; any failure counts as nothing blocked."""
        try:
            backend = self.backend_factory(kind, config.credentials[kind], config.timezone)
            return list(await self._bounded(backend.list_busy_intervals(day)))
        except Exception as e:
            logger.warning(
                "Tenant %s: %s busy lookup failed, ignoring: %s",
                config.tenant_id,
                kind.value,
                str(e) or type(e).__name__,
            )
            return []

    @staticmethod
    async def _bounded(call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=settings.backend_timeout_seconds)
