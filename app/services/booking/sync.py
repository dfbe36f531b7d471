"""
Reconciliation sync.

Pulls appointments from every backend with read access (the system of
record plus shadows that import appointments) and reconciles them into
the local store by (tenant, backend external id):

- found and owned by that backend (imported from it, or booked through it
  as system of record): update drifted fields only
- found but only mirrored there: left untouched, drift recorded as a conflict
- not found: inserted with source ``<kind>_sync``

Writes happen only when something changed, so a second run over
unchanged remote data performs no writes. Failures are isolated per
backend and per appointment.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SlotConflict
from app.models.appointment import (
    EXTERNAL_ID_COLUMNS,
    Appointment,
    AppointmentStatus,
    DepositStatus,
    sync_source,
)
from app.models.credential import BackendKind
from app.schemas.booking import SyncResult
from app.services.backends.base import CalendarBackend, RemoteAppointment
from app.services.backends.factory import get_backend
from app.services.booking.availability import BackendFactory
from app.services.booking.config_resolver import BookingConfig, TenantConfigResolver
from app.services.booking.store import AppointmentStore

logger = logging.getLogger(__name__)

# Fields a backend is allowed to correct on appointments it owns
SYNCED_FIELDS = (
    "appointment_date",
    "appointment_time",
    "duration_minutes",
    "purpose",
    "status",
    "customer_name",
    "customer_phone",
    "customer_email",
)

# Drift on these is reported for locally originated appointments
CONFLICT_FIELDS = {"appointment_date", "appointment_time", "duration_minutes"}


def _remote_values(remote: RemoteAppointment) -> dict[str, Any]:
    return {
        "appointment_date": remote.appointment_date,
        "appointment_time": remote.appointment_time,
        "duration_minutes": remote.duration_minutes,
        "purpose": remote.purpose,
        "status": remote.status.value,
        "customer_name": remote.customer_name,
        "customer_phone": remote.customer_phone,
        "customer_email": remote.customer_email,
    }


def _changes(appointment: Appointment, remote: RemoteAppointment) -> dict[str, Any]:
    values = _remote_values(remote)
    return {
        field: values[field]
        for field in SYNCED_FIELDS
        if getattr(appointment, field) != values[field]
    }


def _owned_by(appointment: Appointment, kind: BackendKind, config: BookingConfig) -> bool:
    """Whether the copy held by *kind* is authoritative for *appointment*.

    True for rows imported from that backend and for rows whose external id
    came from our own write to the tenant's system of record. Rows that were
    only mirrored to a shadow stay owned by the local store.
    """
    if appointment.source == sync_source(kind):
        return True
    return kind == config.system_of_record and appointment.external_id(kind) is not None


class ReconciliationSync:
    """Idempotent pull of remote appointments into the local store."""

    def __init__(self, db: AsyncSession, backend_factory: BackendFactory = get_backend):
        self.db = db
        self.resolver = TenantConfigResolver(db)
        self.store = AppointmentStore(db)
        self.backend_factory = backend_factory

    async def sync_appointments(self, tenant_id: UUID, start_date: date, end_date: date) -> SyncResult:
        config = await self.resolver.get_booking_config(tenant_id)
        result = SyncResult()

        # Built up front: a rollback below expires the credential rows
        for kind, backend in self._readable_backends(config, result):
            try:
                remote_appointments = await backend.list_appointments(start_date, end_date)
            except Exception as e:
                logger.error("Tenant %s: %s sync fetch failed: %s", tenant_id, kind.value, e)
                result.errors.append({"backend": kind.value, "error": str(e) or type(e).__name__})
                continue

            logger.info(
                "Tenant %s: %d %s appointments between %s and %s",
                tenant_id,
                len(remote_appointments),
                kind.value,
                start_date,
                end_date,
            )
            for remote in remote_appointments:
                await self._reconcile(config, kind, remote, result)

        logger.info(
            "Tenant %s: sync complete: %d created, %d updated, %d unchanged, %d errors",
            tenant_id,
            result.created,
            result.updated,
            result.unchanged,
            len(result.errors),
        )
        return result

    def _readable_backends(
        self,
        config: BookingConfig,
        result: SyncResult,
    ) -> list[tuple[BackendKind, CalendarBackend]]:
        kinds = [config.system_of_record] if config.system_of_record is not None else []
        backends = []
        for kind in (*kinds, *config.shadow_kinds):
            try:
                backend = self.backend_factory(kind, config.credentials[kind], config.timezone)
            except Exception as e:
                logger.error("Tenant %s: cannot build %s backend: %s", config.tenant_id, kind.value, e)
                result.errors.append({"backend": kind.value, "error": str(e) or type(e).__name__})
                continue
            if kind == config.system_of_record or backend.imports_appointments:
                backends.append((kind, backend))
        return backends

    async def _reconcile(
        self,
        config: BookingConfig,
        kind: BackendKind,
        remote: RemoteAppointment,
        result: SyncResult,
    ) -> None:
        try:
            existing = await self.store.find_by_external_id(config.tenant_id, kind, remote.external_id)

            if existing is None:
                fields = {
                    "tenant_id": config.tenant_id,
                    **_remote_values(remote),
                    "notes": remote.notes,
                    "source": sync_source(kind),
                    "deposit_status": DepositStatus.NOT_REQUIRED.value,
                    "last_synced_at": datetime.now(timezone.utc),
                }
                fields[EXTERNAL_ID_COLUMNS[kind]] = remote.external_id
                await self.store.insert(**fields)
                result.created += 1
                return

            changes = _changes(existing, remote)
            if not changes:
                result.unchanged += 1
                return

            if not _owned_by(existing, kind, config):
                # Booked here and only mirrored to this backend: never overwritten
                drift = sorted(set(changes) & CONFLICT_FIELDS)
                if remote.status == AppointmentStatus.CANCELLED and "status" in changes:
                    drift.append("status")
                if not drift:
                    result.unchanged += 1
                    return
                logger.warning(
                    "Tenant %s: %s %s differs from local appointment %s (%s), not overwriting",
                    config.tenant_id,
                    kind.value,
                    remote.external_id,
                    existing.id,
                    ", ".join(drift),
                )
                result.errors.append(
                    {
                        "backend": kind.value,
                        "external_id": remote.external_id,
                        "appointment_id": str(existing.id),
                        "conflict": True,
                        "fields": drift,
                    }
                )
                return

            for field, value in changes.items():
                setattr(existing, field, value)
            existing.last_synced_at = datetime.now(timezone.utc)
            await self.store.save(existing)
            result.updated += 1
        except SlotConflict as e:
            result.errors.append(
                {"backend": kind.value, "external_id": remote.external_id, "error": e.message}
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Tenant %s: failed to sync %s %s: %s",
                config.tenant_id,
                kind.value,
                remote.external_id,
                e,
            )
            result.errors.append(
                {"backend": kind.value, "external_id": remote.external_id, "error": str(e)}
            )
