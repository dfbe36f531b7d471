"""
Booking orchestrator.

Booking protocol:
1. Resolve the tenant's BookingConfig (NotFound propagates)
2. Normalise customer fields
3. Remote system of record: find-or-create customer, create appointment.
   Any failure is logged and booking continues locally.
4. Local insert, gated by the active-slot unique index (SlotConflict)
5. Optional mirror to shadow backends, failures logged only
6. Return the confirmation code and the system holding the write

Remote writes are never retried: most backends have no idempotency key.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.errors import SlotConflict, ValidationError
from app.models.appointment import EXTERNAL_ID_COLUMNS, Appointment, AppointmentStatus, DepositStatus
from app.schemas.booking import BookingRequest, BookingResult, CancelResult
from app.services.backends.base import AppointmentMetadata, CustomerInfo
from app.services.backends.factory import get_backend
from app.services.booking.availability import BackendFactory
from app.services.booking.config_resolver import BookingConfig, TenantConfigResolver
from app.services.booking.store import AppointmentStore

logger = logging.getLogger(__name__)
settings = get_settings()

SLOT_TAKEN_MESSAGE = "That time is no longer available. Please choose another time."
CHECK_DETAILS_MESSAGE = "Please check the details and try again."


def placeholder_email(phone: str) -> str:
    """Synthesised address for backends that key contacts by email."""
    digits = re.sub(r"\D", "", phone) or "unknown"
    return f"{digits}@{settings.placeholder_email_domain}"


class BookingOrchestrator:
    """Executes bookings, cancellations and deposit updates for a tenant."""

    def __init__(self, db: AsyncSession, backend_factory: BackendFactory = get_backend):
        self.db = db
        self.resolver = TenantConfigResolver(db)
        self.store = AppointmentStore(db)
        self.backend_factory = backend_factory

    async def book_appointment(
        self,
        tenant_id: UUID,
        request: BookingRequest | dict[str, Any],
    ) -> BookingResult:
        """Book an appointment. Never raises for infrastructure failures."""
        config = await self.resolver.get_booking_config(tenant_id)

        try:
            if not isinstance(request, BookingRequest):
                request = BookingRequest.model_validate(request)
        except PydanticValidationError as e:
            logger.info("Tenant %s: rejected booking request: %s", tenant_id, e)
            return BookingResult(success=False, error=ValidationError.code, message=CHECK_DETAILS_MESSAGE)

        duration = request.duration_minutes or config.slot_duration_minutes
        start = datetime.combine(request.appointment_date, request.appointment_time)
        end = start + timedelta(minutes=duration)
        customer = CustomerInfo(
            name=request.customer_name,
            phone=request.customer_phone,
            email=request.customer_email,
        )
        title = request.purpose or f"Appointment - {customer.name}"

        # Step 3: remote system of record (best effort)
        external_id = None
        if config.system_of_record is not None:
            external_id = await self._create_remote(config, customer, start, end, title, request.notes)

        # Step 4: local insert, the exclusivity gate
        fields: dict[str, Any] = {
            "tenant_id": tenant_id,
            "customer_name": customer.name,
            "customer_phone": customer.phone,
            "customer_email": customer.email,
            "appointment_date": request.appointment_date,
            "appointment_time": request.appointment_time,
            "duration_minutes": duration,
            "purpose": request.purpose,
            "notes": request.notes,
            "status": AppointmentStatus.SCHEDULED.value,
            "source": request.source.value,
            "deposit_status": (
                DepositStatus.PENDING.value if config.deposit_required else DepositStatus.NOT_REQUIRED.value
            ),
        }
        if external_id is not None:
            fields[EXTERNAL_ID_COLUMNS[config.system_of_record]] = external_id

        try:
            appointment = await self.store.insert(**fields)
        except SlotConflict:
            if external_id is not None:
                # Left for manual reconciliation, never rolled back remotely
                logger.warning(
                    "Tenant %s: slot %s taken locally; %s appointment %s is orphaned",
                    tenant_id,
                    start,
                    config.system_of_record.value,
                    external_id,
                )
            return BookingResult(success=False, error=SlotConflict.code, message=SLOT_TAKEN_MESSAGE)

        # Step 5: opt-in mirror to shadows
        if config.mirror_shadow_events and config.shadow_kinds:
            await self._mirror_to_shadows(config, appointment, customer, start, end, title)

        system = config.system_of_record.value if external_id is not None else "local"
        logger.info(
            "Tenant %s: booked %s %s (code %s, system %s)",
            tenant_id,
            appointment.appointment_date,
            appointment.appointment_time,
            appointment.confirmation_code,
            system,
        )
        return BookingResult(
            success=True,
            appointment_id=appointment.id,
            confirmation_code=appointment.confirmation_code,
            system=system,
            message=f"Your appointment is confirmed. Confirmation code: {appointment.confirmation_code}",
        )

    async def cancel_appointment(self, tenant_id: UUID, appointment_id: UUID) -> CancelResult:
        """Cancel locally (status transition) and, best effort, on every backend."""
        config = await self.resolver.get_booking_config(tenant_id)
        appointment = await self.store.get(tenant_id, appointment_id)

        if appointment.status == AppointmentStatus.CANCELLED.value:
            return CancelResult(
                success=True,
                appointment_id=appointment.id,
                status=appointment.status,
                message="Appointment was already cancelled.",
            )

        cancelled: list[str] = []
        errors: list[dict] = []
        for kind, credential in config.credentials.items():
            external_id = appointment.external_id(kind)
            if not external_id:
                continue
            try:
                backend = self.backend_factory(kind, credential, config.timezone)
                await backend.cancel_appointment(external_id)
                cancelled.append(kind.value)
            except Exception as e:
                logger.warning(
                    "Tenant %s: remote cancel on %s failed for %s: %s",
                    tenant_id,
                    kind.value,
                    external_id,
                    e,
                )
                errors.append({"backend": kind.value, "error": str(e) or type(e).__name__})

        appointment.status = AppointmentStatus.CANCELLED.value
        await self.store.save(appointment)
        logger.info("Tenant %s: cancelled appointment %s", tenant_id, appointment_id)

        return CancelResult(
            success=True,
            appointment_id=appointment.id,
            status=appointment.status,
            remote_cancelled=cancelled,
            remote_errors=errors,
            message="Appointment cancelled.",
        )

    async def get_by_confirmation_code(self, tenant_id: UUID, code: str) -> Appointment:
        return await self.store.get_by_confirmation_code(tenant_id, code)

    async def update_deposit_status(
        self,
        tenant_id: UUID,
        appointment_id: UUID,
        deposit_status: DepositStatus | str,
    ) -> Appointment:
        try:
            status = DepositStatus(deposit_status)
        except ValueError:
            raise ValidationError(f"Unknown deposit status {deposit_status!r}")

        appointment = await self.store.get(tenant_id, appointment_id)
        appointment.deposit_status = status.value
        return await self.store.save(appointment)

    async def list_pending_deposits(self, tenant_id: UUID) -> list[Appointment]:
        await self.resolver.get_booking_config(tenant_id)
        return await self.store.list_pending_deposits(tenant_id)

    # ------------------------------------------------------------------

    async def _create_remote(
        self,
        config: BookingConfig,
        customer: CustomerInfo,
        start: datetime,
        end: datetime,
        title: str,
        notes: str | None,
    ) -> str | None:
        """Create the appointment on the system of record; None on any failure."""
        kind = config.system_of_record
        try:
            backend = self.backend_factory(kind, config.credentials[kind], config.timezone)
            remote_customer = customer
            if backend.requires_customer_email and not customer.email:
                remote_customer = CustomerInfo(
                    name=customer.name,
                    phone=customer.phone,
                    email=placeholder_email(customer.phone),
                )
            customer_id = await backend.find_or_create_customer(remote_customer)
            return await backend.create_appointment(
                customer_id,
                start,
                end,
                AppointmentMetadata(title=title, customer=remote_customer, notes=notes),
            )
        except Exception as e:
            logger.warning(
                "Tenant %s: %s booking failed (%s), falling back to local-only: %s",
                config.tenant_id,
                kind.value,
                getattr(e, "code", type(e).__name__),
                e,
            )
            return None

    async def _mirror_to_shadows(
        self,
        config: BookingConfig,
        appointment: Appointment,
        customer: CustomerInfo,
        start: datetime,
        end: datetime,
        title: str,
    ) -> None:
        metadata = AppointmentMetadata(
            title=title,
            customer=customer,
            notes=appointment.notes,
            confirmation_code=appointment.confirmation_code,
        )
        mirrored = False
        for kind in config.shadow_kinds:
            try:
                backend = self.backend_factory(kind, config.credentials[kind], config.timezone)
                if not backend.supports_event_mirror:
                    continue
                customer_id = await backend.find_or_create_customer(customer)
                event_id = await backend.create_appointment(customer_id, start, end, metadata)
                appointment.set_external_id(kind, event_id)
                mirrored = True
            except Exception as e:
                logger.warning(
                    "Tenant %s: mirror to %s failed for %s: %s",
                    config.tenant_id,
                    kind.value,
                    appointment.confirmation_code,
                    e,
                )
        if mirrored:
            await self.store.save(appointment)

