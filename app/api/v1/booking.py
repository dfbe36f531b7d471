"""
Booking API endpoints.

Provides REST API for:
- Available slots and single-slot checks
- Booking, cancelling and looking up appointments
- Deposit tracking
- Reconciliation sync and the appointments dashboard

The tenant is taken from the ``X-Tenant-ID`` header. Booking errors are
mapped onto HTTP statuses by the application's exception handlers.
"""

import logging
from datetime import date, time
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from app.deps import DbSession, TenantConfig, TenantId
from app.schemas.booking import (
    AppointmentRead,
    BookingConfigRead,
    BookingRequest,
    BookingResult,
    CancelResult,
    DashboardResponse,
    DepositUpdate,
    Slot,
    SlotCheck,
    SyncRequest,
    SyncResult,
)
from app.services.booking import (
    AvailabilityAggregator,
    BookingOrchestrator,
    DashboardService,
    ReconciliationSync,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Booking outcomes that are reported in the body rather than raised
RESULT_STATUS = {
    "slot_conflict": status.HTTP_409_CONFLICT,
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


# ── Availability ──


@router.get("/slots", response_model=list[Slot])
async def get_available_slots(
    tenant_id: TenantId,
    db: DbSession,
    day: date = Query(..., alias="date"),
):
    """Bookable slots for one day, merged across the tenant's backends."""
    return await AvailabilityAggregator(db).get_available_slots(tenant_id, day)


@router.get("/slots/check", response_model=SlotCheck)
async def check_slot(
    tenant_id: TenantId,
    db: DbSession,
    day: date = Query(..., alias="date"),
    at: time = Query(..., alias="time"),
):
    available = await AvailabilityAggregator(db).is_slot_available(tenant_id, day, at)
    return SlotCheck(date=day, time=at, available=available)


# ── Appointments ──


@router.post("/appointments", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    request: BookingRequest,
    tenant_id: TenantId,
    db: DbSession,
    response: Response,
):
    """
    Book an appointment.

    Returns 201 with a confirmation code, 409 when the slot was taken in the
    meantime, 422 when the details are invalid.
    """
    result = await BookingOrchestrator(db).book_appointment(tenant_id, request)
    if not result.success:
        response.status_code = RESULT_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST)
    return result


@router.post("/appointments/{appointment_id}/cancel", response_model=CancelResult)
async def cancel_appointment(
    appointment_id: UUID,
    tenant_id: TenantId,
    db: DbSession,
):
    return await BookingOrchestrator(db).cancel_appointment(tenant_id, appointment_id)


@router.get("/appointments/by-code/{code}", response_model=AppointmentRead)
async def get_appointment_by_code(
    code: str,
    tenant_id: TenantId,
    db: DbSession,
):
    return await BookingOrchestrator(db).get_by_confirmation_code(tenant_id, code)


@router.patch("/appointments/{appointment_id}/deposit", response_model=AppointmentRead)
async def update_deposit(
    appointment_id: UUID,
    data: DepositUpdate,
    tenant_id: TenantId,
    db: DbSession,
):
    return await BookingOrchestrator(db).update_deposit_status(
        tenant_id, appointment_id, data.deposit_status
    )


@router.get("/deposits/pending", response_model=list[AppointmentRead])
async def list_pending_deposits(
    tenant_id: TenantId,
    db: DbSession,
):
    return await BookingOrchestrator(db).list_pending_deposits(tenant_id)


# ── Sync & dashboard ──


@router.post("/sync", response_model=SyncResult)
async def sync_appointments(
    request: SyncRequest,
    tenant_id: TenantId,
    db: DbSession,
):
    """Pull remote appointments for a date range into the local store."""
    return await ReconciliationSync(db).sync_appointments(
        tenant_id, request.start_date, request.end_date
    )


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    tenant_id: TenantId,
    db: DbSession,
    days: int | None = Query(default=None, ge=0, le=365),
    refresh: bool = False,
):
    return await DashboardService(db).get_dashboard_appointments(tenant_id, days=days, refresh=refresh)


@router.get("/config", response_model=BookingConfigRead)
async def get_booking_config(config: TenantConfig):
    """The tenant's resolved backends and hours. Credentials are never returned."""
    return BookingConfigRead(
        tenant_id=config.tenant_id,
        tenant_name=config.tenant_name,
        timezone=config.timezone,
        business_hours_start=config.business_hours_start,
        business_hours_end=config.business_hours_end,
        active_weekdays=sorted(config.active_weekdays),
        slot_duration_minutes=config.slot_duration_minutes,
        system_of_record=config.system_of_record.value if config.system_of_record else None,
        shadow_backends=[kind.value for kind in config.shadow_kinds],
        connected_backends=sorted(kind.value for kind in config.credentials),
        deposit_required=config.deposit_required,
        deposit_amount=config.deposit_amount,
        mirror_shadow_events=config.mirror_shadow_events,
    )
