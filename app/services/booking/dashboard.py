"""Dashboard view of upcoming appointments with per-source badges."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.schemas.booking import DashboardAppointment, DashboardResponse, SourceBadge
from app.services.backends.factory import get_backend
from app.services.booking.availability import BackendFactory
from app.services.booking.config_resolver import TenantConfigResolver
from app.services.booking.store import AppointmentStore
from app.services.booking.sync import ReconciliationSync

logger = logging.getLogger(__name__)
settings = get_settings()

GREY = ("#6b7280", "#f3f4f6")

SOURCE_BADGES: dict[str, SourceBadge] = {
    "ghl_sync": SourceBadge(label="GHL", color="#10b981", bg_color="#d1fae5"),
    "hubspot_sync": SourceBadge(label="HubSpot", color="#ff7a59", bg_color="#ffe8e2"),
    "vagaro_sync": SourceBadge(label="Vagaro", color="#8b5cf6", bg_color="#ede9fe"),
    "zoho_sync": SourceBadge(label="Zoho", color="#dc2626", bg_color="#fee2e2"),
    "google_sync": SourceBadge(label="Google", color="#4285f4", bg_color="#e8f0fe"),
    "voice": SourceBadge(label="Voice", color="#3b82f6", bg_color="#dbeafe"),
    "online": SourceBadge(label="Online", color="#0ea5e9", bg_color="#e0f2fe"),
    "manual": SourceBadge(label="Manual", color=GREY[0], bg_color=GREY[1]),
    "local": SourceBadge(label="Local", color=GREY[0], bg_color=GREY[1]),
}

OTHER_BADGE = SourceBadge(label="Other", color=GREY[0], bg_color=GREY[1])


def get_source_badge(source: str | None) -> SourceBadge:
    return SOURCE_BADGES.get(source or "", OTHER_BADGE)


class DashboardService:
    """Read model behind the appointments dashboard."""

    def __init__(self, db: AsyncSession, backend_factory: BackendFactory = get_backend):
        self.db = db
        self.resolver = TenantConfigResolver(db)
        self.store = AppointmentStore(db)
        self.sync = ReconciliationSync(db, backend_factory)

    async def get_dashboard_appointments(
        self,
        tenant_id: UUID,
        days: int | None = None,
        refresh: bool = False,
        today: date | None = None,
    ) -> DashboardResponse:
        """Upcoming appointments from today through today + *days*.

        "Today" is taken in the tenant's timezone. With ``refresh`` a
        reconciliation sync over the same range runs first.
        """
        config = await self.resolver.get_booking_config(tenant_id)
        days = settings.dashboard_default_days if days is None else days
        start_date = today or datetime.now(ZoneInfo(config.timezone)).date()
        end_date = start_date + timedelta(days=days)

        sync_result = None
        if refresh:
            sync_result = await self.sync.sync_appointments(tenant_id, start_date, end_date)

        appointments = await self.store.list_range(tenant_id, start_date, end_date)
        rows = [
            DashboardAppointment.model_validate(
                {
                    **{
                        field: getattr(appointment, field)
                        for field in DashboardAppointment.model_fields
                        if field != "source_badge"
                    },
                    "source_badge": get_source_badge(appointment.source),
                }
            )
            for appointment in appointments
        ]

        return DashboardResponse(
            appointments=rows,
            count=len(rows),
            start_date=start_date,
            end_date=end_date,
            last_sync=await self.store.last_synced_at(tenant_id),
            sync_result=sync_result,
        )
