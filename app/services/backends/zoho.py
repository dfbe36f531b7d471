"""Zoho CRM Events backend via the Nango proxy.

Credential bundle::

    {"nango_connection_id": "...", "provider_config_key": "zoho-crm"}

The Events module cannot filter by date range, so events are paged and
filtered client-side. Zoho answers 204 with an empty body when a module
has no records.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any

import httpx

from app.core.errors import NotConfigured, ValidationError
from app.integrations.nango.client import nango_client
from app.models.appointment import AppointmentStatus
from app.models.credential import BackendKind
from app.services.backends.base import (
    AppointmentMetadata,
    BusyInterval,
    CalendarBackend,
    CustomerInfo,
    RemoteAppointment,
    minutes_between,
    translate_status,
)

logger = logging.getLogger(__name__)

EVENT_FIELDS = "Event_Title,Start_DateTime,End_DateTime,Description,Check_In_Status"
PAGE_SIZE = 200


class ZohoBackend(CalendarBackend):
    """Zoho CRM calendar events."""

    kind = BackendKind.ZOHO
    can_be_system_of_record = False

    # Events have no lifecycle status, only a check-in state
    STATUS_MAP = {
        "planned": AppointmentStatus.SCHEDULED,
        "checked in": AppointmentStatus.CONFIRMED,
    }

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        proxy = nango_client.proxy(
            self.require_secret("nango_connection_id"),
            self.secrets.get("provider_config_key") or "zoho-crm",
        )
        return await proxy.request(method, path, **kwargs)

    async def list_available_slots(self, day: date) -> list[time]:
        raise NotConfigured("Zoho events expose no bookable slots", backend=self.kind.value)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        start, end = self.day_bounds(day)
        window_start, window_end = self.to_wall_clock(start), self.to_wall_clock(end)

        busy = []
        for event in await self._list_events():
            interval = self.busy_from(event["Start_DateTime"], event["End_DateTime"])
            if interval.overlaps(window_start, window_end):
                busy.append(interval)
        return busy

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        # Events reference participants by name only
        return info.name

    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        response = await self._request(
            "POST",
            "/crm/v5/Events",
            json={
                "data": [
                    {
                        "Event_Title": metadata.title,
                        "Start_DateTime": self.localize(start).isoformat(timespec="seconds"),
                        "End_DateTime": self.localize(end).isoformat(timespec="seconds"),
                        "Description": metadata.notes or f"{metadata.customer.name} {metadata.customer.phone}",
                    }
                ]
            },
        )
        results = response.json().get("data") or []
        if not results or results[0].get("status") != "success":
            raise ValidationError(f"Zoho rejected event: {results}", backend=self.kind.value)
        event_id = results[0]["details"]["id"]
        logger.info("Zoho event created: %s", event_id)
        return str(event_id)

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        appointments = []
        for event in await self._list_events():
            start = self.to_wall_clock(self.parse_timestamp(event["Start_DateTime"]))
            if not start_date <= start.date() <= end_date:
                continue
            end = self.to_wall_clock(self.parse_timestamp(event["End_DateTime"]))
            appointments.append(
                RemoteAppointment(
                    external_id=str(event["id"]),
                    appointment_date=start.date(),
                    appointment_time=start.time(),
                    duration_minutes=minutes_between(start, end),
                    status=translate_status(self.STATUS_MAP, event.get("Check_In_Status")),
                    customer_name=event.get("Event_Title") or "Unknown",
                    purpose=event.get("Event_Title"),
                    notes=event.get("Description"),
                )
            )
        return appointments

    async def cancel_appointment(self, external_id: str) -> None:
        await self._request("DELETE", f"/crm/v5/Events/{external_id}")

    async def _list_events(self) -> list[dict]:
        events: list[dict] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/crm/v5/Events",
                params={
                    "fields": EVENT_FIELDS,
                    "sort_by": "Start_DateTime",
                    "page": page,
                    "per_page": PAGE_SIZE,
                },
            )
            if response.status_code == 204 or not response.content:
                return events
            data = response.json()
            events.extend(data.get("data") or [])
            if not (data.get("info") or {}).get("more_records"):
                return events
            page += 1
