"""Google Calendar backend via the Nango proxy.

Google has no notion of bookable slots, only free/busy, so it acts as a
shadow backend: busy intervals block availability and, when the tenant
opts in, booked appointments are mirrored as events.

Credential bundle::

    {"nango_connection_id": "...", "provider_config_key": "google-calendar"}
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any

import httpx

from app.core.errors import NotConfigured
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


class GoogleCalendarBackend(CalendarBackend):
    """Google Calendar free/busy and events."""

    kind = BackendKind.GOOGLE
    can_be_system_of_record = False
    # Personal calendar events are not customer appointments
    imports_appointments = False

    STATUS_MAP = {
        "confirmed": AppointmentStatus.CONFIRMED,
        "tentative": AppointmentStatus.SCHEDULED,
        "cancelled": AppointmentStatus.CANCELLED,
    }

    @property
    def google_calendar_id(self) -> str:
        return self.calendar_id or "primary"

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        proxy = nango_client.proxy(
            self.require_secret("nango_connection_id"),
            self.secrets.get("provider_config_key") or "google-calendar",
        )
        return await proxy.request(method, path, **kwargs)

    async def list_available_slots(self, day: date) -> list[time]:
        raise NotConfigured("Google Calendar exposes no bookable slots", backend=self.kind.value)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        start, end = self.day_bounds(day)
        response = await self._request(
            "POST",
            "/calendar/v3/freeBusy",
            read=True,
            json={
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "timeZone": self.timezone,
                "items": [{"id": self.google_calendar_id}],
            },
        )
        calendars = response.json().get("calendars") or {}
        busy = (calendars.get(self.google_calendar_id) or {}).get("busy") or []
        return [self.busy_from(slot["start"], slot["end"]) for slot in busy]

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        # Attendees are plain addresses; there is no contact object to create
        return info.email or info.phone

    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        event: dict[str, Any] = {
            "summary": metadata.title,
            "description": metadata.notes or f"{metadata.customer.name} {metadata.customer.phone}",
            "start": {"dateTime": self.localize(start).isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": self.localize(end).isoformat(), "timeZone": self.timezone},
        }
        if metadata.customer.email:
            event["attendees"] = [{"email": metadata.customer.email}]

        response = await self._request(
            "POST",
            f"/calendar/v3/calendars/{self.google_calendar_id}/events",
            json=event,
        )
        event_id = response.json()["id"]
        logger.info("Google event created: %s", event_id)
        return event_id

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        range_start, _ = self.day_bounds(start_date)
        _, range_end = self.day_bounds(end_date)

        appointments: list[RemoteAppointment] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "timeMin": range_start.isoformat(),
                "timeMax": range_end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            }
            if page_token:
                params["pageToken"] = page_token
            response = await self._request(
                "GET",
                f"/calendar/v3/calendars/{self.google_calendar_id}/events",
                params=params,
            )
            data = response.json()
            for item in data.get("items") or []:
                # All-day events carry "date" instead of "dateTime"
                if "dateTime" not in (item.get("start") or {}):
                    continue
                start = self.to_wall_clock(self.parse_timestamp(item["start"]["dateTime"]))
                end = self.to_wall_clock(self.parse_timestamp(item["end"]["dateTime"]))
                attendees = item.get("attendees") or []
                appointments.append(
                    RemoteAppointment(
                        external_id=item["id"],
                        appointment_date=start.date(),
                        appointment_time=start.time(),
                        duration_minutes=minutes_between(start, end),
                        status=translate_status(self.STATUS_MAP, item.get("status")),
                        customer_name=item.get("summary") or "Unknown",
                        customer_email=attendees[0].get("email") if attendees else None,
                        purpose=item.get("summary"),
                        notes=item.get("description"),
                    )
                )
            page_token = data.get("nextPageToken")
            if not page_token:
                return appointments

    async def cancel_appointment(self, external_id: str) -> None:
        await self._request(
            "DELETE",
            f"/calendar/v3/calendars/{self.google_calendar_id}/events/{external_id}",
        )
