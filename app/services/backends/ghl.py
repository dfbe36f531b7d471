"""GoHighLevel (LeadConnector) calendar backend.

Uses the location-scoped API key stored in the credential bundle::

    {"api_key": "...", "location_id": "..."}

The calendar id comes from ``BackendCredential.calendar_id``. All
timestamps are sent as ISO-8601 with the tenant offset; free-slot
responses are keyed by date and may carry any offset, so every value is
converted back to tenant wall-clock before comparison.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any

import httpx

from app.config import get_settings
from app.core.errors import NotConfigured, ValidationError
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
settings = get_settings()


class GHLBackend(CalendarBackend):
    """GoHighLevel calendar + contacts."""

    kind = BackendKind.GHL

    STATUS_MAP = {
        "new": AppointmentStatus.SCHEDULED,
        "booked": AppointmentStatus.SCHEDULED,
        "confirmed": AppointmentStatus.CONFIRMED,
        "cancelled": AppointmentStatus.CANCELLED,
        "invalid": AppointmentStatus.CANCELLED,
        "showed": AppointmentStatus.COMPLETED,
        "noshow": AppointmentStatus.NO_SHOW,
        "no_show": AppointmentStatus.NO_SHOW,
    }

    @property
    def location_id(self) -> str:
        return self.require_secret("location_id")

    def _calendar(self) -> str:
        if not self.calendar_id:
            raise NotConfigured("GHL calendar id is not set", backend=self.kind.value)
        return self.calendar_id

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.require_secret('api_key')}",
            "Version": settings.ghl_api_version,
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(timeout=settings.backend_timeout_seconds) as client:
            response = await client.request(
                method,
                f"{settings.ghl_base_url}{path}",
                headers=headers,
                **kwargs,
            )
            response.raise_for_status()
            return response

    # --- Availability ---

    async def list_available_slots(self, day: date) -> list[time]:
        start, end = self.day_bounds(day)
        response = await self._request(
            "GET",
            f"/calendars/{self._calendar()}/free-slots",
            params={
                "startDate": int(start.timestamp() * 1000),
                "endDate": int(end.timestamp() * 1000) - 1,
                "timezone": self.timezone,
            },
        )
        data = response.json()

        # {"2025-06-02": {"slots": ["2025-06-02T09:00:00-04:00", ...]}, "traceId": "..."}
        slots: set[time] = set()
        for value in data.values():
            if not isinstance(value, dict):
                continue
            for raw in value.get("slots", []):
                local = self.to_wall_clock(self.parse_timestamp(raw))
                if local.date() == day:
                    slots.add(local.time())
        logger.info("GHL: %d free slots on %s", len(slots), day)
        return sorted(slots)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        events = await self._list_events(*self.day_bounds(day))
        return [
            self.busy_from(event["startTime"], event["endTime"])
            for event in events
            if translate_status(self.STATUS_MAP, event.get("appointmentStatus"))
            != AppointmentStatus.CANCELLED
        ]

    # --- Contacts ---

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        response = await self._request(
            "GET",
            "/contacts/",
            params={"locationId": self.location_id, "query": info.phone},
        )
        contacts = response.json().get("contacts") or []
        if contacts:
            return contacts[0]["id"]

        payload: dict[str, Any] = {
            "locationId": self.location_id,
            "firstName": info.first_name or "Booking",
            "lastName": info.last_name or "Customer",
            "phone": info.phone,
            "source": "Booking Orchestrator",
        }
        if info.email:
            payload["email"] = info.email
        response = await self._request("POST", "/contacts/", json=payload)
        contact = response.json().get("contact") or {}
        if not contact.get("id"):
            raise ValidationError("GHL did not return a contact id", backend=self.kind.value)
        return contact["id"]

    # --- Appointments ---

    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        response = await self._request(
            "POST",
            "/calendars/events/appointments",
            json={
                "calendarId": self._calendar(),
                "locationId": self.location_id,
                "contactId": customer_id,
                "startTime": self.localize(start).isoformat(),
                "endTime": self.localize(end).isoformat(),
                "title": metadata.title,
                "appointmentStatus": "confirmed",
                "notes": metadata.notes or "",
            },
        )
        data = response.json()
        external_id = data.get("id") or (data.get("event") or {}).get("id")
        if not external_id:
            raise ValidationError("GHL did not return an appointment id", backend=self.kind.value)
        logger.info("GHL appointment booked: %s", external_id)
        return str(external_id)

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        range_start, _ = self.day_bounds(start_date)
        _, range_end = self.day_bounds(end_date)
        events = await self._list_events(range_start, range_end)

        appointments = []
        for event in events:
            start = self.to_wall_clock(self.parse_timestamp(event["startTime"]))
            end = self.to_wall_clock(self.parse_timestamp(event["endTime"]))
            appointments.append(
                RemoteAppointment(
                    external_id=str(event["id"]),
                    appointment_date=start.date(),
                    appointment_time=start.time(),
                    duration_minutes=minutes_between(start, end),
                    status=translate_status(self.STATUS_MAP, event.get("appointmentStatus")),
                    customer_name=(event.get("contact") or {}).get("name") or event.get("title") or "Unknown",
                    customer_phone=(event.get("contact") or {}).get("phone") or "",
                    customer_email=(event.get("contact") or {}).get("email"),
                    purpose=event.get("title"),
                    notes=event.get("notes"),
                )
            )
        return appointments

    async def cancel_appointment(self, external_id: str) -> None:
        await self._request(
            "PUT",
            f"/calendars/events/appointments/{external_id}",
            json={"appointmentStatus": "cancelled"},
        )

    async def _list_events(self, start: datetime, end: datetime) -> list[dict]:
        response = await self._request(
            "GET",
            "/calendars/events",
            params={
                "locationId": self.location_id,
                "calendarId": self._calendar(),
                "startTime": int(start.timestamp() * 1000),
                "endTime": int(end.timestamp() * 1000),
            },
        )
        return response.json().get("events") or []
