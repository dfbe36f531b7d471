"""HubSpot CRM backend.

Credential bundle::

    {"access_token": "...", "meeting_slug": "..."}

Meetings are CRM meeting objects associated to a contact. HubSpot contacts
are keyed by email, so a placeholder address is synthesised upstream when
the caller has none (see ``requires_customer_email``).
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

# Meeting -> contact association (HUBSPOT_DEFINED)
MEETING_TO_CONTACT = 200

MEETING_PROPERTIES = [
    "hs_meeting_title",
    "hs_meeting_body",
    "hs_meeting_start_time",
    "hs_meeting_end_time",
    "hs_meeting_outcome",
]


class HubSpotBackend(CalendarBackend):
    """HubSpot contacts + meetings."""

    kind = BackendKind.HUBSPOT
    requires_customer_email = True

    STATUS_MAP = {
        "scheduled": AppointmentStatus.SCHEDULED,
        "rescheduled": AppointmentStatus.SCHEDULED,
        "completed": AppointmentStatus.COMPLETED,
        "no_show": AppointmentStatus.NO_SHOW,
        "canceled": AppointmentStatus.CANCELLED,
        "cancelled": AppointmentStatus.CANCELLED,
    }

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.require_secret('access_token')}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=settings.backend_timeout_seconds) as client:
            response = await client.request(
                method,
                f"{settings.hubspot_base_url}{path}",
                headers=headers,
                **kwargs,
            )
            response.raise_for_status()
            return response

    # --- Availability ---

    async def list_available_slots(self, day: date) -> list[time]:
        slug = self.secrets.get("meeting_slug")
        if not slug:
            raise NotConfigured("HubSpot meeting_slug is not set", backend=self.kind.value)

        start, end = self.day_bounds(day)
        response = await self._request(
            "GET",
            f"/scheduler/v3/meetings/{slug}/availability",
            params={
                "startDatetime": start.isoformat(),
                "endDatetime": end.isoformat(),
                "timezone": self.timezone,
            },
        )
        data = response.json()
        raw_slots = data.get("availableTimes") or data.get("times") or []

        slots: set[time] = set()
        for slot in raw_slots:
            # Some portals return bare ISO strings instead of slot objects
            raw = slot if isinstance(slot, str) else slot.get("startTime") or slot.get("start")
            local = self.to_wall_clock(self.parse_timestamp(raw))
            if local.date() == day:
                slots.add(local.time())
        return sorted(slots)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        meetings = await self._search_meetings(*self.day_bounds(day))
        busy = []
        for meeting in meetings:
            props = meeting.get("properties") or {}
            if translate_status(self.STATUS_MAP, props.get("hs_meeting_outcome")) == AppointmentStatus.CANCELLED:
                continue
            busy.append(self.busy_from(props["hs_meeting_start_time"], props["hs_meeting_end_time"]))
        return busy

    # --- Contacts ---

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        if not info.email:
            raise ValidationError("HubSpot contacts require an email", backend=self.kind.value)

        response = await self._request(
            "POST",
            "/crm/v3/objects/contacts/search",
            read=True,
            json={
                "filterGroups": [
                    {"filters": [{"propertyName": "email", "operator": "EQ", "value": info.email}]}
                ],
                "properties": ["email", "firstname", "lastname", "phone"],
                "limit": 1,
            },
        )
        results = response.json().get("results") or []
        if results:
            return str(results[0]["id"])

        response = await self._request(
            "POST",
            "/crm/v3/objects/contacts",
            json={
                "properties": {
                    "email": info.email,
                    "firstname": info.first_name,
                    "lastname": info.last_name,
                    "phone": info.phone,
                }
            },
        )
        contact_id = response.json().get("id")
        if not contact_id:
            raise ValidationError("HubSpot created a contact but returned no id", backend=self.kind.value)
        logger.info("HubSpot contact created: %s", contact_id)
        return str(contact_id)

    # --- Meetings ---

    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        start_ms = int(self.localize(start).timestamp() * 1000)
        end_ms = int(self.localize(end).timestamp() * 1000)
        body = metadata.notes or f"Contact: {metadata.customer.name} ({metadata.customer.phone})"
        if metadata.confirmation_code:
            body = f"{body}\nConfirmation: {metadata.confirmation_code}"

        response = await self._request(
            "POST",
            "/crm/v3/objects/meetings",
            json={
                "properties": {
                    "hs_meeting_title": metadata.title,
                    "hs_meeting_body": body,
                    "hs_meeting_start_time": start_ms,
                    "hs_meeting_end_time": end_ms,
                    "hs_meeting_outcome": "SCHEDULED",
                    "hs_timestamp": start_ms,
                },
                "associations": [
                    {
                        "to": {"id": customer_id},
                        "types": [
                            {
                                "associationCategory": "HUBSPOT_DEFINED",
                                "associationTypeId": MEETING_TO_CONTACT,
                            }
                        ],
                    }
                ],
            },
        )
        meeting_id = response.json().get("id")
        if not meeting_id:
            raise ValidationError("HubSpot did not return a meeting id", backend=self.kind.value)
        logger.info("HubSpot meeting created: %s", meeting_id)
        return str(meeting_id)

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        range_start, _ = self.day_bounds(start_date)
        _, range_end = self.day_bounds(end_date)

        appointments = []
        for meeting in await self._search_meetings(range_start, range_end):
            props = meeting.get("properties") or {}
            start = self.to_wall_clock(self.parse_timestamp(props["hs_meeting_start_time"]))
            end = self.to_wall_clock(self.parse_timestamp(props["hs_meeting_end_time"]))
            appointments.append(
                RemoteAppointment(
                    external_id=str(meeting["id"]),
                    appointment_date=start.date(),
                    appointment_time=start.time(),
                    duration_minutes=minutes_between(start, end),
                    status=translate_status(self.STATUS_MAP, props.get("hs_meeting_outcome")),
                    customer_name=props.get("hs_meeting_title") or "Unknown",
                    purpose=props.get("hs_meeting_title"),
                    notes=props.get("hs_meeting_body"),
                )
            )
        return appointments

    async def cancel_appointment(self, external_id: str) -> None:
        await self._request(
            "PATCH",
            f"/crm/v3/objects/meetings/{external_id}",
            json={"properties": {"hs_meeting_outcome": "CANCELED"}},
        )

    async def _search_meetings(self, start: datetime, end: datetime) -> list[dict]:
        """Page through meetings starting in ``[start, end)``."""
        meetings: list[dict] = []
        after: str | None = None
        while True:
            payload: dict[str, Any] = {
                "filterGroups": [
                    {
                        "filters": [
                            {
                                "propertyName": "hs_meeting_start_time",
                                "operator": "BETWEEN",
                                "value": int(start.timestamp() * 1000),
                                "highValue": int(end.timestamp() * 1000) - 1,
                            }
                        ]
                    }
                ],
                "properties": MEETING_PROPERTIES,
                "sorts": [{"propertyName": "hs_meeting_start_time", "direction": "ASCENDING"}],
                "limit": 100,
            }
            if after:
                payload["after"] = after

            response = await self._request(
                "POST", "/crm/v3/objects/meetings/search", read=True, json=payload
            )
            data = response.json()
            meetings.extend(data.get("results") or [])
            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return meetings
