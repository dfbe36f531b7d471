"""Vagaro backend (OAuth client credentials).

Credential bundle::

    {
        "client_id": "...",
        "client_secret": "...",
        "merchant_id": "...",
        "region": "us01",          # optional
        "service_id": "...",       # required for availability
        "location_id": "...",      # optional
    }

Vagaro works in business-local dates and ``HH:MM`` times, so no offset
conversion is needed beyond interpreting bare values in the tenant zone.
Access tokens are cached on the instance until five minutes before
expiry; a 401 clears the cache and the call is replayed once.
"""

from __future__ import annotations

import logging
import time as clock
from datetime import date, datetime, time, timedelta
from typing import Any

import httpx

from app.config import get_settings
from app.core.errors import AuthFailure, ValidationError, raise_for_backend
from app.models.appointment import AppointmentStatus
from app.models.credential import BackendKind
from app.services.backends.base import (
    AppointmentMetadata,
    BusyInterval,
    CalendarBackend,
    CustomerInfo,
    RemoteAppointment,
    translate_status,
)

logger = logging.getLogger(__name__)
settings = get_settings()

TOKEN_SCOPE = (
    "business:read business:write appointment:read appointment:write "
    "customer:read customer:write"
)
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class VagaroBackend(CalendarBackend):
    """Vagaro salon/spa scheduling."""

    kind = BackendKind.VAGARO

    STATUS_MAP = {
        "confirmed": AppointmentStatus.CONFIRMED,
        "pending": AppointmentStatus.SCHEDULED,
        "booked": AppointmentStatus.SCHEDULED,
        "completed": AppointmentStatus.COMPLETED,
        "cancelled": AppointmentStatus.CANCELLED,
        "canceled": AppointmentStatus.CANCELLED,
        "no_show": AppointmentStatus.NO_SHOW,
        "noshow": AppointmentStatus.NO_SHOW,
        "no-show": AppointmentStatus.NO_SHOW,
    }

    def __init__(self, credential, timezone: str) -> None:
        super().__init__(credential, timezone)
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def base_url(self) -> str:
        region = self.secrets.get("region") or settings.vagaro_default_region
        return f"https://{region}-api.vagaro.com"

    async def _get_access_token(self) -> str:
        if self._access_token and self._token_expires_at > clock.monotonic():
            return self._access_token

        merchant_id = self.require_secret("merchant_id")
        logger.info("Vagaro: requesting access token for merchant %s", merchant_id)
        try:
            async with httpx.AsyncClient(timeout=settings.backend_timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/v1/oauth/token",
                    json={
                        "client_id": self.require_secret("client_id"),
                        "client_secret": self.require_secret("client_secret"),
                        "scope": TOKEN_SCOPE,
                        "grant_type": "client_credentials",
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 401, 403):
                raise AuthFailure(
                    f"Vagaro token request rejected: HTTP {e.response.status_code}",
                    backend=self.kind.value,
                ) from e
            raise_for_backend(e, self.kind.value)
        except httpx.HTTPError as e:
            raise_for_backend(e, self.kind.value)

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in") or 3600)
        self._token_expires_at = clock.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return self._access_token

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}/v1{path}"
        async with httpx.AsyncClient(timeout=settings.backend_timeout_seconds) as client:
            token = await self._get_access_token()
            response = await client.request(
                method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
            if response.status_code == 401:
                logger.warning("Vagaro: 401, refreshing token and replaying %s %s", method, path)
                self._access_token = None
                token = await self._get_access_token()
                response = await client.request(
                    method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
                )
            response.raise_for_status()
            return response

    # --- Availability ---

    async def list_available_slots(self, day: date) -> list[time]:
        params = {
            "serviceId": self.require_secret("service_id"),
            "date": day.isoformat(),
        }
        if self.secrets.get("location_id"):
            params["locationId"] = self.secrets["location_id"]
        response = await self._request("GET", "/appointments/availability", params=params)

        slots: set[time] = set()
        for item in response.json().get("data") or []:
            if isinstance(item, str):
                slots.add(time.fromisoformat(item))
            elif item.get("startTime"):
                local = self.to_wall_clock(self.parse_timestamp(item["startTime"]))
                if local.date() == day:
                    slots.add(local.time())
            elif item.get("time"):
                slots.add(time.fromisoformat(item["time"]))
        return sorted(slots)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        busy = []
        for appt in await self.list_appointments(day, day):
            if appt.status == AppointmentStatus.CANCELLED:
                continue
            start = datetime.combine(appt.appointment_date, appt.appointment_time)
            busy.append(BusyInterval(start, start + timedelta(minutes=appt.duration_minutes)))
        return busy

    # --- Customers ---

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        response = await self._request("GET", "/customers/search", params={"phone": info.phone})
        matches = response.json().get("data") or []
        if matches:
            return str(matches[0]["id"])

        payload: dict[str, Any] = {
            "firstName": info.first_name,
            "lastName": info.last_name,
            "phone": info.phone,
        }
        if info.email:
            payload["email"] = info.email
        response = await self._request("POST", "/customers", json=payload)
        customer = response.json().get("data") or {}
        if not customer.get("id"):
            raise ValidationError("Vagaro did not return a customer id", backend=self.kind.value)
        return str(customer["id"])

    # --- Appointments ---

    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        payload: dict[str, Any] = {
            "customerId": customer_id,
            "serviceId": self.require_secret("service_id"),
            "date": start.date().isoformat(),
            "time": start.strftime("%H:%M"),
            "duration": int((end - start).total_seconds() // 60),
            "notes": metadata.notes or metadata.title,
        }
        if self.secrets.get("location_id"):
            payload["locationId"] = self.secrets["location_id"]
        response = await self._request("POST", "/appointments", json=payload)
        appointment = response.json().get("data") or {}
        if not appointment.get("id"):
            raise ValidationError("Vagaro did not return an appointment id", backend=self.kind.value)
        logger.info("Vagaro appointment created: %s", appointment["id"])
        return str(appointment["id"])

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        response = await self._request(
            "GET",
            "/appointments",
            params={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        appointments = []
        for appt in response.json().get("data") or []:
            customer = appt.get("customer") or {}
            name = customer.get("name") or (
                f"{customer.get('firstName', '')} {customer.get('lastName', '')}".strip()
            )
            service = appt.get("service") or {}
            appointments.append(
                RemoteAppointment(
                    external_id=str(appt["id"]),
                    appointment_date=date.fromisoformat(appt["date"]),
                    appointment_time=time.fromisoformat(appt["time"]),
                    duration_minutes=int(appt.get("duration") or 30),
                    status=translate_status(self.STATUS_MAP, appt.get("status")),
                    customer_name=name or "Unknown",
                    customer_phone=customer.get("phone") or "",
                    customer_email=customer.get("email") or None,
                    purpose=service.get("name") or appt.get("serviceName"),
                    notes=appt.get("notes") or None,
                )
            )
        return appointments

    async def cancel_appointment(self, external_id: str) -> None:
        await self._request("POST", f"/appointments/{external_id}/cancel")
