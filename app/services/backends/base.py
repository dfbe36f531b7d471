"""Abstract calendar backend interface and shared data structures.

Every remote calendar (GHL, HubSpot, Vagaro, Google, Zoho) is wrapped in a
:class:`CalendarBackend`. Adapters own their credential handling, their
wire protocol and all timezone conversion: everything crossing this
interface is expressed in the tenant's wall-clock time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from app.config import get_settings
from app.core.errors import RETRYABLE_ERRORS, NotConfigured, raise_for_backend
from app.models.appointment import AppointmentStatus
from app.models.credential import BackendCredential, BackendKind

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class CustomerInfo:
    """Customer details passed to ``find_or_create_customer``."""

    name: str
    phone: str
    email: str | None = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ", 1)[0] if self.name else ""

    @property
    def last_name(self) -> str:
        parts = self.name.split(" ", 1)
        return parts[1] if len(parts) > 1 else ""


@dataclass
class BusyInterval:
    """Half-open busy interval ``[start, end)`` in tenant wall-clock time."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Abutting intervals do not overlap
        return self.start < end and start < self.end


@dataclass
class AppointmentMetadata:
    """Descriptive fields attached to a remote appointment."""

    title: str
    customer: CustomerInfo
    notes: str | None = None
    confirmation_code: str | None = None


@dataclass
class RemoteAppointment:
    """An appointment held by a backend, normalised to the canonical model."""

    external_id: str
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: AppointmentStatus
    customer_name: str = "Unknown"
    customer_phone: str = ""
    customer_email: str | None = None
    purpose: str | None = None
    notes: str | None = None


def parse_remote_timestamp(value: Any, tz: ZoneInfo) -> datetime:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Naive ISO strings are interpreted in *tz*.
    """
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        return datetime.fromtimestamp(int(value) / 1000, tz=tz)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Unparseable timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def translate_status(table: dict[str, AppointmentStatus], value: str | None) -> AppointmentStatus:
    """Map a backend status string onto the canonical enum."""
    if not value:
        return AppointmentStatus.SCHEDULED
    return table.get(value.strip().lower(), AppointmentStatus.SCHEDULED)


class CalendarBackend(ABC):
    """Abstract interface for a remote calendar backend."""

    kind: BackendKind

    # Capability flags
    can_be_system_of_record: bool = True
    requires_customer_email: bool = False
    imports_appointments: bool = True
    supports_event_mirror: bool = True

    # Backend status string (lower-cased) -> canonical status
    STATUS_MAP: dict[str, AppointmentStatus] = {}

    def __init__(self, credential: BackendCredential, timezone: str) -> None:
        self.credential = credential
        self.secrets: dict = dict(credential.secret_bundle or {})
        self.calendar_id = credential.calendar_id
        self.timezone = timezone
        self.tz = ZoneInfo(timezone)

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_available_slots(self, day: date) -> list[time]:
        """Return free slot start times on *day* (tenant wall-clock)."""

    @abstractmethod
    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        """Return busy intervals intersecting *day* (tenant wall-clock)."""

    @abstractmethod
    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        """Return the backend's customer/contact id for *info*."""

    @abstractmethod
    async def create_appointment(
        self,
        customer_id: str,
        start: datetime,
        end: datetime,
        metadata: AppointmentMetadata,
    ) -> str:
        """Create an appointment between naive wall-clock *start* and *end*.

        Returns the backend's external id. Never retried.
        """

    @abstractmethod
    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        """List appointments between *start_date* and *end_date* inclusive."""

    @abstractmethod
    async def cancel_appointment(self, external_id: str) -> None:
        """Cancel (not delete) the appointment identified by *external_id*."""

    @abstractmethod
    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Perform one raw HTTP call. Raises httpx errors on failure."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def require_secret(self, key: str) -> str:
        value = self.secrets.get(key)
        if not value:
            raise NotConfigured(
                f"{self.kind.value} credential is missing '{key}'",
                backend=self.kind.value,
            )
        return value

    async def _request(
        self,
        method: str,
        path: str,
        *,
        read: bool | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Call the backend, translating failures into booking errors.

        Reads (GET by default, or ``read=True``) are retried on transient
        failures; writes are attempted exactly once.
        """
        if read is None:
            read = method.upper() == "GET"
        max_retries = settings.backend_read_retry_max if read else 0

        last_error: Exception | None = None
        for attempt in range(1 + max_retries):
            try:
                try:
                    return await self._call(method, path, **kwargs)
                except httpx.HTTPError as e:
                    raise_for_backend(e, self.kind.value)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    "%s %s %s failed (attempt %d/%d): %s",
                    self.kind.value,
                    method,
                    path,
                    attempt + 1,
                    1 + max_retries,
                    e,
                )
        assert last_error is not None
        raise last_error

    def localize(self, wall_clock: datetime) -> datetime:
        """Attach the tenant timezone to a naive wall-clock datetime."""
        return wall_clock.replace(tzinfo=self.tz)

    def to_wall_clock(self, moment: datetime) -> datetime:
        """Convert an aware datetime to naive tenant wall-clock time."""
        return moment.astimezone(self.tz).replace(tzinfo=None)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Aware ``[start, end)`` covering *day* in the tenant timezone."""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start, end

    def parse_timestamp(self, value: Any) -> datetime:
        return parse_remote_timestamp(value, self.tz)

    def busy_from(self, start_value: Any, end_value: Any) -> BusyInterval:
        return BusyInterval(
            start=self.to_wall_clock(self.parse_timestamp(start_value)),
            end=self.to_wall_clock(self.parse_timestamp(end_value)),
        )


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from *start* to *end*, at least one."""
    return max(int((end - start) / timedelta(minutes=1)), 1)
