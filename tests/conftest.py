"""
Test configuration and fixtures.

Provides:
- A file-backed SQLite database per test (several sessions can race on it)
- Tenant and credential factories
- In-memory calendar backends standing in for the remote systems
"""

from datetime import date, datetime, time
from itertools import count
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (registers every mapper)
from app.database import Base
from app.models.appointment import AppointmentStatus
from app.models.credential import BackendCredential, BackendKind
from app.models.tenant import Tenant
from app.services.backends.base import (
    AppointmentMetadata,
    BusyInterval,
    CalendarBackend,
    CustomerInfo,
    RemoteAppointment,
)

MONDAY = date(2025, 6, 2)
TUESDAY = date(2025, 7, 1)


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}",
        connect_args={"timeout": 15},
    )

    # Take the write lock when a transaction starts so racing sessions queue
    # up instead of deadlocking on lock promotion
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


# =============================================================================
# Factories
# =============================================================================


async def create_tenant(db: AsyncSession, name: str = "Acme", **overrides: Any) -> Tenant:
    fields: dict[str, Any] = {
        "name": name,
        "timezone": "America/New_York",
        "business_hours_start": time(9, 0),
        "business_hours_end": time(17, 0),
        "active_weekdays": [0, 1, 2, 3, 4],
        "appointment_duration_minutes": 30,
    }
    fields.update(overrides)
    tenant = Tenant(**fields)
    db.add(tenant)
    await db.commit()
    await db.refresh(tenant)
    return tenant


async def add_credential(
    db: AsyncSession,
    tenant: Tenant,
    kind: BackendKind,
    secret_bundle: dict | None = None,
    calendar_id: str | None = "cal-1",
    is_active: bool = True,
) -> BackendCredential:
    credential = BackendCredential(
        tenant_id=tenant.id,
        kind=kind.value,
        secret_bundle=secret_bundle or {"api_key": "test-key", "location_id": "loc-1"},
        calendar_id=calendar_id,
        is_active=is_active,
    )
    db.add(credential)
    await db.commit()
    return credential


def remote_appointment(
    external_id: str,
    day: date = MONDAY,
    at: time = time(10, 0),
    **overrides: Any,
) -> RemoteAppointment:
    fields: dict[str, Any] = {
        "external_id": external_id,
        "appointment_date": day,
        "appointment_time": at,
        "duration_minutes": 30,
        "status": AppointmentStatus.SCHEDULED,
        "customer_name": "Jane Doe",
        "customer_phone": "+15550001111",
        "purpose": "Consultation",
    }
    fields.update(overrides)
    return RemoteAppointment(**fields)


# =============================================================================
# Fake backends
# =============================================================================


class FakeBackend(CalendarBackend):
    """In-memory backend. Any configured value that is an exception is raised."""

    def __init__(
        self,
        kind: BackendKind,
        *,
        slots: list[time] | Exception | None = None,
        busy: list[BusyInterval] | Exception | None = None,
        appointments: list[RemoteAppointment] | Exception | None = None,
        create_error: Exception | None = None,
        cancel_error: Exception | None = None,
        requires_customer_email: bool = False,
        imports_appointments: bool = True,
        timezone: str = "America/New_York",
    ) -> None:
        self.kind = kind
        self.timezone = timezone
        self.secrets = {}
        self.calendar_id = None
        self.slots = slots if slots is not None else []
        self.busy = busy if busy is not None else []
        self.appointments = appointments if appointments is not None else []
        self.create_error = create_error
        self.cancel_error = cancel_error
        self.requires_customer_email = requires_customer_email
        self.imports_appointments = imports_appointments

        self.customers: list[CustomerInfo] = []
        self.created: list[tuple[str, datetime, datetime, AppointmentMetadata]] = []
        self.cancelled: list[str] = []
        self._ids = count(1)

    @staticmethod
    def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def list_available_slots(self, day: date) -> list[time]:
        return list(self._value(self.slots))

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        return list(self._value(self.busy))

    async def find_or_create_customer(self, info: CustomerInfo) -> str:
        self.customers.append(info)
        return f"{self.kind.value}-contact-{len(self.customers)}"

    async def create_appointment(self, customer_id, start, end, metadata) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append((customer_id, start, end, metadata))
        return f"{self.kind.value}-appt-{next(self._ids)}"

    async def list_appointments(self, start_date: date, end_date: date) -> list[RemoteAppointment]:
        return list(self._value(self.appointments))

    async def cancel_appointment(self, external_id: str) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(external_id)

    async def _call(self, method, path, **kwargs):
        raise AssertionError("fake backends never perform HTTP calls")


@pytest.fixture
def backends() -> dict[BackendKind, FakeBackend]:
    """Fake backends by kind; tests populate the ones they need."""
    return {}


@pytest.fixture
def backend_factory(backends):
    def factory(kind, credential, timezone):
        return backends[BackendKind(kind)]

    return factory
