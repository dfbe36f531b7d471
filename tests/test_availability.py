"""Tests for slot aggregation across the local store, the system of record and shadows."""

import asyncio
from datetime import date, datetime, time
from uuid import uuid4

import pytest

from app.core.errors import AuthFailure, NotFound, RemoteUnavailable
from app.models.credential import BackendKind
from app.services.backends.base import BusyInterval
from app.services.booking.availability import (
    AvailabilityAggregator,
    format_display_date,
    format_display_time,
    generate_grid,
)
from app.services.booking.config_resolver import TenantConfigResolver
from app.services.booking.orchestrator import BookingOrchestrator

from conftest import MONDAY, FakeBackend, add_credential, create_tenant


def _times(slots):
    return [slot.time for slot in slots]


def _full_grid():
    return [time(h, m) for h in range(9, 17) for m in (0, 30)]


# ─── Grid ────────────────────────────────────────────────────────────────────


class TestGrid:
    @pytest.mark.asyncio
    async def test_slot_must_fit_before_close(self, db):
        tenant = await create_tenant(db, business_hours_end=time(10, 45), appointment_duration_minutes=30)
        config = await TenantConfigResolver(db).get_booking_config(tenant.id)

        assert generate_grid(config, MONDAY) == [time(9, 0), time(9, 30), time(10, 0)]

    @pytest.mark.asyncio
    async def test_inactive_weekday_is_empty(self, db):
        tenant = await create_tenant(db)
        config = await TenantConfigResolver(db).get_booking_config(tenant.id)

        assert generate_grid(config, date(2025, 6, 1)) == []  # Sunday

    def test_display_formats(self):
        assert format_display_date(MONDAY) == "Monday, June 2"
        assert format_display_time(time(9, 0)) == "9:00 AM"
        assert format_display_time(time(12, 30)) == "12:30 PM"
        assert format_display_time(time(0, 15)) == "12:15 AM"


# ─── Local-only ──────────────────────────────────────────────────────────────


class TestLocalOnly:
    @pytest.mark.asyncio
    async def test_full_day_then_booked_slot_removed(self, db, backend_factory):
        tenant = await create_tenant(db, name="Acme")
        aggregator = AvailabilityAggregator(db, backend_factory)

        slots = await aggregator.get_available_slots(tenant.id, MONDAY)
        assert _times(slots) == _full_grid()
        assert len(slots) == 16
        assert all(slot.source == "local" for slot in slots)

        result = await BookingOrchestrator(db, backend_factory).book_appointment(
            tenant.id,
            {
                "customer_name": "Jane Doe",
                "customer_phone": "+15550001111",
                "appointment_date": MONDAY,
                "appointment_time": time(10, 0),
            },
        )
        assert result.success

        slots = await aggregator.get_available_slots(tenant.id, MONDAY)
        assert _times(slots) == [t for t in _full_grid() if t != time(10, 0)]

    @pytest.mark.asyncio
    async def test_long_local_appointment_blocks_every_overlapped_slot(self, db, backend_factory):
        tenant = await create_tenant(db)
        await BookingOrchestrator(db, backend_factory).book_appointment(
            tenant.id,
            {
                "customer_name": "Jane Doe",
                "customer_phone": "555",
                "appointment_date": MONDAY,
                "appointment_time": time(11, 0),
                "duration_minutes": 90,
            },
        )

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        for blocked in (time(11, 0), time(11, 30), time(12, 0)):
            assert blocked not in _times(slots)
        assert time(12, 30) in _times(slots)

    @pytest.mark.asyncio
    async def test_is_slot_available(self, db, backend_factory):
        tenant = await create_tenant(db)
        aggregator = AvailabilityAggregator(db, backend_factory)

        assert await aggregator.is_slot_available(tenant.id, MONDAY, time(9, 0))
        assert not await aggregator.is_slot_available(tenant.id, MONDAY, time(9, 15))
        assert not await aggregator.is_slot_available(tenant.id, MONDAY, time(17, 0))

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, db, backend_factory):
        with pytest.raises(NotFound):
            await AvailabilityAggregator(db, backend_factory).get_available_slots(uuid4(), MONDAY)


# ─── System of record ────────────────────────────────────────────────────────


class TestSystemOfRecord:
    @pytest.mark.asyncio
    async def test_intersects_with_remote_free_slots(self, db, backends, backend_factory):
        tenant = await create_tenant(db, name="Beta")
        await add_credential(db, tenant, BackendKind.GHL)
        backends[BackendKind.GHL] = FakeBackend(BackendKind.GHL, slots=[time(9, 0), time(9, 30)])

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots) == [time(9, 0), time(9, 30)]
        assert {slot.source for slot in slots} == {"ghl"}

    @pytest.mark.asyncio
    async def test_remote_slot_outside_business_hours_ignored(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.GHL)
        backends[BackendKind.GHL] = FakeBackend(BackendKind.GHL, slots=[time(8, 0), time(16, 30), time(17, 0)])

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots) == [time(16, 30)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            RemoteUnavailable("down"),
            AuthFailure("bad key"),
            ValueError("bad payload"),
            KeyError("slots"),
            AttributeError("'str' object has no attribute 'get'"),
            IndexError("list index out of range"),
        ],
    )
    async def test_failure_degrades_to_local_only(self, db, backends, backend_factory, error):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.GHL)
        backends[BackendKind.GHL] = FakeBackend(BackendKind.GHL, slots=error)

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots) == _full_grid()
        assert {slot.source for slot in slots} == {"local"}

    @pytest.mark.asyncio
    async def test_timeout_degrades_to_local_only(self, db, backends, backend_factory, monkeypatch):
        from app.services.booking import availability

        class SlowBackend(FakeBackend):
            async def list_available_slots(self, day):
                await asyncio.sleep(5)
                return [time(9, 0)]

        monkeypatch.setattr(availability.settings, "backend_timeout_seconds", 0.05)
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.GHL)
        backends[BackendKind.GHL] = SlowBackend(BackendKind.GHL)

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert len(slots) == 16


# ─── Shadows ─────────────────────────────────────────────────────────────────


class TestShadows:
    @pytest.mark.asyncio
    async def test_shadow_failure_blocks_nothing(self, db, backends, backend_factory):
        tenant = await create_tenant(db, name="Gamma")
        await add_credential(db, tenant, BackendKind.GOOGLE)
        backends[BackendKind.GOOGLE] = FakeBackend(BackendKind.GOOGLE, busy=RemoteUnavailable("network"))

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots) == _full_grid()

    @pytest.mark.asyncio
    async def test_malformed_shadow_payload_blocks_nothing(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.ZOHO)
        backends[BackendKind.ZOHO] = FakeBackend(BackendKind.ZOHO, busy=AttributeError("no attribute 'get'"))

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert len(slots) == 16

    @pytest.mark.asyncio
    async def test_busy_interval_removes_overlapping_slots(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.GOOGLE)
        backends[BackendKind.GOOGLE] = FakeBackend(
            BackendKind.GOOGLE,
            busy=[BusyInterval(datetime(2025, 6, 2, 13, 15), datetime(2025, 6, 2, 14, 0))],
        )

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert time(13, 0) not in _times(slots)
        assert time(13, 30) not in _times(slots)
        assert time(14, 0) in _times(slots)
        assert len(slots) == 14

    @pytest.mark.asyncio
    async def test_abutting_busy_interval_does_not_block(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.ZOHO)
        backends[BackendKind.ZOHO] = FakeBackend(
            BackendKind.ZOHO,
            busy=[BusyInterval(datetime(2025, 6, 2, 9, 30), datetime(2025, 6, 2, 10, 0))],
        )

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert time(9, 0) in _times(slots)
        assert time(9, 30) not in _times(slots)
        assert time(10, 0) in _times(slots)

    @pytest.mark.asyncio
    async def test_one_shadow_failing_does_not_hide_another(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.GOOGLE)
        await add_credential(db, tenant, BackendKind.ZOHO)
        backends[BackendKind.GOOGLE] = FakeBackend(BackendKind.GOOGLE, busy=RemoteUnavailable("down"))
        backends[BackendKind.ZOHO] = FakeBackend(
            BackendKind.ZOHO,
            busy=[BusyInterval(datetime(2025, 6, 2, 9, 0), datetime(2025, 6, 2, 9, 30))],
        )

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots)[0] == time(9, 30)
        assert len(slots) == 15

    @pytest.mark.asyncio
    async def test_combined_result_sorted_without_duplicates(self, db, backends, backend_factory):
        tenant = await create_tenant(db)
        await add_credential(db, tenant, BackendKind.HUBSPOT)
        await add_credential(db, tenant, BackendKind.GOOGLE)
        backends[BackendKind.HUBSPOT] = FakeBackend(
            BackendKind.HUBSPOT,
            slots=[time(15, 0), time(9, 0), time(15, 0), time(11, 30), time(10, 0)],
        )
        backends[BackendKind.GOOGLE] = FakeBackend(
            BackendKind.GOOGLE,
            busy=[BusyInterval(datetime(2025, 6, 2, 10, 0), datetime(2025, 6, 2, 10, 30))],
        )

        slots = await AvailabilityAggregator(db, backend_factory).get_available_slots(tenant.id, MONDAY)

        assert _times(slots) == [time(9, 0), time(11, 30), time(15, 0)]
