"""Booking core: configuration, availability, booking, sync and dashboard."""

from app.services.booking.availability import AvailabilityAggregator
from app.services.booking.config_resolver import BookingConfig, TenantConfigResolver
from app.services.booking.dashboard import DashboardService, get_source_badge
from app.services.booking.orchestrator import BookingOrchestrator
from app.services.booking.sync import ReconciliationSync

__all__ = [
    "AvailabilityAggregator",
    "BookingConfig",
    "BookingOrchestrator",
    "DashboardService",
    "ReconciliationSync",
    "TenantConfigResolver",
    "get_source_badge",
]
