"""Factory for calendar backend instances."""

from __future__ import annotations

from app.core.errors import NotConfigured
from app.models.credential import BackendCredential, BackendKind
from app.services.backends.base import CalendarBackend
from app.services.backends.ghl import GHLBackend
from app.services.backends.google_calendar import GoogleCalendarBackend
from app.services.backends.hubspot import HubSpotBackend
from app.services.backends.vagaro import VagaroBackend
from app.services.backends.zoho import ZohoBackend

BACKENDS: dict[BackendKind, type[CalendarBackend]] = {
    BackendKind.GHL: GHLBackend,
    BackendKind.HUBSPOT: HubSpotBackend,
    BackendKind.VAGARO: VagaroBackend,
    BackendKind.GOOGLE: GoogleCalendarBackend,
    BackendKind.ZOHO: ZohoBackend,
}


def get_backend(kind: BackendKind | str, credential: BackendCredential, timezone: str) -> CalendarBackend:
    """Create the right CalendarBackend implementation for a backend kind."""
    try:
        backend_cls = BACKENDS[BackendKind(kind)]
    except (KeyError, ValueError):
        raise NotConfigured(f"Unknown calendar backend: {kind}")
    return backend_cls(credential, timezone)


def can_be_system_of_record(kind: BackendKind | str) -> bool:
    return BACKENDS[BackendKind(kind)].can_be_system_of_record
