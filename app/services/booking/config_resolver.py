"""
Tenant booking configuration resolver.

Loads a tenant and its credentials once and produces an explicit, validated
``BookingConfig``. Nothing downstream reads tenant columns or credential
bundles directly.

System-of-record precedence:
1. ``tenant.booking_system`` when set ("none" forces local-only)
2. inferred from active credentials: hubspot, then ghl, then vagaro
3. local-only
"""

from __future__ import annotations

import logging
from datetime import time
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound, ValidationError
from app.models.credential import BackendCredential, BackendKind
from app.models.tenant import Tenant
from app.services.backends.factory import can_be_system_of_record

logger = logging.getLogger(__name__)

LOCAL_ONLY = "none"

# Inference order when the tenant has no explicit booking_system
SYSTEM_OF_RECORD_PRECEDENCE = (BackendKind.HUBSPOT, BackendKind.GHL, BackendKind.VAGARO)
DEFAULT_SHADOW_KINDS = (BackendKind.GOOGLE, BackendKind.ZOHO)


class BookingConfig(BaseModel):
    """Everything the booking core needs to know about a tenant."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    tenant_id: UUID
    tenant_name: str
    timezone: str
    business_hours_start: time
    business_hours_end: time
    active_weekdays: frozenset[int]
    slot_duration_minutes: int = Field(gt=0, le=24 * 60)

    system_of_record: BackendKind | None = None
    shadow_kinds: tuple[BackendKind, ...] = ()
    credentials: dict[BackendKind, BackendCredential] = Field(default_factory=dict, repr=False)

    deposit_required: bool = False
    deposit_amount: Decimal | None = None
    mirror_shadow_events: bool = False

    @model_validator(mode="after")
    def _check(self) -> "BookingConfig":
        if self.business_hours_start >= self.business_hours_end:
            raise ValueError("business hours must start before they end")
        if any(day < 0 or day > 6 for day in self.active_weekdays):
            raise ValueError("active weekdays must be between 0 (Monday) and 6 (Sunday)")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {self.timezone!r}") from e
        if self.system_of_record is not None and self.system_of_record in self.shadow_kinds:
            raise ValueError("the system of record cannot also be a shadow backend")
        if self.deposit_required and not self.deposit_amount:
            raise ValueError("a deposit amount is required when deposits are enabled")
        return self

    @property
    def system(self) -> str:
        """Name of the authoritative write path for display."""
        return self.system_of_record.value if self.system_of_record else "local"


class TenantConfigResolver:
    """Read-only loader of ``BookingConfig``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_booking_config(self, tenant_id: UUID) -> BookingConfig:
        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound(f"Tenant {tenant_id} not found")

        result = await self.db.execute(
            select(BackendCredential).where(
                BackendCredential.tenant_id == tenant_id,
                BackendCredential.is_active.is_(True),
            )
        )
        credentials: dict[BackendKind, BackendCredential] = {}
        for credential in result.scalars().all():
            try:
                credentials[BackendKind(credential.kind)] = credential
            except ValueError:
                logger.warning("Tenant %s: ignoring credential of unknown kind %r", tenant_id, credential.kind)

        system_of_record = self._resolve_system_of_record(tenant, credentials)
        shadow_kinds = self._resolve_shadows(tenant, credentials, system_of_record)

        try:
            return BookingConfig(
                tenant_id=tenant.id,
                tenant_name=tenant.name,
                timezone=tenant.timezone,
                business_hours_start=tenant.business_hours_start,
                business_hours_end=tenant.business_hours_end,
                active_weekdays=frozenset(tenant.active_weekdays or []),
                slot_duration_minutes=tenant.appointment_duration_minutes,
                system_of_record=system_of_record,
                shadow_kinds=shadow_kinds,
                credentials={
                    kind: credentials[kind]
                    for kind in (system_of_record, *shadow_kinds)
                    if kind is not None
                },
                deposit_required=tenant.deposit_required,
                deposit_amount=tenant.deposit_amount,
                mirror_shadow_events=tenant.mirror_shadow_events,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid booking configuration for tenant {tenant_id}: {e}") from e

    @staticmethod
    def _resolve_system_of_record(
        tenant: Tenant,
        credentials: dict[BackendKind, BackendCredential],
    ) -> BackendKind | None:
        explicit = (tenant.booking_system or "").strip().lower()
        if explicit == LOCAL_ONLY:
            return None

        if explicit:
            try:
                kind = BackendKind(explicit)
            except ValueError:
                raise ValidationError(f"Unknown booking system {tenant.booking_system!r}")
            if not can_be_system_of_record(kind):
                raise ValidationError(f"{kind.value} cannot be a system of record")
            if kind not in credentials:
                logger.warning(
                    "Tenant %s: booking_system=%s has no active credential, using local-only",
                    tenant.id,
                    kind.value,
                )
                return None
            return kind

        for kind in SYSTEM_OF_RECORD_PRECEDENCE:
            if kind in credentials:
                return kind
        return None

    @staticmethod
    def _resolve_shadows(
        tenant: Tenant,
        credentials: dict[BackendKind, BackendCredential],
        system_of_record: BackendKind | None,
    ) -> tuple[BackendKind, ...]:
        if tenant.shadow_backends is not None:
            configured = []
            for raw in tenant.shadow_backends:
                try:
                    configured.append(BackendKind(raw))
                except ValueError:
                    raise ValidationError(f"Unknown shadow backend {raw!r}")
        else:
            configured = list(DEFAULT_SHADOW_KINDS)

        shadows = []
        for kind in configured:
            if kind == system_of_record or kind in shadows:
                continue
            if kind not in credentials:
                if tenant.shadow_backends is not None:
                    logger.warning(
                        "Tenant %s: shadow backend %s has no active credential, skipping",
                        tenant.id,
                        kind.value,
                    )
                continue
            shadows.append(kind)
        return tuple(shadows)
