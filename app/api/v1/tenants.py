"""Tenant and backend credential endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func, select

from app.deps import DbSession
from app.models.appointment import Appointment
from app.models.credential import BackendCredential, BackendKind
from app.models.tenant import Tenant
from app.schemas.tenant import CredentialRead, CredentialUpsert, TenantCreate, TenantRead, TenantUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[TenantRead])
async def list_tenants(
    db: DbSession,
    limit: int = 100,
    offset: int = 0,
) -> list[Tenant]:
    """List all tenants."""
    result = await db.execute(
        select(Tenant)
        .order_by(Tenant.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


@router.get("/{tenant_id}", response_model=TenantRead)
async def get_tenant(
    tenant_id: UUID,
    db: DbSession,
) -> Tenant:
    """Get a specific tenant."""
    return await _get_tenant_or_404(db, tenant_id)


@router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    data: TenantCreate,
    db: DbSession,
) -> Tenant:
    """Create a new tenant."""
    tenant = Tenant(**data.model_dump())
    db.add(tenant)
    await db.commit()
    await db.refresh(tenant)
    return tenant


@router.patch("/{tenant_id}", response_model=TenantRead)
async def update_tenant(
    tenant_id: UUID,
    data: TenantUpdate,
    db: DbSession,
) -> Tenant:
    """Update a tenant's hours, backend selection or deposit policy."""
    tenant = await _get_tenant_or_404(db, tenant_id)
    update_data = data.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(tenant, key, value)

    await db.commit()
    await db.refresh(tenant)
    return tenant


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant_id: UUID,
    db: DbSession,
) -> None:
    """Delete a tenant and its credentials.

    Refused with 409 while the tenant still has appointments, cancelled
    ones included: appointment history is never deleted.
    """
    tenant = await _get_tenant_or_404(db, tenant_id)
    appointment_count = await db.scalar(
        select(func.count()).select_from(Appointment).where(Appointment.tenant_id == tenant_id)
    )
    if appointment_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Tenant has {appointment_count} appointment(s) and cannot be deleted",
        )
    # Cascades to credentials
    await db.delete(tenant)
    await db.commit()


# ── Backend credentials ──


@router.get("/{tenant_id}/credentials", response_model=list[CredentialRead])
async def list_credentials(
    tenant_id: UUID,
    db: DbSession,
) -> list[BackendCredential]:
    """List a tenant's connected backends (secrets redacted)."""
    await _get_tenant_or_404(db, tenant_id)
    result = await db.execute(
        select(BackendCredential)
        .where(BackendCredential.tenant_id == tenant_id)
        .order_by(BackendCredential.kind)
    )
    return list(result.scalars().all())


@router.put("/{tenant_id}/credentials/{kind}", response_model=CredentialRead)
async def upsert_credential(
    tenant_id: UUID,
    kind: BackendKind,
    data: CredentialUpsert,
    db: DbSession,
) -> BackendCredential:
    """Connect a backend, replacing any previous credential of that kind."""
    await _get_tenant_or_404(db, tenant_id)
    result = await db.execute(
        select(BackendCredential).where(
            BackendCredential.tenant_id == tenant_id,
            BackendCredential.kind == kind.value,
        )
    )
    credential = result.scalar_one_or_none()

    if credential is None:
        credential = BackendCredential(tenant_id=tenant_id, kind=kind.value)
        db.add(credential)

    credential.secret_bundle = data.secret_bundle
    credential.calendar_id = data.calendar_id
    credential.is_active = data.is_active

    await db.commit()
    await db.refresh(credential)
    logger.info("Tenant %s: %s credential saved (active=%s)", tenant_id, kind.value, data.is_active)
    return credential


@router.delete("/{tenant_id}/credentials/{kind}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    tenant_id: UUID,
    kind: BackendKind,
    db: DbSession,
) -> None:
    """Disconnect a backend. Appointments keep their external ids."""
    result = await db.execute(
        select(BackendCredential).where(
            BackendCredential.tenant_id == tenant_id,
            BackendCredential.kind == kind.value,
        )
    )
    credential = result.scalar_one_or_none()

    if not credential:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credential not found",
        )

    await db.delete(credential)
    await db.commit()


async def _get_tenant_or_404(db, tenant_id: UUID) -> Tenant:
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )
    return tenant
