"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.booking.config_resolver import BookingConfig, TenantConfigResolver


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Tenant scoping comes from the ``X-Tenant-ID`` header on every booking call."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        return UUID(x_tenant_id.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"X-Tenant-ID is not a valid UUID: {x_tenant_id!r}",
        )


async def get_booking_config(
    tenant_id: Annotated[UUID, Depends(get_tenant_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingConfig:
    """Resolved booking configuration of the calling tenant (404 if unknown)."""
    return await TenantConfigResolver(db).get_booking_config(tenant_id)


# Type aliases for dependency injection
TenantId = Annotated[UUID, Depends(get_tenant_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
TenantConfig = Annotated[BookingConfig, Depends(get_booking_config)]
