"""
Backend credential model.

Stores, per tenant and backend kind, the opaque secret bundle the matching
adapter needs. The booking core reads these rows but never creates or
mutates them: credentials are provisioned by the connection flow
(direct API keys, or a Nango connection reference for OAuth backends).

Secret bundle shapes by kind:
- ghl: {"api_key", "location_id"}
- hubspot: {"access_token", "meeting_slug"?}
- vagaro: {"client_id", "client_secret", "merchant_id", "region"?, "service_id"?}
- google / zoho: {"nango_connection_id", "provider_config_key"}
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
import uuid

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.tenant import Tenant


class BackendKind(str, Enum):
    """Remote calendar backends a tenant can connect."""

    GHL = "ghl"
    HUBSPOT = "hubspot"
    VAGARO = "vagaro"
    GOOGLE = "google"
    ZOHO = "zoho"


class BackendCredential(Base):
    """Credentials for one remote calendar backend of a tenant."""

    __tablename__ = "backend_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # ghl, hubspot, vagaro, google, zoho
    secret_bundle: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="credentials")

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", name="uq_backend_credentials_tenant_kind"),
    )
