"""Booking schema: tenants, backend credentials and appointments.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tenants
    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="America/New_York"),
        sa.Column("business_hours_start", sa.Time, nullable=False, server_default="09:00"),
        sa.Column("business_hours_end", sa.Time, nullable=False, server_default="17:00"),
        sa.Column("active_weekdays", postgresql.JSONB, server_default=sa.text("'[0, 1, 2, 3, 4]'::jsonb")),
        sa.Column("appointment_duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("booking_system", sa.String(20), nullable=True),
        sa.Column("shadow_backends", postgresql.JSONB, nullable=True),
        sa.Column("mirror_shadow_events", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("deposit_required", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("deposit_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("settings", postgresql.JSONB, default={}),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Backend credentials
    op.create_table(
        "backend_credentials",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("secret_bundle", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("calendar_id", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "kind", name="uq_backend_credentials_tenant_kind"),
    )

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=False, server_default=""),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("appointment_date", sa.Date, nullable=False),
        sa.Column("appointment_time", sa.Time, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("purpose", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("source", sa.String(30), nullable=False, server_default="local"),
        sa.Column("confirmation_code", sa.String(16), nullable=False),
        sa.Column("ghl_appointment_id", sa.String(255), nullable=True),
        sa.Column("hubspot_meeting_id", sa.String(255), nullable=True),
        sa.Column("vagaro_appointment_id", sa.String(255), nullable=True),
        sa.Column("google_event_id", sa.String(1024), nullable=True),
        sa.Column("zoho_event_id", sa.String(255), nullable=True),
        sa.Column("deposit_status", sa.String(20), nullable=False, server_default="not_required"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("confirmation_code", name="uq_appointments_confirmation_code"),
    )
    op.create_index("ix_appointments_tenant_id", "appointments", ["tenant_id"])
    op.create_index("ix_appointments_tenant_date", "appointments", ["tenant_id", "appointment_date"])

    # One non-cancelled appointment per (tenant, date, time)
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["tenant_id", "appointment_date", "appointment_time"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    # Sync dedup lookups
    op.create_index("ix_appointments_ghl_id", "appointments", ["tenant_id", "ghl_appointment_id"])
    op.create_index("ix_appointments_hubspot_id", "appointments", ["tenant_id", "hubspot_meeting_id"])
    op.create_index("ix_appointments_vagaro_id", "appointments", ["tenant_id", "vagaro_appointment_id"])
    op.create_index("ix_appointments_google_id", "appointments", ["tenant_id", "google_event_id"])
    op.create_index("ix_appointments_zoho_id", "appointments", ["tenant_id", "zoho_event_id"])


def downgrade() -> None:
    op.drop_table("appointments")
    op.drop_table("backend_credentials")
    op.drop_table("tenants")
