"""Arq task definitions for periodic appointment reconciliation."""

import logging
from datetime import datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from arq import ArqRedis, cron
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.core.errors import BookingError
from app.models.tenant import Tenant
from app.services.booking.sync import ReconciliationSync
from app.workers.settings import redis_settings

settings = get_settings()
logger = logging.getLogger(__name__)


# Create engine for worker (separate from web app)
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncSession:
    """Get database session for worker."""
    return async_session_maker()


async def sync_tenant_appointments(ctx: dict, tenant_id: str, days: int | None = None) -> dict:
    """
    Reconcile one tenant's remote appointments into the local store.

    Args:
        ctx: Arq context
        tenant_id: UUID of the tenant
        days: Look-ahead window from today (tenant timezone)

    Returns:
        Dict with the sync counters, or an error
    """
    tenant_uuid = UUID(tenant_id)
    days = settings.sync_lookahead_days if days is None else days
    db = await get_db()

    try:
        tenant = await db.get(Tenant, tenant_uuid)
        if not tenant:
            return {"error": "Tenant not found"}

        start_date = datetime.now(ZoneInfo(tenant.timezone)).date()
        end_date = start_date + timedelta(days=days)

        result = await ReconciliationSync(db).sync_appointments(tenant_uuid, start_date, end_date)
        return result.model_dump()

    except BookingError as e:
        logger.warning("Appointment sync skipped: tenant=%s (%s)", tenant_id, e.message)
        return {"error": e.message}

    except Exception as e:
        logger.exception("Appointment sync failed: tenant=%s", tenant_id)
        return {"error": str(e)}

    finally:
        await db.close()


async def sync_all_tenants(ctx: dict) -> dict:
    """Cron job: enqueue an appointment sync for every tenant."""
    db = await get_db()
    try:
        result = await db.execute(select(Tenant.id))
        tenant_ids = result.scalars().all()

        redis: ArqRedis | None = ctx.get("redis")  # type: ignore[assignment]
        if not redis:
            logger.error("No Redis in ctx for cron job")
            return {"error": "No Redis"}

        enqueued = 0
        for tenant_id in tenant_ids:
            await redis.enqueue_job("sync_tenant_appointments", str(tenant_id))
            enqueued += 1

        logger.info("Cron: enqueued appointment sync for %d tenants", enqueued)
        return {"enqueued": enqueued}

    finally:
        await db.close()


# ── Lifecycle ───────────────────────────────────────────────────────


async def startup(ctx: dict) -> None:
    """Worker startup hook."""
    logger.info("Worker starting up...")


async def shutdown(ctx: dict) -> None:
    """Worker shutdown hook."""
    logger.info("Worker shutting down...")
    await engine.dispose()


class WorkerSettings:
    """Arq worker settings."""

    functions = [sync_tenant_appointments]
    cron_jobs = [
        cron(sync_all_tenants, minute={settings.sync_cron_minute}),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings
    max_jobs = 10
    job_timeout = 300  # 5 minutes max per tenant sync
    keep_result = 3600  # Keep results for 1 hour
