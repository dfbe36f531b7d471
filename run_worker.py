#!/usr/bin/env python
"""Start the arq worker that runs tenant appointment syncs.

Besides queued ``sync_tenant_appointments`` jobs, the worker fires the
hourly cron that enqueues one sync per tenant.
"""

import asyncio
import logging

from arq.worker import create_worker

from app.config import get_settings
from app.workers.tasks import WorkerSettings

logging.basicConfig(level=get_settings().log_level)


async def main():
    # Worker.main() needs a running loop on Python 3.12+
    worker = create_worker(WorkerSettings)
    await worker.main()


if __name__ == "__main__":
    asyncio.run(main())
