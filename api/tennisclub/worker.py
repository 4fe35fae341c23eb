"""Celery worker configuration and maintenance tasks.

Payment maintenance jobs run here on operator request, outside the request
cycle. Each task opens its own database session.
"""

import asyncio
import logging
from dataclasses import asdict

from celery import Celery

from tennisclub.core.config import settings
from tennisclub.core.database import async_session_factory, engine
from tennisclub.services.orphans import cleanup_duplicate_payments, cleanup_orphaned_payments

logger = logging.getLogger(__name__)

celery_app = Celery(
    "tennisclub",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="Asia/Manila",
    enable_utc=True,
)


async def _run_orphan_cleanup() -> dict:
    async with async_session_factory() as db:
        report = await cleanup_orphaned_payments(db)
    # Each task runs in a fresh event loop; pooled connections cannot outlive it
    await engine.dispose()
    return asdict(report)


async def _run_duplicate_cleanup() -> dict:
    async with async_session_factory() as db:
        report = await cleanup_duplicate_payments(db)
    await engine.dispose()
    return asdict(report)


@celery_app.task(name="tennisclub.cleanup_orphaned_payments")
def cleanup_orphaned_payments_task() -> dict:
    report = asyncio.run(_run_orphan_cleanup())
    logger.info("Orphaned payment cleanup finished: %s cleaned", report["cleaned"])
    return report


@celery_app.task(name="tennisclub.cleanup_duplicate_payments")
def cleanup_duplicate_payments_task() -> dict:
    report = asyncio.run(_run_duplicate_cleanup())
    logger.info("Duplicate payment cleanup finished: %s removed", report["cleaned"])
    return report
