"""
Background coordination jobs using Celery.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shipping.core.celery_app import celery_app
from shipping.core.config import settings
from shipping.core.database import create_engine_for, create_session_factory
from shipping.models.base import utcnow
from shipping.services.event_publisher import EventPublisher
from shipping.services.manual_coordination import ManualCoordinationService
from shipping.services.snapshot_recorder import SnapshotRecorder

logger = logging.getLogger(__name__)


@asynccontextmanager
async def job_sessions() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session factory on a fresh engine that is disposed when the job ends."""
    # The module-level engine is bound to the API process loop
    engine = create_engine_for(settings.DATABASE_URL)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


def run_async(coro):
    """Run async coroutine in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True, name="shipping.tasks.coordination.sweep_manual_tasks")
def sweep_manual_tasks(self, now: Optional[str] = None) -> dict[str, Any]:
    """
    Send due reminders and overdue alerts for open manual tasks.

    Args:
        now: Optional ISO timestamp (naive UTC) to sweep as of

    Returns:
        Counts of reminders sent and overdue alerts raised
    """
    moment = datetime.fromisoformat(now) if now else None
    return run_async(_sweep_manual_tasks(moment))


async def _sweep_manual_tasks(now: Optional[datetime] = None) -> dict[str, Any]:
    # Each job runs on its own loop, so it gets its own publisher.
    publisher = EventPublisher()
    async with job_sessions() as session_maker:
        async with session_maker() as db:
            service = ManualCoordinationService(db, publisher=publisher)
            counts = await service.run_sweep(now)
    await publisher.drain()
    return {"status": "success", **counts}


@celery_app.task(bind=True, name="shipping.tasks.coordination.purge_expired_snapshots")
def purge_expired_snapshots(self, retention_days: Optional[int] = None) -> dict[str, Any]:
    """
    Delete snapshots older than the retention window.

    Args:
        retention_days: Override for SNAPSHOT_RETENTION_DAYS

    Returns:
        Number of snapshots purged and the cutoff used
    """
    days = retention_days if retention_days is not None else settings.SNAPSHOT_RETENTION_DAYS
    return run_async(_purge_expired_snapshots(days))


async def _purge_expired_snapshots(retention_days: int) -> dict[str, Any]:
    cutoff = utcnow() - timedelta(days=retention_days)
    async with job_sessions() as session_maker:
        async with session_maker() as db:
            purged = await SnapshotRecorder(db).purge_older_than(cutoff)
    return {"status": "success", "purged": purged, "cutoff": cutoff.isoformat()}
