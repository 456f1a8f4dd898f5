# otohub_billing/workers/lifecycle_worker.py
import asyncio
from typing import Any, Dict

from celery import Task

from otohub_billing.workers.celery_app import celery_app
from otohub_billing.core.config import settings
from otohub_billing.core.logging import logger


class LifecycleTask(Task):
    """Custom task class for scheduler ticks"""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure"""
        logger.error(f"Lifecycle tick {task_id} failed: {exc}", exc_info=True)


@celery_app.task(bind=True, base=LifecycleTask, name="run_lifecycle_tick")
def run_lifecycle_tick_task(self) -> Dict[str, Any]:
    """Execute one lifecycle tick in a worker"""
    return asyncio.run(_run_tick_async())


async def _run_tick_async() -> Dict[str, Any]:
    """Each run gets its own engine: asyncio.run closes the loop the pool was bound to"""
    from otohub_billing.db.database import build_engine, build_session_factory
    from otohub_billing.services.lifecycle_scheduler import LifecycleScheduler

    engine = build_engine(settings.DATABASE_URL)
    try:
        report = await LifecycleScheduler(build_session_factory(engine)).run_tick()
    finally:
        await engine.dispose()

    logger.info(
        f"Lifecycle tick evaluated {report.evaluated} tenant(s), "
        f"{len(report.transitions)} transition(s)"
    )
    return report.to_dict()
