"""
Lifecycle Workers — periodic jobs over the shipment store.

  1. Metrics snapshot: recompute dashboard KPIs and log them for trend review.
  2. Monitoring heartbeat: reclassify ETA risk for shipments in monitoring
     so labels age correctly between tracking updates.

Schedule: See celery_app.py beat_schedule
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


def _event_publisher(settings):
    from lifecycle.notifications import RedisEventPublisher

    return RedisEventPublisher(redis_url=settings.redis_url, channel=settings.lifecycle_events_channel)


@celery_app.task(
    name="workers.lifecycle.refresh_metrics_snapshot",
    bind=True,
    max_retries=2,
    default_retry_delay=30,
)
def refresh_metrics_snapshot(self):
    """
    Recompute fleet metrics and log the headline KPIs.

    Returns the snapshot so ad-hoc runs can inspect it.
    """
    run_id = self.request.id or "manual"
    logger.info("metrics.snapshot.started", run_id=run_id)

    async def _refresh():
        from core.config import get_settings
        from lifecycle.policy import policy_from_settings
        from lifecycle.service import snapshot_metrics

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

            async with async_session() as db:
                snapshot = await snapshot_metrics(db, policy=policy_from_settings(settings))

            payload = snapshot.as_dict()
            logger.info(
                "metrics.snapshot.completed",
                total_shipments=payload["total_shipments"],
                shipments_at_risk=payload["shipments_at_risk"],
                completed_shipments=payload["completed_shipments"],
            )
            return payload
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_refresh())
    except Exception as exc:
        logger.error("metrics.snapshot.failed", run_id=run_id, error=str(exc))
        raise


@celery_app.task(
    name="workers.lifecycle.monitoring_heartbeat",
    bind=True,
    max_retries=1,
    default_retry_delay=60,
    acks_late=True,
)
def monitoring_heartbeat(self):
    """Reclassify risk for every shipment in monitoring; failures are per shipment."""
    run_id = self.request.id or "manual"
    logger.info("monitoring.heartbeat.started", run_id=run_id)

    async def _heartbeat():
        from core.config import get_settings
        from lifecycle.policy import policy_from_settings
        from lifecycle.service import refresh_monitoring_risk

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

            async with async_session() as db:
                result = await refresh_monitoring_risk(
                    db,
                    policy=policy_from_settings(settings),
                    publisher=_event_publisher(settings),
                )
            logger.info(
                "monitoring.heartbeat.completed",
                matched=result["matched"],
                updated=result["updated"],
                failed=len(result["failed"]),
            )
            return result
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_heartbeat())
    except Exception as exc:
        logger.error("monitoring.heartbeat.failed", run_id=run_id, error=str(exc))
        raise
