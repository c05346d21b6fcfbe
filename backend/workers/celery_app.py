"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "freightops",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.lifecycle.*": {"queue": "lifecycle"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        # ── Dashboard ───────────────────────────────────────────────
        "refresh-metrics-snapshot-1m": {
            "task": "workers.lifecycle.refresh_metrics_snapshot",
            "schedule": crontab(minute="*"),
            "options": {"queue": "lifecycle"},
        },
        # ── Monitoring ──────────────────────────────────────────────
        "monitoring-heartbeat": {
            "task": "workers.lifecycle.monitoring_heartbeat",
            "schedule": crontab(minute=f"*/{settings.monitoring_heartbeat_minutes}"),
            "options": {"queue": "lifecycle"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"], related_name="lifecycle")
