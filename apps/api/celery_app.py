"""Celery application for out-of-band period summary recalculation."""

import os
from celery import Celery

# Use Redis as broker and backend
redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")
interval_minutes = int(os.getenv("RECALCULATION_INTERVAL_MINUTES", "60"))

celery_app = Celery(
    "walletracker",
    broker=redis_url,
    backend=redis_url,
    include=["apps.api.tasks.recalculation_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Jakarta",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,
    worker_prefetch_multiplier=1,  # Recalculations run one at a time per worker
    result_expires=3600 * 24,
)

celery_app.conf.task_routes = {
    "apps.api.tasks.recalculation_tasks.*": {"queue": "recalculation"},
}

celery_app.conf.beat_schedule = {
    "recalculate-all-period-summaries": {
        "task": "apps.api.tasks.recalculation_tasks.recalculate_all_summaries",
        "schedule": interval_minutes * 60.0,
    },
}

if __name__ == "__main__":
    celery_app.start()
