"""Celery application for the stock sync worker."""

from datetime import timedelta

from celery import Celery

from stock_sync_service.config import get_settings
from stock_sync_service.log_config import configure_logging

settings = get_settings()
configure_logging(settings)

# Create Celery app
app = Celery(
    "sync_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "sync_worker.tasks.stock_sync",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=False,
    task_default_queue="sync",
    task_routes={
        "sync_worker.tasks.*": {"queue": "sync"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "scheduled-stock-sync": {
        "task": "sync_worker.tasks.stock_sync.scheduled_stock_sync",
        "schedule": timedelta(minutes=settings.sync_interval_minutes),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "sync"])


if __name__ == "__main__":
    run()
