"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Run with:
    celery -A resto.celery_worker worker --loglevel=info
"""

from celery import Celery

from resto.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "resto_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["resto.tasks"]
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Exports hold a file lock; one at a time
    worker_concurrency=2,

    # Result settings
    result_expires=3600,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,
)


if __name__ == "__main__":
    celery_app.start()
