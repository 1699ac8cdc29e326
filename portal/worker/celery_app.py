from __future__ import annotations

from celery import Celery

from portal.config import settings


def make_celery() -> Celery:
    """Create the Celery app.

    Kept in a function so tests can import tasks without touching a broker.
    """

    celery = Celery(
        "portal",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["portal.worker.tasks"],
    )

    celery.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # The API enqueues from request handlers; a dead broker must fail fast.
        broker_connection_timeout=3.0,
        task_publish_retry_policy={
            "max_retries": 1,
            "interval_start": 0,
            "interval_step": 0.5,
            "interval_max": 0.5,
        },
        beat_schedule={
            "reconcile-stale-payments": {
                "task": "portal.reconcile_stale_payments",
                "schedule": 300.0,
            },
        },
    )

    return celery


celery_app = make_celery()
