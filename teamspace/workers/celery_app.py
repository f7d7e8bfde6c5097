"""
Celery application instance.

Configured with Redis broker and backend.
"""

from celery import Celery
from celery.schedules import crontab

from teamspace.core.config import settings

celery_app = Celery(
    "teamspace",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "teamspace.workers.email_tasks",
        "teamspace.workers.maintenance_tasks",
    ],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Results
    result_expires=3600,
    # Retry policy
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Concurrency
    worker_prefetch_multiplier=1,
    # Routing
    task_default_queue="default",
    task_queues={
        "default": {},
        "email": {},
        "maintenance": {},
    },
    task_routes={
        "teamspace.workers.email_tasks.*": {"queue": "email"},
        "teamspace.workers.maintenance_tasks.*": {"queue": "maintenance"},
    },
    # Periodic jobs
    beat_schedule={
        "purge-email-verifications": {
            "task": "teamspace.workers.maintenance_tasks.purge_email_verifications",
            "schedule": crontab(minute=0),
        },
    },
)
