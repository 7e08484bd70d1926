"""
Celery application configuration
"""
from celery import Celery
from kombu import Queue

from auditflow.core.config import settings

celery_app = Celery(
    "auditflow",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["auditflow.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.REMINDER_TASK_TIMEOUT_SEC,
    task_soft_time_limit=settings.REMINDER_TASK_TIMEOUT_SEC - 10,
    task_acks_late=True,
    # Reminders can sit in the broker for days before their eta
    broker_transport_options={"visibility_timeout": 7 * 24 * 3600},
)

# NOTE: run the reminder worker with:
#   celery -A auditflow.workers.celery_app worker -Q reminders
celery_app.conf.task_queues = (
    Queue("celery"),
    Queue("reminders"),
)

celery_app.conf.task_default_queue = "celery"

celery_app.conf.task_routes = {
    "auditflow.workers.tasks.fire_reminder_task": {"queue": "reminders"},
}

celery_app.conf.task_annotations = {
    "auditflow.workers.tasks.fire_reminder_task": {
        "max_retries": 3,
        "default_retry_delay": 30,
    },
}
