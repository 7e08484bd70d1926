"""
Celery background tasks

Note on async handling:
Celery workers are sync by default (prefork pool). To safely run async code,
we create a fresh event loop for each task execution. This avoids issues with:
- Stale loops from previous executions
- Event loop state bleeding between tasks
"""
import asyncio
import logging
import uuid
from datetime import timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from auditflow.adapters.notifier import DatabaseNotificationPublisher, NotificationPublisher
from auditflow.core.clock import Clock, utcnow
from auditflow.core.config import settings
from auditflow.db.database import get_worker_session_factory
from auditflow.db.models import (
    Audit, AuditStatus, Observation, ObservationStatus, ReminderStatus, ScheduledReminder,
)
from auditflow.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Entity states in which a reminder is still worth sending
_AUDIT_REMINDABLE = {AuditStatus.PLANNED}
_OBSERVATION_REMINDABLE = {ObservationStatus.ASSIGNED, ObservationStatus.IN_PROGRESS}


def run_async(coro):
    """
    Safely run async code in sync Celery context.

    Creates a new event loop for each task execution and closes it afterwards.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()
            asyncio.set_event_loop(None)


# === Reminders ===

@celery_app.task(
    bind=True,
    name="auditflow.workers.tasks.fire_reminder_task",
    time_limit=settings.REMINDER_TASK_TIMEOUT_SEC,
    soft_time_limit=settings.REMINDER_TASK_TIMEOUT_SEC - 10,
)
def fire_reminder_task(self, reminder_id: str, task_id: str):
    """Deliver one scheduled reminder and queue the next run for cadenced reminders."""
    return run_async(_fire_reminder_async(reminder_id, task_id))


def _enqueue(reminder_id: str, task_id: str, eta) -> None:
    fire_reminder_task.apply_async(
        args=(reminder_id, task_id),
        eta=eta.replace(tzinfo=timezone.utc),
        task_id=task_id,
    )


_REMINDABLE = {
    "audit": (Audit, _AUDIT_REMINDABLE),
    "observation": (Observation, _OBSERVATION_REMINDABLE),
}


async def _still_relevant(db, reminder: ScheduledReminder) -> bool:
    # Reminders of other modules are always delivered
    if reminder.entity_type not in _REMINDABLE:
        return True

    model, statuses = _REMINDABLE[reminder.entity_type]
    try:
        entity_id = uuid.UUID(reminder.entity_id)
    except ValueError:
        return False
    result = await db.execute(select(model.status).where(model.id == entity_id))
    return result.scalar_one_or_none() in statuses


async def _fire_reminder_async(
    reminder_id: str,
    task_id: str,
    session_factory: Optional[async_sessionmaker] = None,
    publisher: Optional[NotificationPublisher] = None,
    enqueue: Callable = _enqueue,
    clock: Clock = utcnow,
):
    session_factory = session_factory or get_worker_session_factory()
    publisher = publisher or DatabaseNotificationPublisher(session_factory)

    async with session_factory() as db:
        result = await db.execute(
            select(ScheduledReminder).where(ScheduledReminder.id == uuid.UUID(reminder_id))
        )
        reminder = result.scalar_one_or_none()

        # Replaced or cancelled after this run was queued
        if reminder is None or reminder.status != ReminderStatus.SCHEDULED or reminder.task_id != task_id:
            logger.info(f"Skipping stale reminder run {task_id}")
            return {"status": "stale"}

        key = f"{reminder.entity_type}:{reminder.entity_id}:{reminder.kind}"
        if not await _still_relevant(db, reminder):
            reminder.status = ReminderStatus.FIRED
            reminder.task_id = None
            await db.commit()
            logger.info(f"Reminder {key} no longer relevant; dropped")
            return {"status": "dropped"}

        payload = dict(reminder.payload or {})
        event = payload.pop("event", f"{reminder.entity_type}.{reminder.kind}_reminder")
        await publisher.publish(event, payload)

        reminder.fire_count += 1
        next_task_id = None
        if reminder.cadence_seconds:
            next_task_id = str(uuid.uuid4())
            reminder.task_id = next_task_id
            reminder.eta = clock() + timedelta(seconds=reminder.cadence_seconds)
        else:
            reminder.status = ReminderStatus.FIRED
            reminder.task_id = None
        next_eta = reminder.eta
        await db.commit()

    if next_task_id:
        enqueue(reminder_id, next_task_id, next_eta)
        logger.info(f"Reminder {key} sent; next run at {next_eta.isoformat()}")
        return {"status": "rescheduled", "event": event, "task_id": next_task_id}

    logger.info(f"Reminder {key} sent")
    return {"status": "fired", "event": event}
