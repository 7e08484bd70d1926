"""
Reminder scheduler collaborator.

The workflow engine only talks to the abstract ``ReminderScheduler``:
``schedule(key, payload, eta|delay, cadence)`` and ``cancel(key)``. Schedules
are keyed by ``(entity_type, entity_id, kind)``; re-scheduling a key replaces
the pending run, and cancelling an unknown key is a no-op.

Implementations:
- InMemoryReminderScheduler: dev/tests, keeps entries in a dict
- CeleryReminderScheduler: ledger row in ``scheduled_reminders`` + Celery
  ``apply_async(eta=...)``; cancel revokes the pending task id
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from auditflow.core.clock import Clock, utcnow
from auditflow.db.models import ReminderStatus, ScheduledReminder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleKey:
    entity_type: str
    entity_id: str
    kind: str

    @classmethod
    def of(cls, entity_type: str, entity_id: Any, kind: str) -> "ScheduleKey":
        return cls(entity_type=entity_type, entity_id=str(entity_id), kind=kind)

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}:{self.kind}"


def resolve_eta(
    now: datetime,
    eta: Optional[datetime] = None,
    delay: Optional[timedelta] = None,
) -> datetime:
    """First run time: explicit eta, else now + delay, else now. Past etas run immediately."""
    if eta is None:
        eta = now + (delay or timedelta(0))
    return max(eta, now)


class ReminderScheduler(ABC):
    """Abstract scheduling collaborator injected into the workflow engine."""

    async def init(self) -> None:
        """Acquire resources. Called once by the application lifespan."""

    async def shutdown(self) -> None:
        """Release resources. Called once by the application lifespan."""

    @abstractmethod
    async def schedule(
        self,
        key: ScheduleKey,
        payload: dict,
        *,
        eta: Optional[datetime] = None,
        delay: Optional[timedelta] = None,
        cadence: Optional[timedelta] = None,
    ) -> None:
        ...

    @abstractmethod
    async def cancel(self, key: ScheduleKey) -> None:
        ...


@dataclass
class ScheduledEntry:
    key: ScheduleKey
    payload: dict
    eta: datetime
    cadence: Optional[timedelta] = None
    created_at: datetime = field(default_factory=utcnow)


class InMemoryReminderScheduler(ReminderScheduler):
    """Process-local scheduler. Nothing fires by itself; ``due()`` lists what would."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self.entries: dict[ScheduleKey, ScheduledEntry] = {}
        self.cancelled: list[ScheduleKey] = []
        self.started = False

    async def init(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.started = False
        self.entries.clear()

    async def schedule(self, key, payload, *, eta=None, delay=None, cadence=None) -> None:
        self.entries[key] = ScheduledEntry(
            key=key,
            payload=dict(payload),
            eta=resolve_eta(self.clock(), eta=eta, delay=delay),
            cadence=cadence,
        )

    async def cancel(self, key: ScheduleKey) -> None:
        if self.entries.pop(key, None) is not None:
            self.cancelled.append(key)

    def due(self, now: Optional[datetime] = None) -> list[ScheduledEntry]:
        now = now or self.clock()
        return sorted((e for e in self.entries.values() if e.eta <= now), key=lambda e: e.eta)


class CeleryReminderScheduler(ReminderScheduler):
    """
    Durable scheduler backed by Celery.

    The ledger row is the source of truth: a task that fires with a task id
    other than the row's current ``task_id`` (replaced or cancelled) does nothing.
    """

    def __init__(self, session_factory: async_sessionmaker, celery_app=None, clock: Clock = utcnow):
        self.session_factory = session_factory
        self._celery_app = celery_app
        self.clock = clock
        self._closed = True

    @property
    def celery_app(self):
        if self._celery_app is None:
            from auditflow.workers.celery_app import celery_app
            self._celery_app = celery_app
        return self._celery_app

    async def init(self) -> None:
        self._closed = False
        logger.info("Celery reminder scheduler ready")

    async def shutdown(self) -> None:
        self._closed = True
        logger.info("Celery reminder scheduler stopped")

    def _revoke(self, task_id: Optional[str]) -> None:
        if not task_id:
            return
        try:
            self.celery_app.control.revoke(task_id)
        except Exception as e:
            # The ledger check in the task still drops the stale run
            logger.warning(f"Failed to revoke reminder task {task_id}: {e}")

    async def _load(self, db, key: ScheduleKey) -> Optional[ScheduledReminder]:
        result = await db.execute(
            select(ScheduledReminder)
            .where(ScheduledReminder.entity_type == key.entity_type)
            .where(ScheduledReminder.entity_id == key.entity_id)
            .where(ScheduledReminder.kind == key.kind)
        )
        return result.scalar_one_or_none()

    async def schedule(self, key, payload, *, eta=None, delay=None, cadence=None) -> None:
        from auditflow.workers.tasks import fire_reminder_task

        if self._closed:
            logger.warning(f"Scheduler is not running; dropping schedule for {key}")
            return

        run_at = resolve_eta(self.clock(), eta=eta, delay=delay)
        task_id = str(uuid.uuid4())

        async with self.session_factory() as db:
            reminder = await self._load(db, key)
            if reminder is None:
                reminder = ScheduledReminder(
                    entity_type=key.entity_type,
                    entity_id=key.entity_id,
                    kind=key.kind,
                )
                db.add(reminder)
            else:
                self._revoke(reminder.task_id)

            reminder.task_id = task_id
            reminder.payload = dict(payload)
            reminder.eta = run_at
            reminder.cadence_seconds = int(cadence.total_seconds()) if cadence else None
            reminder.status = ReminderStatus.SCHEDULED
            await db.commit()
            reminder_id = str(reminder.id)

        # IMPORTANT: celery task_id == ledger task_id so cancel can revoke reliably
        fire_reminder_task.apply_async(
            args=(reminder_id, task_id),
            eta=run_at.replace(tzinfo=timezone.utc),
            task_id=task_id,
        )
        logger.info(f"Scheduled reminder {key} at {run_at.isoformat()} (task {task_id})")

    async def cancel(self, key: ScheduleKey) -> None:
        async with self.session_factory() as db:
            reminder = await self._load(db, key)
            if reminder is None or reminder.status != ReminderStatus.SCHEDULED:
                return
            self._revoke(reminder.task_id)
            reminder.status = ReminderStatus.CANCELLED
            reminder.task_id = None
            await db.commit()
        logger.info(f"Cancelled reminder {key}")
