"""
Shared plumbing for workflow services: conditional commits and best-effort
collaborator calls.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from auditflow.adapters.notifier import NotificationPublisher
from auditflow.adapters.scheduler import ReminderScheduler, ScheduleKey
from auditflow.core.clock import Clock, utcnow
from auditflow.core.errors import ConflictError

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """External collaborators injected into every workflow service."""
    scheduler: ReminderScheduler
    notifier: NotificationPublisher


class WorkflowService:
    def __init__(self, db: AsyncSession, collaborators: Collaborators, clock: Clock = utcnow):
        self.db = db
        self.collaborators = collaborators
        self.clock = clock

    async def _commit(self, entity: str, entity_id) -> Optional[ConflictError]:
        """
        Commit the pending transition.

        Versioned rows are written with ``WHERE version = <read version>``; a
        lost race surfaces as StaleDataError and is returned as ConflictError.
        """
        return await self._write(self.db.commit, entity, entity_id)

    async def _flush(self, entity: str, entity_id) -> Optional[ConflictError]:
        """Flush mid-transaction; same conflict handling as ``_commit``."""
        return await self._write(self.db.flush, entity, entity_id)

    async def _write(self, op, entity: str, entity_id) -> Optional[ConflictError]:
        try:
            await op()
        except StaleDataError:
            await self.db.rollback()
            logger.warning(f"Concurrent write rejected for {entity} {entity_id}")
            return ConflictError(entity, entity_id)
        return None

    # === Best-effort collaborators ===
    # Called after commit. Failures are logged, never propagated.

    async def _publish(self, event: str, payload: dict) -> None:
        try:
            await self.collaborators.notifier.publish(event, payload)
        except Exception as e:
            logger.warning(f"Notification publish failed for {event}: {e}")

    async def _schedule(
        self,
        key: ScheduleKey,
        payload: dict,
        *,
        eta: Optional[datetime] = None,
        delay: Optional[timedelta] = None,
        cadence: Optional[timedelta] = None,
    ) -> None:
        try:
            await self.collaborators.scheduler.schedule(key, payload, eta=eta, delay=delay, cadence=cadence)
        except Exception as e:
            logger.warning(f"Reminder schedule failed for {key}: {e}")

    async def _cancel(self, key: ScheduleKey) -> None:
        try:
            await self.collaborators.scheduler.cancel(key)
        except Exception as e:
            logger.warning(f"Reminder cancel failed for {key}: {e}")
