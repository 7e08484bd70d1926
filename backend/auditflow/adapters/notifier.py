"""
Notification publisher collaborator.

The engine publishes domain events (``audit.closed``, ``observation.assigned``...)
through ``NotificationPublisher.publish(event, payload)``. Delivery is not the
engine's concern; the database publisher stores in-app notifications.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from auditflow.core.clock import utcnow
from auditflow.db.models import Notification

logger = logging.getLogger(__name__)

# event -> title
EVENT_TITLES: dict[str, str] = {
    "audit.created": "Audit Scheduled",
    "audit.started": "Audit Started",
    "audit.checklist_completed": "Audit Checklist Completed",
    "audit.completed": "Audit Findings Finalized",
    "audit.closed": "Audit Closed",
    "audit.due_reminder": "Audit Due Reminder",
    "observation.created": "New Audit Observation",
    "observation.assigned": "Corrective Action Assigned",
    "observation.started": "Corrective Action Started",
    "observation.completed": "Corrective Action Awaiting Review",
    "observation.approved": "Corrective Action Approved",
    "observation.rejected": "Corrective Action Rejected",
    "observation.reassigned": "Corrective Action Reassigned",
    "observation.target_reminder": "Corrective Action Due",
}


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class NotificationPublisher(ABC):
    @abstractmethod
    async def publish(self, event: str, payload: dict) -> None:
        ...


@dataclass
class PublishedEvent:
    event: str
    payload: dict
    published_at: datetime = field(default_factory=utcnow)


class InMemoryNotificationPublisher(NotificationPublisher):
    """Collects events in a list. Used by tests and local dev."""

    def __init__(self):
        self.events: list[PublishedEvent] = []

    async def publish(self, event: str, payload: dict) -> None:
        self.events.append(PublishedEvent(event=event, payload=dict(payload)))

    def names(self) -> list[str]:
        return [e.event for e in self.events]


class DatabaseNotificationPublisher(NotificationPublisher):
    """
    Writes one in-app notification per recipient (payload["recipients"]).
    Events without recipients are stored once at company level.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def publish(self, event: str, payload: dict) -> None:
        title = EVENT_TITLES.get(event, event)
        message = payload.get("message") or f"{title}: {payload.get('number', '')}".rstrip(": ")
        recipients = [r for r in (payload.get("recipients") or []) if r]

        async with self.session_factory() as db:
            for user_id in recipients or [None]:
                db.add(
                    Notification(
                        company_id=_as_uuid(payload.get("company_id")),
                        user_id=_as_uuid(user_id),
                        event=event,
                        title=title,
                        message=message,
                        payload=payload,
                    )
                )
            await db.commit()

        logger.info(f"Published {event} to {len(recipients) or 'company'} recipient(s)")
