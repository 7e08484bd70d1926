"""
Corrective actions across modules.

Any module that hands out corrective actions registers a
``CorrectiveActionSource``; the "my actions" view asks every registered
source instead of branching on module type. Audit observations are the
built-in source.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.db.models import Observation, ObservationStatus
from auditflow.workflow.observations import is_overdue, risk_score_for


@runtime_checkable
class CorrectiveAction(Protocol):
    source: str
    reference: str
    description: str
    responsible_person_id: Optional[uuid.UUID]
    target_date: Optional[datetime]
    status: str

    def is_overdue(self, now: datetime) -> bool:
        ...


class CorrectiveActionSource(Protocol):
    name: str

    async def actions_for_person(
        self,
        db: AsyncSession,
        company_id: uuid.UUID,
        person_id: uuid.UUID,
    ) -> list[CorrectiveAction]:
        ...


@dataclass
class ObservationAction:
    """CorrectiveAction view over an audit observation."""
    observation: Observation
    source: str = "audit"

    @property
    def id(self) -> uuid.UUID:
        return self.observation.id

    @property
    def reference(self) -> str:
        return self.observation.observation_number

    @property
    def description(self) -> str:
        return self.observation.description

    @property
    def responsible_person_id(self) -> Optional[uuid.UUID]:
        return self.observation.responsible_person_id

    @property
    def target_date(self) -> Optional[datetime]:
        return self.observation.target_date

    @property
    def status(self) -> str:
        return self.observation.status.value

    @property
    def risk_score(self) -> int:
        return risk_score_for(self.observation)

    def is_overdue(self, now: datetime) -> bool:
        return is_overdue(self.observation, now)


class ObservationActionSource:
    name = "audit"

    # Closed-out actions drop off the personal list
    _open_statuses = (
        ObservationStatus.ASSIGNED,
        ObservationStatus.IN_PROGRESS,
        ObservationStatus.COMPLETED,
        ObservationStatus.REJECTED,
    )

    async def actions_for_person(self, db, company_id, person_id) -> list[CorrectiveAction]:
        result = await db.execute(
            select(Observation)
            .where(Observation.company_id == company_id)
            .where(Observation.responsible_person_id == person_id)
            .where(Observation.status.in_(self._open_statuses))
        )
        return [ObservationAction(o) for o in result.scalars().all()]


_sources: dict[str, CorrectiveActionSource] = {}


def register_source(source: CorrectiveActionSource) -> None:
    _sources[source.name] = source


def registered_sources() -> list[CorrectiveActionSource]:
    return list(_sources.values())


register_source(ObservationActionSource())


async def actions_for_person(
    db: AsyncSession,
    company_id: uuid.UUID,
    person_id: uuid.UUID,
) -> list[CorrectiveAction]:
    """Every open corrective action owned by the person, earliest target first."""
    actions: list[CorrectiveAction] = []
    for source in registered_sources():
        actions.extend(await source.actions_for_person(db, company_id, person_id))
    return sorted(actions, key=lambda a: (a.target_date is None, a.target_date or datetime.max, a.reference))
