"""
Observation / corrective-action workflow

open -> assigned -> in_progress -> completed -> approved
                                            \-> assigned (rejected, with reason)
assigned | in_progress -> assigned (reassigned to another person or date)

Each transition is read -> validate -> conditional write on the observation's
version column, and is appended to ``observation_events``.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from auditflow.adapters.scheduler import ScheduleKey
from auditflow.core.clock import to_naive_utc
from auditflow.core.config import settings
from auditflow.core.errors import (
    InvalidTransitionError, NotFoundError, Result, ValidationError,
)
from auditflow.db.models import (
    Audit, AuditStatus, Observation, ObservationCategory, ObservationEvent,
    ObservationStatus, ReviewDecision, RiskLevel, Severity, User,
)
from auditflow.workflow.base import WorkflowService
from auditflow.workflow.lifecycle import AuditLifecycleManager
from auditflow.workflow.numbering import next_number

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = {
    Severity.MINOR: 1,
    Severity.MAJOR: 2,
    Severity.CRITICAL: 3,
}

RISK_LEVEL_WEIGHTS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.VERY_HIGH: 4,
}

# Audit states that accept new findings
RECORDING_STATUSES = frozenset({
    AuditStatus.CHECKLIST_COMPLETED,
    AuditStatus.OBSERVATIONS_PENDING,
    AuditStatus.COMPLETED,
})

ASSIGNABLE_STATUSES = frozenset({ObservationStatus.OPEN, ObservationStatus.REJECTED})
COMPLETABLE_STATUSES = frozenset({ObservationStatus.ASSIGNED, ObservationStatus.IN_PROGRESS})
REASSIGNABLE_STATUSES = COMPLETABLE_STATUSES
SETTLED_STATUSES = frozenset({ObservationStatus.COMPLETED, ObservationStatus.APPROVED})

NUMBER_ATTEMPTS = 3


def compute_risk_score(severity: Severity, risk_level: RiskLevel) -> int:
    return SEVERITY_WEIGHTS[Severity(severity)] * RISK_LEVEL_WEIGHTS[RiskLevel(risk_level)]


def risk_score_for(observation: Observation) -> int:
    if observation.risk_score_override is not None:
        return observation.risk_score_override
    return compute_risk_score(observation.severity, observation.risk_level)


def is_overdue(observation: Observation, now: datetime) -> bool:
    """
    Target date passed and the action is still outstanding.

    Compares full timestamps; completed actions awaiting review are not overdue.
    """
    if observation.target_date is None:
        return False
    if observation.status in SETTLED_STATUSES:
        return False
    return observation.target_date < now


def target_reminder_key(observation_id) -> ScheduleKey:
    return ScheduleKey.of("observation", observation_id, "target")


@dataclass
class ObservationDraft:
    """Finding as recorded by the auditor."""
    description: str
    severity: Severity
    risk_level: RiskLevel
    category: ObservationCategory = ObservationCategory.NON_COMPLIANCE
    element: Optional[str] = None
    legal_standard: Optional[str] = None
    recommendation: Optional[str] = None
    risk_score_override: Optional[int] = None


def _draft_reasons(draft: ObservationDraft) -> list[str]:
    reasons = []
    if not (draft.description or "").strip():
        reasons.append("description is required")
    if draft.severity is None:
        reasons.append("severity is required")
    if draft.risk_level is None:
        reasons.append("risk level is required")
    if draft.risk_score_override is not None and draft.risk_score_override < 1:
        reasons.append("risk score override must be a positive integer")
    return reasons


class ObservationWorkflow(WorkflowService):

    # === Loading ===

    async def _load(self, observation_id: uuid.UUID, actor: User) -> Optional[Observation]:
        result = await self.db.execute(
            select(Observation)
            .where(Observation.id == observation_id)
            .where(Observation.company_id == actor.company_id)
        )
        return result.scalar_one_or_none()

    async def _load_audit(self, audit_id: uuid.UUID, actor: User) -> Optional[Audit]:
        result = await self.db.execute(
            select(Audit)
            .where(Audit.id == audit_id)
            .where(Audit.company_id == actor.company_id)
        )
        return result.scalar_one_or_none()

    async def _active_colleague(self, user_id: uuid.UUID, actor: User) -> Optional[User]:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .where(User.company_id == actor.company_id)
            .where(User.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    # === Helpers ===

    async def _closed_audit_error(self, observation: Observation, requested: str) -> Optional[InvalidTransitionError]:
        audit = await self.db.get(Audit, observation.audit_id)
        if audit.status != AuditStatus.CLOSED:
            return None
        return InvalidTransitionError(
            "audit",
            audit.status.value,
            requested,
            message=(
                f"Audit {audit.audit_number} is closed; "
                f"observation {observation.observation_number} can no longer change"
            ),
        )

    @staticmethod
    def _transition_error(observation: Observation, requested: ObservationStatus) -> InvalidTransitionError:
        return InvalidTransitionError("observation", observation.status.value, requested.value)

    def _record(
        self,
        observation: Observation,
        from_status: Optional[ObservationStatus],
        actor: User,
        **details,
    ) -> None:
        self.db.add(
            ObservationEvent(
                observation_id=observation.id,
                from_status=from_status,
                to_status=observation.status,
                actor_id=actor.id,
                occurred_at=self.clock(),
                details={k: v for k, v in details.items() if v is not None},
            )
        )

    @staticmethod
    def _payload(observation: Observation, recipients: list, **extra) -> dict:
        payload = {
            "observation_id": str(observation.id),
            "audit_id": str(observation.audit_id),
            "number": observation.observation_number,
            "company_id": str(observation.company_id),
            "recipients": [str(r) for r in recipients if r],
        }
        payload.update(extra)
        return payload

    async def _schedule_target_reminder(self, observation: Observation) -> None:
        if observation.target_date is None:
            return
        eta = observation.target_date - timedelta(hours=settings.OBSERVATION_REMINDER_LEAD_HOURS)
        await self._schedule(
            target_reminder_key(observation.id),
            self._payload(
                observation,
                [observation.responsible_person_id],
                event="observation.target_reminder",
                target_date=observation.target_date.isoformat(),
            ),
            eta=eta,
            cadence=timedelta(hours=settings.OBSERVATION_REMINDER_CADENCE_HOURS),
        )

    # === Operations ===

    async def create(
        self,
        audit_id: uuid.UUID,
        actor: User,
        draft: ObservationDraft,
    ) -> Result[Observation]:
        reasons = _draft_reasons(draft)
        if reasons:
            return Result.failure(ValidationError(reasons))

        lifecycle = AuditLifecycleManager(self.db, self.collaborators, self.clock)
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            audit = await self._load_audit(audit_id, actor)
            if audit is None:
                return Result.failure(NotFoundError("Audit", audit_id))
            if audit.status not in RECORDING_STATUSES:
                return Result.failure(
                    InvalidTransitionError(
                        "audit",
                        audit.status.value,
                        "record_observation",
                        message=f"Observations cannot be recorded while the audit is {audit.status.value}",
                    )
                )

            now = self.clock()
            observation = Observation(
                id=uuid.uuid4(),
                company_id=audit.company_id,
                audit_id=audit.id,
                observation_number=await next_number(self.db, "observation", audit.company_id, now),
                description=draft.description.strip(),
                element=draft.element,
                legal_standard=draft.legal_standard,
                recommendation=draft.recommendation,
                category=draft.category,
                severity=Severity(draft.severity),
                risk_level=RiskLevel(draft.risk_level),
                risk_score_override=draft.risk_score_override,
                assigned_by_id=actor.id,
                status=ObservationStatus.OPEN,
            )
            self.db.add(observation)
            moved = lifecycle.note_observation_recorded(audit)

            self._record(observation, None, actor, description=observation.description)

            try:
                conflict = await self._commit("Audit", audit.id)
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"Observation number collision on attempt {attempt} for audit {audit_id}")
                continue
            if conflict:
                return Result.failure(conflict)
            break
        else:
            raise RuntimeError(f"Could not allocate an observation number for audit {audit_id}")

        logger.info(
            f"Observation {observation.observation_number} recorded on audit {audit.audit_number} "
            f"(risk score {risk_score_for(observation)})"
        )
        if moved:
            logger.info(f"Audit {audit.audit_number} -> {audit.status.value}")
        await self._publish(
            "observation.created",
            self._payload(observation, audit.team_member_ids, risk_score=risk_score_for(observation)),
        )
        return Result.success(observation)

    async def assign(
        self,
        observation_id: uuid.UUID,
        actor: User,
        responsible_person_id: uuid.UUID,
        target_date: Union[datetime, date],
    ) -> Result[Observation]:
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        closed = await self._closed_audit_error(observation, ObservationStatus.ASSIGNED.value)
        if closed:
            return Result.failure(closed)
        if observation.status not in ASSIGNABLE_STATUSES:
            return Result.failure(self._transition_error(observation, ObservationStatus.ASSIGNED))

        reasons = []
        if responsible_person_id is None or await self._active_colleague(responsible_person_id, actor) is None:
            reasons.append("responsible person must be an active user of this company")
        if target_date is None:
            reasons.append("target date is required")
        if reasons:
            return Result.failure(ValidationError(reasons))

        previous = observation.status
        observation.responsible_person_id = responsible_person_id
        observation.target_date = to_naive_utc(target_date, end_of_day=True)
        observation.assigned_by_id = actor.id
        observation.status = ObservationStatus.ASSIGNED
        self._record(
            observation,
            previous,
            actor,
            responsible_person_id=str(responsible_person_id),
            target_date=observation.target_date.isoformat(),
        )

        conflict = await self._commit("Observation", observation.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Observation {observation.observation_number} assigned to {responsible_person_id}")
        await self._schedule_target_reminder(observation)
        await self._publish(
            "observation.assigned",
            self._payload(
                observation,
                [responsible_person_id],
                target_date=observation.target_date.isoformat(),
            ),
        )
        return Result.success(observation)

    async def reassign(
        self,
        observation_id: uuid.UUID,
        actor: User,
        responsible_person_id: uuid.UUID,
        target_date: Union[datetime, date],
        reason: str,
    ) -> Result[Observation]:
        """
        Hand an outstanding action to another person or move its target date.

        The action restarts from ``assigned``; the event keeps the previous
        assignee, target date and the reason.
        """
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        closed = await self._closed_audit_error(observation, ObservationStatus.ASSIGNED.value)
        if closed:
            return Result.failure(closed)
        if observation.status not in REASSIGNABLE_STATUSES:
            return Result.failure(self._transition_error(observation, ObservationStatus.ASSIGNED))

        reasons = []
        if responsible_person_id is None or await self._active_colleague(responsible_person_id, actor) is None:
            reasons.append("responsible person must be an active user of this company")
        if target_date is None:
            reasons.append("target date is required")
        if not (reason or "").strip():
            reasons.append("reassignment reason is required")
        if reasons:
            return Result.failure(ValidationError(reasons))

        previous = observation.status
        previous_person_id = observation.responsible_person_id
        previous_target = observation.target_date
        observation.responsible_person_id = responsible_person_id
        observation.target_date = to_naive_utc(target_date, end_of_day=True)
        observation.assigned_by_id = actor.id
        observation.status = ObservationStatus.ASSIGNED
        self._record(
            observation,
            previous,
            actor,
            responsible_person_id=str(responsible_person_id),
            target_date=observation.target_date.isoformat(),
            previous_responsible_person_id=str(previous_person_id) if previous_person_id else None,
            previous_target_date=previous_target.isoformat() if previous_target else None,
            reassignment_reason=reason.strip(),
        )

        conflict = await self._commit("Observation", observation.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(
            f"Observation {observation.observation_number} reassigned from {previous_person_id} "
            f"to {responsible_person_id}: {reason.strip()}"
        )
        await self._schedule_target_reminder(observation)
        await self._publish(
            "observation.reassigned",
            self._payload(
                observation,
                [responsible_person_id, previous_person_id],
                target_date=observation.target_date.isoformat(),
                reassignment_reason=reason.strip(),
            ),
        )
        return Result.success(observation)

    async def start(self, observation_id: uuid.UUID, actor: User) -> Result[Observation]:
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        closed = await self._closed_audit_error(observation, ObservationStatus.IN_PROGRESS.value)
        if closed:
            return Result.failure(closed)
        if observation.status != ObservationStatus.ASSIGNED:
            return Result.failure(self._transition_error(observation, ObservationStatus.IN_PROGRESS))

        previous = observation.status
        observation.status = ObservationStatus.IN_PROGRESS
        self._record(observation, previous, actor)

        conflict = await self._commit("Observation", observation.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Observation {observation.observation_number} action started")
        await self._publish(
            "observation.started",
            self._payload(observation, [observation.assigned_by_id]),
        )
        return Result.success(observation)

    async def complete(
        self,
        observation_id: uuid.UUID,
        actor: User,
        action_taken: str,
        completion_evidence: Optional[str] = None,
    ) -> Result[Observation]:
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        closed = await self._closed_audit_error(observation, ObservationStatus.COMPLETED.value)
        if closed:
            return Result.failure(closed)
        if observation.status not in COMPLETABLE_STATUSES:
            return Result.failure(self._transition_error(observation, ObservationStatus.COMPLETED))
        if not (action_taken or "").strip():
            return Result.failure(ValidationError(["action taken is required"]))

        previous = observation.status
        observation.action_taken = action_taken.strip()
        if completion_evidence is not None:
            observation.completion_evidence = completion_evidence
        observation.completed_by_id = actor.id
        observation.completed_at = self.clock()
        observation.status = ObservationStatus.COMPLETED
        self._record(
            observation,
            previous,
            actor,
            action_taken=observation.action_taken,
            completion_evidence=observation.completion_evidence,
        )

        conflict = await self._commit("Observation", observation.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Observation {observation.observation_number} completed, awaiting review")
        await self._cancel(target_reminder_key(observation.id))
        audit = await self.db.get(Audit, observation.audit_id)
        await self._publish(
            "observation.completed",
            self._payload(observation, [audit.auditor_id, observation.assigned_by_id]),
        )
        return Result.success(observation)

    async def review(
        self,
        observation_id: uuid.UUID,
        actor: User,
        decision: ReviewDecision,
        comments: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> Result[Observation]:
        """
        Approve, or reject back to ``assigned``.

        A rejection keeps the previous action and evidence on the row; the
        event history holds every attempt.
        """
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        decision = ReviewDecision(decision)
        requested = ObservationStatus.APPROVED if decision == ReviewDecision.APPROVE else ObservationStatus.ASSIGNED
        closed = await self._closed_audit_error(observation, requested.value)
        if closed:
            return Result.failure(closed)
        if observation.status != ObservationStatus.COMPLETED:
            return Result.failure(self._transition_error(observation, requested))
        if decision == ReviewDecision.REJECT and not (rejection_reason or "").strip():
            return Result.failure(ValidationError(["rejection reason is required"]))

        previous = observation.status
        observation.reviewed_by_id = actor.id
        observation.reviewed_at = self.clock()
        observation.review_decision = decision
        observation.review_comments = comments
        if decision == ReviewDecision.REJECT:
            observation.rejection_reason = rejection_reason.strip()
        observation.status = requested
        self._record(
            observation,
            previous,
            actor,
            decision=decision.value,
            comments=comments,
            rejection_reason=observation.rejection_reason if decision == ReviewDecision.REJECT else None,
            action_taken=observation.action_taken,
            completion_evidence=observation.completion_evidence,
        )

        conflict = await self._commit("Observation", observation.id)
        if conflict:
            return Result.failure(conflict)

        recipients = [observation.responsible_person_id]
        if decision == ReviewDecision.APPROVE:
            logger.info(f"Observation {observation.observation_number} approved")
            await self._cancel(target_reminder_key(observation.id))
            await self._publish("observation.approved", self._payload(observation, recipients))
        else:
            logger.info(
                f"Observation {observation.observation_number} rejected: {observation.rejection_reason}"
            )
            await self._schedule_target_reminder(observation)
            await self._publish(
                "observation.rejected",
                self._payload(observation, recipients, rejection_reason=observation.rejection_reason),
            )
        return Result.success(observation)

    async def list_for_audit(
        self,
        audit_id: uuid.UUID,
        actor: User,
        status: Optional[ObservationStatus] = None,
        risk_level: Optional[RiskLevel] = None,
    ) -> Result[list[Observation]]:
        audit = await self._load_audit(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))

        query = (
            select(Observation)
            .where(Observation.audit_id == audit.id)
            .order_by(Observation.observation_number)
        )
        if status is not None:
            query = query.where(Observation.status == status)
        if risk_level is not None:
            query = query.where(Observation.risk_level == risk_level)
        result = await self.db.execute(query)
        return Result.success(list(result.scalars().all()))

    async def history(self, observation_id: uuid.UUID, actor: User) -> Result[list[ObservationEvent]]:
        observation = await self._load(observation_id, actor)
        if observation is None:
            return Result.failure(NotFoundError("Observation", observation_id))
        result = await self.db.execute(
            select(ObservationEvent)
            .where(ObservationEvent.observation_id == observation.id)
            .order_by(ObservationEvent.occurred_at, ObservationEvent.id)
        )
        return Result.success(list(result.scalars().all()))
