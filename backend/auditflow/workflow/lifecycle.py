"""
Audit lifecycle manager

planned -> in_progress -> checklist_completed -> observations_pending -> completed -> closed

checklist_completed and observations_pending interleave: findings can be
recorded after the checklist is done, and a new finding on a completed audit
reopens it to observations_pending. Closing is gated on every observation
being approved.
"""
import logging
import uuid
from dataclasses import dataclass, field
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
    Audit, AuditStatus, AuditType, ChecklistItem, Observation, User,
)
from auditflow.workflow.base import WorkflowService
from auditflow.workflow.checklist import apply_checklist_progress, summarize
from auditflow.workflow.gates import GateResult, audit_can_close, audit_can_finalize
from auditflow.workflow.numbering import next_number
from auditflow.workflow.template_catalog import get_visible_template

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 3


def due_reminder_key(audit_id) -> ScheduleKey:
    return ScheduleKey.of("audit", audit_id, "due")


@dataclass
class AuditDraft:
    template_id: uuid.UUID
    title: str
    scheduled_date: Union[datetime, date]
    scope: Optional[str] = None
    audit_type: AuditType = AuditType.INTERNAL
    standard: Optional[str] = None
    # [{"member_id": ..., "role": ...}]
    team: list[dict] = field(default_factory=list)
    # [{"name": ..., "in_charge_id": ...}]
    areas: list[dict] = field(default_factory=list)


class AuditLifecycleManager(WorkflowService):

    async def _load(self, audit_id: uuid.UUID, actor: User) -> Optional[Audit]:
        result = await self.db.execute(
            select(Audit)
            .where(Audit.id == audit_id)
            .where(Audit.company_id == actor.company_id)
        )
        return result.scalar_one_or_none()

    async def _observations(self, audit_id: uuid.UUID) -> list[Observation]:
        result = await self.db.execute(
            select(Observation)
            .where(Observation.audit_id == audit_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _items(self, audit_id: uuid.UUID) -> list[ChecklistItem]:
        result = await self.db.execute(
            select(ChecklistItem)
            .where(ChecklistItem.audit_id == audit_id)
            .order_by(ChecklistItem.position)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _unknown_members(self, member_ids: list[str], actor: User) -> list[str]:
        wanted = set()
        unknown = []
        for raw in member_ids:
            try:
                wanted.add(uuid.UUID(str(raw)))
            except ValueError:
                unknown.append(str(raw))
        if wanted:
            result = await self.db.execute(
                select(User.id)
                .where(User.id.in_(list(wanted)))
                .where(User.company_id == actor.company_id)
                .where(User.is_active.is_(True))
            )
            found = set(result.scalars().all())
            unknown.extend(str(m) for m in wanted - found)
        return sorted(unknown)

    def _payload(self, audit: Audit, **extra) -> dict:
        payload = {
            "audit_id": str(audit.id),
            "number": audit.audit_number,
            "company_id": str(audit.company_id),
            "recipients": [str(audit.auditor_id), *audit.team_member_ids],
        }
        payload.update(extra)
        return payload

    async def get(self, audit_id: uuid.UUID, actor: User) -> Result[Audit]:
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        return Result.success(audit)

    async def create_audit(self, actor: User, draft: AuditDraft) -> Result[Audit]:
        reasons = []
        if actor.role not in settings.AUDIT_MANAGER_ROLES:
            reasons.append(f"role '{actor.role}' is not allowed to create audits")
        if not (draft.title or "").strip():
            reasons.append("title is required")
        if draft.scheduled_date is None:
            reasons.append("scheduled date is required")
        member_ids = [m.get("member_id") for m in draft.team if m.get("member_id")]
        unknown = await self._unknown_members(member_ids, actor)
        if unknown:
            reasons.append(f"unknown or inactive team members: {', '.join(unknown)}")
        if reasons:
            return Result.failure(ValidationError(reasons))

        template = await get_visible_template(self.db, draft.template_id, actor.company_id)
        if template is None:
            return Result.failure(NotFoundError("AuditTemplate", draft.template_id))

        team = [{"member_id": str(m["member_id"]), "role": m.get("role")} for m in draft.team if m.get("member_id")]
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            now = self.clock()
            audit = Audit(
                company_id=actor.company_id,
                audit_number=await next_number(self.db, "audit", actor.company_id, now),
                template_id=template.id,
                title=draft.title.strip(),
                scope=draft.scope,
                audit_type=AuditType(draft.audit_type),
                standard=draft.standard or template.standard,
                auditor_id=actor.id,
                team=team,
                areas=list(draft.areas),
                scheduled_date=to_naive_utc(draft.scheduled_date),
                status=AuditStatus.PLANNED,
            )
            self.db.add(audit)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"Audit number collision on attempt {attempt}")
                continue
            break
        else:
            raise RuntimeError(f"Could not allocate an audit number for company {actor.company_id}")

        logger.info(f"Audit {audit.audit_number} planned for {audit.scheduled_date.isoformat()}")
        await self._schedule(
            due_reminder_key(audit.id),
            self._payload(
                audit,
                event="audit.due_reminder",
                scheduled_date=audit.scheduled_date.isoformat(),
            ),
            eta=audit.scheduled_date - timedelta(hours=settings.AUDIT_REMINDER_LEAD_HOURS),
        )
        await self._publish("audit.created", self._payload(audit, title=audit.title))
        return Result.success(audit)

    async def start(self, audit_id: uuid.UUID, actor: User) -> Result[Audit]:
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        if audit.status != AuditStatus.PLANNED:
            return Result.failure(
                InvalidTransitionError("audit", audit.status.value, AuditStatus.IN_PROGRESS.value)
            )

        audit.status = AuditStatus.IN_PROGRESS
        audit.actual_date = self.clock()
        conflict = await self._commit("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Audit {audit.audit_number} started")
        await self._cancel(due_reminder_key(audit.id))
        await self._publish("audit.started", self._payload(audit))
        return Result.success(audit)

    async def record_checklist_progress(self, audit_id: uuid.UUID, actor: User) -> Result[Audit]:
        """Move to checklist_completed when every item is answered. Idempotent."""
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))

        summary = summarize(await self._items(audit.id))
        if not apply_checklist_progress(audit, summary, self.clock()):
            return Result.success(audit)

        conflict = await self._commit("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)
        logger.info(f"Audit {audit.audit_number} checklist completed")
        await self._publish(
            "audit.checklist_completed",
            self._payload(audit, compliance_percentage=summary.compliance_percentage),
        )
        return Result.success(audit)

    def note_observation_recorded(self, audit: Audit) -> bool:
        """
        A finding was added. Applied inside the caller's transaction.

        Returns True when the audit status changed.
        """
        if audit.status == AuditStatus.CHECKLIST_COMPLETED:
            audit.status = AuditStatus.OBSERVATIONS_PENDING
            return True
        if audit.status == AuditStatus.COMPLETED:
            # Findings set is open again
            audit.status = AuditStatus.OBSERVATIONS_PENDING
            audit.observations_completed_at = None
            return True
        return False

    async def mark_observations_finalized(self, audit_id: uuid.UUID, actor: User) -> Result[Audit]:
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))

        gate = audit_can_finalize(audit, await self._items(audit.id), await self._observations(audit.id))
        if not gate.allowed:
            return Result.failure(ValidationError(gate.reasons))

        audit.status = AuditStatus.COMPLETED
        audit.observations_completed_at = self.clock()
        conflict = await self._commit("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Audit {audit.audit_number} findings finalized")
        await self._publish("audit.completed", self._payload(audit))
        return Result.success(audit)

    async def readiness(self, audit_id: uuid.UUID, actor: User) -> Result[GateResult]:
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        return Result.success(audit_can_close(audit, await self._observations(audit.id)))

    async def close(
        self,
        audit_id: uuid.UUID,
        actor: User,
        closure_comments: Optional[str] = None,
    ) -> Result[Audit]:
        audit = await self._load(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))

        gate = audit_can_close(audit, await self._observations(audit.id))
        if not gate.allowed:
            logger.info(f"Audit {audit.audit_number} not closable: {'; '.join(gate.reasons)}")
            return Result.failure(ValidationError(gate.reasons))

        audit.status = AuditStatus.CLOSED
        audit.closed_at = self.clock()
        audit.closed_by_id = actor.id
        audit.closure_comments = closure_comments
        conflict = await self._commit("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(f"Audit {audit.audit_number} closed by {actor.id}")
        await self._cancel(due_reminder_key(audit.id))
        await self._publish("audit.closed", self._payload(audit, closure_comments=closure_comments))
        return Result.success(audit)
