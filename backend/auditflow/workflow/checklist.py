"""
Checklist engine

Materializes an audit checklist from its template and aggregates answers
into a compliance summary.

Compliance percentage = yes / (yes + no) * 100, rounded half-up to 2 decimals.
N/A and unanswered items are excluded from the denominator; 0.0 when no item
is answered yes or no. Progress percentage = answered / total * 100 and is a
separate figure.
"""
import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from auditflow.core.config import settings
from auditflow.core.errors import (
    InvalidTransitionError, NotFoundError, Result, ValidationError,
)
from auditflow.db.models import (
    Audit, AuditStatus, ChecklistAnswer, ChecklistItem, User,
)
from auditflow.workflow.base import WorkflowService
from auditflow.workflow.template_catalog import get_visible_template

logger = logging.getLogger(__name__)

# Audit states in which checklist answers may be written
ANSWERABLE_STATUSES = frozenset({
    AuditStatus.IN_PROGRESS,
    AuditStatus.CHECKLIST_COMPLETED,
    AuditStatus.OBSERVATIONS_PENDING,
    AuditStatus.COMPLETED,
})

_CENT = Decimal("0.01")


def _percent(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    value = (Decimal(numerator) * 100 / Decimal(denominator)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return float(value)


@dataclass(frozen=True)
class ChecklistSummary:
    total_questions: int
    yes_answers: int
    no_answers: int
    na_answers: int
    answered: int
    compliance_percentage: float
    progress_percentage: float

    @property
    def is_complete(self) -> bool:
        return self.total_questions > 0 and self.answered == self.total_questions

    def to_dict(self) -> dict:
        return asdict(self)


def compliance_percentage(yes: int, no: int) -> float:
    return _percent(yes, yes + no)


def summarize(items: Iterable[ChecklistItem]) -> ChecklistSummary:
    """Derive the checklist summary from the current item set."""
    total = yes = no = na = 0
    for item in items:
        total += 1
        if item.answer == ChecklistAnswer.YES:
            yes += 1
        elif item.answer == ChecklistAnswer.NO:
            no += 1
        elif item.answer == ChecklistAnswer.NA:
            na += 1
    answered = yes + no + na
    return ChecklistSummary(
        total_questions=total,
        yes_answers=yes,
        no_answers=no,
        na_answers=na,
        answered=answered,
        compliance_percentage=compliance_percentage(yes, no),
        progress_percentage=_percent(answered, total),
    )


def apply_checklist_progress(audit: Audit, summary: ChecklistSummary, now: datetime) -> bool:
    """
    in_progress -> checklist_completed once every item is answered.

    Returns True when the audit moved. Audits already at or beyond
    checklist_completed are left alone.
    """
    if audit.status != AuditStatus.IN_PROGRESS or not summary.is_complete:
        return False
    audit.status = AuditStatus.CHECKLIST_COMPLETED
    audit.checklist_completed_at = now
    return True


@dataclass
class AnswerPatch:
    """One checklist edit. None leaves the field unchanged."""
    item_id: uuid.UUID
    answer: Optional[ChecklistAnswer] = None
    remarks: Optional[str] = None
    evidence: Optional[str] = None


@dataclass
class ChecklistUpdate:
    items: list[ChecklistItem]
    summary: ChecklistSummary
    audit: Audit
    checklist_completed: bool = False


class ChecklistEngine(WorkflowService):

    async def _load_audit(self, audit_id: uuid.UUID, actor: User) -> Optional[Audit]:
        result = await self.db.execute(
            select(Audit)
            .where(Audit.id == audit_id)
            .where(Audit.company_id == actor.company_id)
        )
        return result.scalar_one_or_none()

    async def load_items(self, audit_id: uuid.UUID, refresh: bool = False) -> list[ChecklistItem]:
        """Items in template order. ``refresh`` re-reads rows already in the session."""
        stmt = (
            select(ChecklistItem)
            .where(ChecklistItem.audit_id == audit_id)
            .order_by(ChecklistItem.position)
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def initialize(
        self,
        audit_id: uuid.UUID,
        actor: User,
        template_id: Optional[uuid.UUID] = None,
    ) -> Result[list[ChecklistItem]]:
        """
        Copy template questions into the audit exactly once.

        When the audit already has items this is a no-op returning them.
        """
        audit = await self._load_audit(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        if audit.status == AuditStatus.CLOSED:
            return Result.failure(
                InvalidTransitionError("audit", audit.status.value, "initialize_checklist")
            )

        existing = await self.load_items(audit.id)
        if existing:
            return Result.success(existing)

        template_id = template_id or audit.template_id
        template = await get_visible_template(self.db, template_id, actor.company_id)
        if template is None:
            return Result.failure(NotFoundError("AuditTemplate", template_id))
        if not template.questions:
            return Result.failure(ValidationError([f"template {template.code} has no questions"]))

        for position, question in enumerate(template.questions):
            self.db.add(
                ChecklistItem(
                    audit_id=audit.id,
                    position=position,
                    question_id=question.get("id"),
                    category=question.get("category"),
                    element=question.get("element"),
                    question=question.get("question") or "",
                    clause=question.get("clause"),
                    legal_standard=question.get("legal_standard"),
                )
            )
        audit.updated_at = self.clock()
        if audit.template_id != template.id:
            audit.template_id = template.id
        if not audit.standard:
            audit.standard = template.standard

        try:
            conflict = await self._commit("Audit", audit.id)
        except IntegrityError:
            # Another request initialized the same checklist first
            await self.db.rollback()
            logger.info(f"Checklist for audit {audit.id} initialized concurrently; reusing rows")
            return Result.success(await self.load_items(audit.id, refresh=True))
        if conflict:
            return Result.failure(conflict)

        items = await self.load_items(audit.id)
        logger.info(f"Initialized checklist for audit {audit.audit_number}: {len(items)} items")
        return Result.success(items)

    async def answer(
        self,
        audit_id: uuid.UUID,
        item_id: uuid.UUID,
        actor: User,
        answer: Optional[ChecklistAnswer] = None,
        remarks: Optional[str] = None,
        evidence: Optional[str] = None,
    ) -> Result[ChecklistUpdate]:
        patch = AnswerPatch(item_id=item_id, answer=answer, remarks=remarks, evidence=evidence)
        return await self.answer_many(audit_id, [patch], actor)

    async def answer_many(
        self,
        audit_id: uuid.UUID,
        patches: Sequence[AnswerPatch],
        actor: User,
    ) -> Result[ChecklistUpdate]:
        """
        Apply a batch of checklist edits, then recompute the summary once.

        Several edits to the same item coalesce (last one wins).
        """
        if not patches:
            return Result.failure(ValidationError(["no checklist answers supplied"]))
        if len(patches) > settings.CHECKLIST_BATCH_MAX:
            return Result.failure(
                ValidationError([f"at most {settings.CHECKLIST_BATCH_MAX} answers per batch"])
            )

        audit = await self._load_audit(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        if audit.status not in ANSWERABLE_STATUSES:
            return Result.failure(
                InvalidTransitionError(
                    "audit",
                    audit.status.value,
                    "answer_checklist",
                    message=f"Checklist answers are not accepted while the audit is {audit.status.value}",
                )
            )

        coalesced: dict[uuid.UUID, AnswerPatch] = {}
        for patch in patches:
            previous = coalesced.get(patch.item_id)
            if previous is not None:
                patch = AnswerPatch(
                    item_id=patch.item_id,
                    answer=patch.answer if patch.answer is not None else previous.answer,
                    remarks=patch.remarks if patch.remarks is not None else previous.remarks,
                    evidence=patch.evidence if patch.evidence is not None else previous.evidence,
                )
            coalesced[patch.item_id] = patch

        reasons = [
            f"item {item_id}: answer must be yes, no or na"
            for item_id, p in coalesced.items()
            if p.answer == ChecklistAnswer.UNANSWERED
        ]
        if reasons:
            return Result.failure(ValidationError(reasons))

        result = await self.db.execute(
            select(ChecklistItem)
            .where(ChecklistItem.audit_id == audit.id)
            .where(ChecklistItem.id.in_(list(coalesced)))
        )
        items = {item.id: item for item in result.scalars().all()}
        for item_id in coalesced:
            if item_id not in items:
                return Result.failure(NotFoundError("ChecklistItem", item_id))

        now = self.clock()
        # Item edits ride on the audit version check so a concurrent close or
        # finalize turns them into a conflict
        audit.updated_at = now
        conflict = await self._flush("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)

        for item_id, patch in coalesced.items():
            item = items[item_id]
            if patch.answer is not None:
                item.answer = patch.answer
            if patch.remarks is not None:
                item.remarks = patch.remarks
            if patch.evidence is not None:
                item.evidence = patch.evidence
            item.completed_by_id = actor.id
            item.completed_at = now
        conflict = await self._flush("ChecklistItem", next(iter(coalesced)))
        if conflict:
            return Result.failure(conflict)

        # Recompute against the persisted item set, not the edited objects alone
        summary = summarize(await self.load_items(audit.id, refresh=True))
        moved = apply_checklist_progress(audit, summary, now)

        conflict = await self._commit("Audit", audit.id)
        if conflict:
            return Result.failure(conflict)

        logger.info(
            f"Audit {audit.audit_number}: {len(coalesced)} answer(s) saved, "
            f"progress {summary.progress_percentage}%, compliance {summary.compliance_percentage}%"
        )
        if moved:
            logger.info(f"Audit {audit.audit_number} checklist completed")
            await self._publish(
                "audit.checklist_completed",
                {
                    "audit_id": str(audit.id),
                    "number": audit.audit_number,
                    "company_id": str(audit.company_id),
                    "recipients": [str(audit.auditor_id)],
                    "compliance_percentage": summary.compliance_percentage,
                },
            )

        return Result.success(
            ChecklistUpdate(
                items=[items[i] for i in coalesced],
                summary=summary,
                audit=audit,
                checklist_completed=moved,
            )
        )

    async def summary(self, audit_id: uuid.UUID, actor: User) -> Result[ChecklistSummary]:
        audit = await self._load_audit(audit_id, actor)
        if audit is None:
            return Result.failure(NotFoundError("Audit", audit_id))
        return Result.success(summarize(await self.load_items(audit.id, refresh=True)))
