"""
Audit lifecycle and checklist routes
"""
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.api.deps import get_actor, get_collaborators, unwrap_or_http
from auditflow.api.routes.observations import observation_response
from auditflow.api.schemas.audits import (
    AuditClose, AuditCreate, AuditResponse, ChecklistBatchUpdate, ChecklistAnswerUpdate,
    ChecklistInitialize, ChecklistItemResponse, ChecklistResponse, ChecklistSummaryResponse,
    ChecklistUpdateResponse, ReadinessResponse,
)
from auditflow.api.schemas.observations import ObservationCreate, ObservationResponse
from auditflow.db import get_db
from auditflow.db.models import ObservationStatus, RiskLevel, User
from auditflow.workflow.base import Collaborators
from auditflow.workflow.checklist import AnswerPatch, ChecklistEngine, ChecklistUpdate, summarize
from auditflow.workflow.lifecycle import AuditDraft, AuditLifecycleManager
from auditflow.workflow.observations import ObservationDraft, ObservationWorkflow

router = APIRouter()


def _update_response(update: ChecklistUpdate) -> ChecklistUpdateResponse:
    return ChecklistUpdateResponse(
        items=[ChecklistItemResponse.model_validate(i) for i in update.items],
        summary=ChecklistSummaryResponse.model_validate(update.summary),
        audit_status=update.audit.status,
        checklist_completed=update.checklist_completed,
    )


# === Lifecycle ===

@router.post("", response_model=AuditResponse, status_code=201)
async def create_audit(
    data: AuditCreate,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Plan a new audit from a template"""
    draft = AuditDraft(
        template_id=data.template_id,
        title=data.title,
        scheduled_date=data.scheduled_date,
        scope=data.scope,
        audit_type=data.audit_type,
        standard=data.standard,
        team=[m.model_dump(mode="json") for m in data.team],
        areas=[a.model_dump(mode="json") for a in data.areas],
    )
    manager = AuditLifecycleManager(db, collaborators)
    return unwrap_or_http(await manager.create_audit(actor, draft))


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(
    audit_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    return unwrap_or_http(await AuditLifecycleManager(db, collaborators).get(audit_id, actor))


@router.post("/{audit_id}/start", response_model=AuditResponse)
async def start_audit(
    audit_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    return unwrap_or_http(await AuditLifecycleManager(db, collaborators).start(audit_id, actor))


@router.post("/{audit_id}/finalize", response_model=AuditResponse)
async def finalize_observations(
    audit_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Mark the findings set final (-> completed)"""
    manager = AuditLifecycleManager(db, collaborators)
    return unwrap_or_http(await manager.mark_observations_finalized(audit_id, actor))


@router.get("/{audit_id}/readiness", response_model=ReadinessResponse)
async def closure_readiness(
    audit_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Closure gate result, without side effects"""
    return unwrap_or_http(await AuditLifecycleManager(db, collaborators).readiness(audit_id, actor))


@router.post("/{audit_id}/close", response_model=AuditResponse)
async def close_audit(
    audit_id: uuid.UUID,
    data: AuditClose,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    manager = AuditLifecycleManager(db, collaborators)
    return unwrap_or_http(await manager.close(audit_id, actor, data.closure_comments))


# === Checklist ===

@router.post("/{audit_id}/checklist", response_model=ChecklistResponse)
async def initialize_checklist(
    audit_id: uuid.UUID,
    data: ChecklistInitialize,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Copy template questions into the audit. Repeated calls return the same items."""
    items = unwrap_or_http(
        await ChecklistEngine(db, collaborators).initialize(audit_id, actor, data.template_id)
    )
    return ChecklistResponse(
        items=[ChecklistItemResponse.model_validate(i) for i in items],
        summary=ChecklistSummaryResponse.model_validate(summarize(items)),
    )


@router.get("/{audit_id}/checklist", response_model=ChecklistResponse)
async def get_checklist(
    audit_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    engine = ChecklistEngine(db, collaborators)
    summary = unwrap_or_http(await engine.summary(audit_id, actor))
    items = await engine.load_items(audit_id)
    return ChecklistResponse(
        items=[ChecklistItemResponse.model_validate(i) for i in items],
        summary=ChecklistSummaryResponse.model_validate(summary),
    )


@router.patch("/{audit_id}/checklist/{item_id}", response_model=ChecklistUpdateResponse)
async def answer_checklist_item(
    audit_id: uuid.UUID,
    item_id: uuid.UUID,
    data: ChecklistAnswerUpdate,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    update = unwrap_or_http(
        await ChecklistEngine(db, collaborators).answer(
            audit_id,
            item_id,
            actor,
            answer=data.answer,
            remarks=data.remarks,
            evidence=data.evidence,
        )
    )
    return _update_response(update)


@router.patch("/{audit_id}/checklist", response_model=ChecklistUpdateResponse)
async def answer_checklist_batch(
    audit_id: uuid.UUID,
    data: ChecklistBatchUpdate,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Save several answers at once; the summary is recomputed once"""
    patches = [
        AnswerPatch(item_id=a.item_id, answer=a.answer, remarks=a.remarks, evidence=a.evidence)
        for a in data.answers
    ]
    update = unwrap_or_http(await ChecklistEngine(db, collaborators).answer_many(audit_id, patches, actor))
    return _update_response(update)


# === Observations of an audit ===

@router.post("/{audit_id}/observations", response_model=ObservationResponse, status_code=201)
async def create_observation(
    audit_id: uuid.UUID,
    data: ObservationCreate,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(
        await workflow.create(audit_id, actor, ObservationDraft(**data.model_dump()))
    )
    return observation_response(observation, workflow.clock())


@router.get("/{audit_id}/observations", response_model=List[ObservationResponse])
async def list_observations(
    audit_id: uuid.UUID,
    status: Optional[ObservationStatus] = None,
    risk_level: Optional[RiskLevel] = None,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    workflow = ObservationWorkflow(db, collaborators)
    observations = unwrap_or_http(
        await workflow.list_for_audit(audit_id, actor, status=status, risk_level=risk_level)
    )
    now = workflow.clock()
    return [observation_response(o, now) for o in observations]
