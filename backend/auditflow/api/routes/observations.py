"""
Observation / corrective-action routes
"""
import uuid
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.api.deps import get_actor, get_collaborators, unwrap_or_http
from auditflow.api.schemas.observations import (
    ObservationAssign, ObservationComplete, ObservationEventResponse,
    ObservationReassign, ObservationResponse, ObservationReview,
)
from auditflow.db import get_db
from auditflow.db.models import Observation, User
from auditflow.workflow.base import Collaborators
from auditflow.workflow.observations import ObservationWorkflow, is_overdue

router = APIRouter()


def observation_response(observation: Observation, now: datetime) -> ObservationResponse:
    response = ObservationResponse.model_validate(observation)
    response.is_overdue = is_overdue(observation, now)
    return response


@router.post("/{observation_id}/assign", response_model=ObservationResponse)
async def assign_observation(
    observation_id: uuid.UUID,
    data: ObservationAssign,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(
        await workflow.assign(observation_id, actor, data.responsible_person_id, data.target_date)
    )
    return observation_response(observation, workflow.clock())


@router.post("/{observation_id}/reassign", response_model=ObservationResponse)
async def reassign_observation(
    observation_id: uuid.UUID,
    data: ObservationReassign,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Move an outstanding action to another person or target date"""
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(
        await workflow.reassign(
            observation_id, actor, data.responsible_person_id, data.target_date, data.reason
        )
    )
    return observation_response(observation, workflow.clock())


@router.post("/{observation_id}/start", response_model=ObservationResponse)
async def start_observation_action(
    observation_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(await workflow.start(observation_id, actor))
    return observation_response(observation, workflow.clock())


@router.post("/{observation_id}/complete", response_model=ObservationResponse)
async def complete_observation_action(
    observation_id: uuid.UUID,
    data: ObservationComplete,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(
        await workflow.complete(observation_id, actor, data.action_taken, data.completion_evidence)
    )
    return observation_response(observation, workflow.clock())


@router.post("/{observation_id}/review", response_model=ObservationResponse)
async def review_observation(
    observation_id: uuid.UUID,
    data: ObservationReview,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Approve, or reject back to assigned with a reason"""
    workflow = ObservationWorkflow(db, collaborators)
    observation = unwrap_or_http(
        await workflow.review(
            observation_id,
            actor,
            data.decision,
            comments=data.comments,
            rejection_reason=data.rejection_reason,
        )
    )
    return observation_response(observation, workflow.clock())


@router.get("/{observation_id}/history", response_model=List[ObservationEventResponse])
async def observation_history(
    observation_id: uuid.UUID,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    return unwrap_or_http(await ObservationWorkflow(db, collaborators).history(observation_id, actor))
