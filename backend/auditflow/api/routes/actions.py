"""
"My actions": open corrective actions of the caller across modules
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.api.deps import get_actor
from auditflow.api.schemas.observations import CorrectiveActionResponse
from auditflow.core.clock import utcnow
from auditflow.db import get_db
from auditflow.db.models import User
from auditflow.workflow.actions import actions_for_person

router = APIRouter()


@router.get("/mine", response_model=List[CorrectiveActionResponse])
async def my_actions(
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    actions = await actions_for_person(db, actor.company_id, actor.id)
    return [
        CorrectiveActionResponse(
            id=a.id,
            source=a.source,
            reference=a.reference,
            description=a.description,
            responsible_person_id=a.responsible_person_id,
            target_date=a.target_date,
            status=a.status,
            risk_score=getattr(a, "risk_score", None),
            is_overdue=a.is_overdue(now),
        )
        for a in actions
    ]
