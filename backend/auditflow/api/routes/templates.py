"""
Checklist template routes
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.api.deps import get_actor, unwrap_or_http
from auditflow.api.schemas.audits import TemplateCreate, TemplateResponse
from auditflow.db import get_db
from auditflow.db.models import User
from auditflow.workflow.template_catalog import (
    TemplateDraft, create_custom_template, list_visible_templates,
)

router = APIRouter()


@router.get("", response_model=List[TemplateResponse])
async def list_templates(
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """System default templates plus the company's own"""
    return await list_visible_templates(db, actor.company_id)


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    actor: User = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    draft = TemplateDraft(
        name=data.name,
        standard=data.standard,
        description=data.description,
        questions=[q.model_dump() for q in data.questions],
    )
    return unwrap_or_http(await create_custom_template(db, actor, draft))
