"""
Pydantic schemas for audits, checklists and templates
"""
from datetime import date, datetime
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from auditflow.db.models import AuditStatus, AuditType, ChecklistAnswer, TemplateKind


# === Templates ===

class TemplateQuestion(BaseModel):
    id: Optional[str] = None
    category: Optional[str] = None
    element: Optional[str] = None
    question: str
    clause: Optional[str] = None
    legal_standard: Optional[str] = None


class TemplateCreate(BaseModel):
    name: str
    standard: str
    description: Optional[str] = None
    questions: List[TemplateQuestion] = Field(default_factory=list)


class TemplateResponse(BaseModel):
    id: UUID
    code: str
    name: str
    standard: str
    description: Optional[str]
    version: str
    kind: TemplateKind
    questions: List[TemplateQuestion] = Field(default_factory=list)

    class Config:
        from_attributes = True


# === Audits ===

class TeamMember(BaseModel):
    member_id: UUID
    role: Optional[str] = None


class AuditArea(BaseModel):
    name: str
    in_charge_id: Optional[UUID] = None


class AuditCreate(BaseModel):
    template_id: UUID
    title: str
    scheduled_date: Union[datetime, date]
    scope: Optional[str] = None
    audit_type: AuditType = AuditType.INTERNAL
    standard: Optional[str] = None
    team: List[TeamMember] = Field(default_factory=list)
    areas: List[AuditArea] = Field(default_factory=list)


class AuditClose(BaseModel):
    closure_comments: Optional[str] = None


class AuditResponse(BaseModel):
    id: UUID
    company_id: UUID
    audit_number: str
    template_id: UUID
    title: str
    scope: Optional[str]
    audit_type: AuditType
    standard: Optional[str]
    auditor_id: UUID
    team: List[dict]
    areas: List[dict]
    scheduled_date: datetime
    actual_date: Optional[datetime]
    status: AuditStatus
    checklist_completed_at: Optional[datetime]
    observations_completed_at: Optional[datetime]
    closed_at: Optional[datetime]
    closed_by_id: Optional[UUID]
    closure_comments: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

    class Config:
        from_attributes = True


class ReadinessResponse(BaseModel):
    allowed: bool
    reasons: List[str]

    class Config:
        from_attributes = True


# === Checklist ===

class ChecklistInitialize(BaseModel):
    template_id: Optional[UUID] = None  # defaults to the audit's template


class ChecklistItemResponse(BaseModel):
    id: UUID
    audit_id: UUID
    position: int
    question_id: Optional[str]
    category: Optional[str]
    element: Optional[str]
    question: str
    clause: Optional[str]
    legal_standard: Optional[str]
    answer: ChecklistAnswer
    remarks: Optional[str]
    evidence: Optional[str]
    completed_by_id: Optional[UUID]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class ChecklistSummaryResponse(BaseModel):
    total_questions: int
    yes_answers: int
    no_answers: int
    na_answers: int
    answered: int
    compliance_percentage: float
    progress_percentage: float

    class Config:
        from_attributes = True


class ChecklistResponse(BaseModel):
    items: List[ChecklistItemResponse]
    summary: ChecklistSummaryResponse


class ChecklistAnswerUpdate(BaseModel):
    answer: Optional[ChecklistAnswer] = None
    remarks: Optional[str] = None
    evidence: Optional[str] = None


class ChecklistBatchItem(ChecklistAnswerUpdate):
    item_id: UUID


class ChecklistBatchUpdate(BaseModel):
    answers: List[ChecklistBatchItem]


class ChecklistUpdateResponse(BaseModel):
    items: List[ChecklistItemResponse]
    summary: ChecklistSummaryResponse
    audit_status: AuditStatus
    checklist_completed: bool
