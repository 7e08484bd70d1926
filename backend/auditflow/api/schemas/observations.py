"""
Pydantic schemas for observations and corrective actions
"""
from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel

from auditflow.db.models import (
    ObservationCategory, ObservationStatus, ReviewDecision, RiskLevel, Severity,
)


class ObservationCreate(BaseModel):
    description: str
    severity: Severity
    risk_level: RiskLevel
    category: ObservationCategory = ObservationCategory.NON_COMPLIANCE
    element: Optional[str] = None
    legal_standard: Optional[str] = None
    recommendation: Optional[str] = None
    risk_score_override: Optional[int] = None


class ObservationAssign(BaseModel):
    responsible_person_id: UUID
    target_date: Union[datetime, date]


class ObservationReassign(BaseModel):
    responsible_person_id: UUID
    target_date: Union[datetime, date]
    reason: str


class ObservationComplete(BaseModel):
    action_taken: str
    completion_evidence: Optional[str] = None


class ObservationReview(BaseModel):
    decision: ReviewDecision
    comments: Optional[str] = None
    rejection_reason: Optional[str] = None  # required when rejecting


class ObservationResponse(BaseModel):
    id: UUID
    audit_id: UUID
    observation_number: str
    description: str
    element: Optional[str]
    legal_standard: Optional[str]
    recommendation: Optional[str]
    category: ObservationCategory
    severity: Severity
    risk_level: RiskLevel
    risk_score: int
    risk_score_override: Optional[int]
    responsible_person_id: Optional[UUID]
    assigned_by_id: UUID
    target_date: Optional[datetime]
    status: ObservationStatus
    is_overdue: bool = False
    action_taken: Optional[str]
    completion_evidence: Optional[str]
    completed_by_id: Optional[UUID]
    completed_at: Optional[datetime]
    reviewed_by_id: Optional[UUID]
    reviewed_at: Optional[datetime]
    review_decision: Optional[ReviewDecision]
    review_comments: Optional[str]
    rejection_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

    class Config:
        from_attributes = True


class ObservationEventResponse(BaseModel):
    id: UUID
    from_status: Optional[ObservationStatus]
    to_status: ObservationStatus
    actor_id: Optional[UUID]
    occurred_at: datetime
    details: dict

    class Config:
        from_attributes = True


class CorrectiveActionResponse(BaseModel):
    id: UUID
    source: str
    reference: str
    description: str
    responsible_person_id: Optional[UUID]
    target_date: Optional[datetime]
    status: str
    risk_score: Optional[int] = None
    is_overdue: bool = False

    class Config:
        from_attributes = True
