"""
Database models for audits, checklists and corrective-action workflow
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, Text, Integer, Boolean, DateTime, ForeignKey, JSON, Enum as SQLEnum,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import Uuid

from auditflow.core.clock import utcnow
from auditflow.db.database import Base


# === ENUMS ===

class AuditStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    CHECKLIST_COMPLETED = "checklist_completed"
    OBSERVATIONS_PENDING = "observations_pending"
    COMPLETED = "completed"
    CLOSED = "closed"


class AuditType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    REGULATORY = "regulatory"
    MANAGEMENT = "management"
    PROCESS = "process"


class TemplateKind(str, Enum):
    DEFAULT = "default"  # system template, visible to every company
    CUSTOM = "custom"    # owned by one company


class ChecklistAnswer(str, Enum):
    YES = "yes"
    NO = "no"
    NA = "na"
    UNANSWERED = "unanswered"


class ObservationStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"  # legacy rows only; a rejection review moves back to ASSIGNED


class ObservationCategory(str, Enum):
    NON_COMPLIANCE = "non_compliance"
    OBSERVATION = "observation"
    OPPORTUNITY = "opportunity"


class Severity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReminderStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    FIRED = "fired"


# === MODELS ===

class User(Base):
    """Person reference within a company (tenant). Not an auth record."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="worker")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class AuditTemplate(Base):
    """Checklist template copied into each audit"""
    __tablename__ = "audit_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # NULL for DEFAULT templates
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    standard: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[str] = mapped_column(String(20), default="1.0")
    kind: Mapped[TemplateKind] = mapped_column(SQLEnum(TemplateKind), default=TemplateKind.CUSTOM)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Ordered list of {id, category, element, question, clause, legal_standard}
    questions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Audit(Base):
    """Scheduled compliance review with its own checklist and observations"""
    __tablename__ = "audits"
    __table_args__ = (
        UniqueConstraint("company_id", "audit_number", name="uq_audits_company_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    audit_number: Mapped[str] = mapped_column(String(32), nullable=False)
    template_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("audit_templates.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    audit_type: Mapped[AuditType] = mapped_column(SQLEnum(AuditType), default=AuditType.INTERNAL)
    standard: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    auditor_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    # [{member_id, role}]
    team: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # [{name, in_charge_id}]
    areas: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actual_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[AuditStatus] = mapped_column(SQLEnum(AuditStatus), default=AuditStatus.PLANNED, nullable=False)

    # Milestones
    checklist_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    observations_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    closure_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    template: Mapped["AuditTemplate"] = relationship()
    checklist_items: Mapped[List["ChecklistItem"]] = relationship(
        back_populates="audit", order_by="ChecklistItem.position"
    )
    observations: Mapped[List["Observation"]] = relationship(back_populates="audit")

    @property
    def team_member_ids(self) -> list[str]:
        return [str(m.get("member_id")) for m in (self.team or []) if m.get("member_id")]


class ChecklistItem(Base):
    """One template question copied into a specific audit"""
    __tablename__ = "checklist_items"
    __table_args__ = (
        UniqueConstraint("audit_id", "position", name="uq_checklist_items_audit_position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    audit_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("audits.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-based template order
    question_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    element: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    clause: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    legal_standard: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    answer: Mapped[ChecklistAnswer] = mapped_column(
        SQLEnum(ChecklistAnswer), default=ChecklistAnswer.UNANSWERED, nullable=False
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evidence: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    audit: Mapped["Audit"] = relationship(back_populates="checklist_items")


class Observation(Base):
    """Finding recorded against an audit; carries its corrective action"""
    __tablename__ = "observations"
    __table_args__ = (
        UniqueConstraint("company_id", "observation_number", name="uq_observations_company_number"),
        Index("ix_observations_responsible_status", "responsible_person_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    audit_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("audits.id"), nullable=False, index=True)
    observation_number: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    element: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    legal_standard: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[ObservationCategory] = mapped_column(
        SQLEnum(ObservationCategory), default=ObservationCategory.NON_COMPLIANCE
    )
    severity: Mapped[Severity] = mapped_column(SQLEnum(Severity), nullable=False)
    risk_level: Mapped[RiskLevel] = mapped_column(SQLEnum(RiskLevel), nullable=False)
    risk_score_override: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Corrective action
    responsible_person_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    assigned_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    target_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[ObservationStatus] = mapped_column(
        SQLEnum(ObservationStatus), default=ObservationStatus.OPEN, nullable=False
    )
    action_taken: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completion_evidence: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Review
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    review_decision: Mapped[Optional[ReviewDecision]] = mapped_column(SQLEnum(ReviewDecision), nullable=True)
    review_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    audit: Mapped["Audit"] = relationship(back_populates="observations")
    events: Mapped[List["ObservationEvent"]] = relationship(
        back_populates="observation", order_by="ObservationEvent.occurred_at"
    )

    @property
    def risk_score(self) -> int:
        from auditflow.workflow.observations import risk_score_for
        return risk_score_for(self)


class ObservationEvent(Base):
    """Append-only transition history of an observation"""
    __tablename__ = "observation_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    observation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("observations.id"), nullable=False, index=True
    )
    from_status: Mapped[Optional[ObservationStatus]] = mapped_column(SQLEnum(ObservationStatus), nullable=True)
    to_status: Mapped[ObservationStatus] = mapped_column(SQLEnum(ObservationStatus), nullable=False)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    # action_taken, evidence, comments, rejection_reason, assignee...
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    observation: Mapped["Observation"] = relationship(back_populates="events")


class ScheduledReminder(Base):
    """Ledger of the Celery-backed reminder scheduler"""
    __tablename__ = "scheduled_reminders"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "kind", name="uq_scheduled_reminders_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    # Celery task id of the pending run; a fired task whose id no longer matches is stale
    task_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    eta: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cadence_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[ReminderStatus] = mapped_column(
        SQLEnum(ReminderStatus), default=ReminderStatus.SCHEDULED, nullable=False
    )
    fire_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Notification(Base):
    """In-app notification written by the database publisher"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    event: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
