"""Initial audit workflow schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enum labels are the Python member names (SQLAlchemy default)
audit_status = sa.Enum(
    'PLANNED', 'IN_PROGRESS', 'CHECKLIST_COMPLETED', 'OBSERVATIONS_PENDING', 'COMPLETED', 'CLOSED',
    name='auditstatus',
)
audit_type = sa.Enum('INTERNAL', 'EXTERNAL', 'REGULATORY', 'MANAGEMENT', 'PROCESS', name='audittype')
template_kind = sa.Enum('DEFAULT', 'CUSTOM', name='templatekind')
checklist_answer = sa.Enum('YES', 'NO', 'NA', 'UNANSWERED', name='checklistanswer')
observation_status = sa.Enum(
    'OPEN', 'ASSIGNED', 'IN_PROGRESS', 'COMPLETED', 'APPROVED', 'REJECTED',
    name='observationstatus',
)
observation_category = sa.Enum('NON_COMPLIANCE', 'OBSERVATION', 'OPPORTUNITY', name='observationcategory')
severity = sa.Enum('MINOR', 'MAJOR', 'CRITICAL', name='severity')
risk_level = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'VERY_HIGH', name='risklevel')
review_decision = sa.Enum('APPROVE', 'REJECT', name='reviewdecision')
reminder_status = sa.Enum('SCHEDULED', 'CANCELLED', 'FIRED', name='reminderstatus')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'audit_templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('code', sa.String(64), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('standard', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.String(20), nullable=True),
        sa.Column('kind', template_kind, nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('questions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'audits',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('audit_number', sa.String(32), nullable=False),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('audit_templates.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('audit_type', audit_type, nullable=True),
        sa.Column('standard', sa.String(255), nullable=True),
        sa.Column('auditor_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('team', sa.JSON(), nullable=False),
        sa.Column('areas', sa.JSON(), nullable=False),
        sa.Column('scheduled_date', sa.DateTime(), nullable=False),
        sa.Column('actual_date', sa.DateTime(), nullable=True),
        sa.Column('status', audit_status, nullable=False),
        sa.Column('checklist_completed_at', sa.DateTime(), nullable=True),
        sa.Column('observations_completed_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('closed_by_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('closure_comments', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.UniqueConstraint('company_id', 'audit_number', name='uq_audits_company_number'),
    )

    op.create_table(
        'checklist_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('audit_id', sa.Uuid(), sa.ForeignKey('audits.id'), nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.String(64), nullable=True),
        sa.Column('category', sa.String(255), nullable=True),
        sa.Column('element', sa.String(255), nullable=True),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('clause', sa.String(255), nullable=True),
        sa.Column('legal_standard', sa.String(255), nullable=True),
        sa.Column('answer', checklist_answer, nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('evidence', sa.Text(), nullable=True),
        sa.Column('completed_by_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.UniqueConstraint('audit_id', 'position', name='uq_checklist_items_audit_position'),
    )

    op.create_table(
        'observations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('audit_id', sa.Uuid(), sa.ForeignKey('audits.id'), nullable=False, index=True),
        sa.Column('observation_number', sa.String(32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('element', sa.String(255), nullable=True),
        sa.Column('legal_standard', sa.String(255), nullable=True),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('category', observation_category, nullable=True),
        sa.Column('severity', severity, nullable=False),
        sa.Column('risk_level', risk_level, nullable=False),
        sa.Column('risk_score_override', sa.Integer(), nullable=True),
        sa.Column('responsible_person_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assigned_by_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('target_date', sa.DateTime(), nullable=True),
        sa.Column('status', observation_status, nullable=False),
        sa.Column('action_taken', sa.Text(), nullable=True),
        sa.Column('completion_evidence', sa.Text(), nullable=True),
        sa.Column('completed_by_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewed_by_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_decision', review_decision, nullable=True),
        sa.Column('review_comments', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.UniqueConstraint('company_id', 'observation_number', name='uq_observations_company_number'),
    )
    op.create_index(
        'ix_observations_responsible_status',
        'observations',
        ['responsible_person_id', 'status'],
    )

    op.create_table(
        'observation_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('observation_id', sa.Uuid(), sa.ForeignKey('observations.id'), nullable=False, index=True),
        sa.Column('from_status', observation_status, nullable=True),
        sa.Column('to_status', observation_status, nullable=False),
        sa.Column('actor_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
    )

    op.create_table(
        'scheduled_reminders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('task_id', sa.String(64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('eta', sa.DateTime(), nullable=True),
        sa.Column('cadence_seconds', sa.Integer(), nullable=True),
        sa.Column('status', reminder_status, nullable=False),
        sa.Column('fire_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('entity_type', 'entity_id', 'kind', name='uq_scheduled_reminders_key'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('event', sa.String(100), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('scheduled_reminders')
    op.drop_table('observation_events')
    op.drop_index('ix_observations_responsible_status', table_name='observations')
    op.drop_table('observations')
    op.drop_table('checklist_items')
    op.drop_table('audits')
    op.drop_table('audit_templates')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in (
        reminder_status, review_decision, risk_level, severity, observation_category,
        observation_status, checklist_answer, template_kind, audit_type, audit_status,
    ):
        enum.drop(bind, checkfirst=True)
