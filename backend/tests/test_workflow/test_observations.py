"""
Tests for the observation / corrective-action workflow
"""
import uuid
from datetime import date, datetime, time, timedelta

import pytest

from auditflow.adapters.scheduler import InMemoryReminderScheduler
from auditflow.core.clock import utcnow
from auditflow.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from auditflow.db.models import (
    Audit, AuditStatus, Observation, ObservationStatus, ReviewDecision, RiskLevel, Severity, User,
)
from auditflow.workflow.observations import (
    ObservationWorkflow, compute_risk_score, is_overdue, risk_score_for, target_reminder_key,
)

from conftest import finding


class TestRiskScore:
    """Tests for risk scoring"""

    def test_major_high_is_six(self):
        assert compute_risk_score(Severity.MAJOR, RiskLevel.HIGH) == 6

    def test_extremes(self):
        assert compute_risk_score(Severity.MINOR, RiskLevel.LOW) == 1
        assert compute_risk_score(Severity.CRITICAL, RiskLevel.VERY_HIGH) == 12

    def test_override_wins(self):
        observation = Observation(severity=Severity.MINOR, risk_level=RiskLevel.LOW, risk_score_override=9)
        assert risk_score_for(observation) == 9
        assert observation.risk_score == 9

    def test_model_property(self):
        observation = Observation(severity=Severity.CRITICAL, risk_level=RiskLevel.MEDIUM)
        assert observation.risk_score == 6


class TestOverdue:
    """Tests for the overdue predicate"""

    def test_past_target_is_overdue(self):
        now = datetime(2026, 10, 19, 12, 0)
        observation = Observation(status=ObservationStatus.IN_PROGRESS, target_date=now - timedelta(minutes=1))
        assert is_overdue(observation, now)

    def test_same_day_later_time_is_not_overdue(self):
        now = datetime(2026, 10, 19, 12, 0)
        observation = Observation(
            status=ObservationStatus.ASSIGNED,
            target_date=datetime.combine(date(2026, 10, 19), time.max),
        )
        assert not is_overdue(observation, now)

    def test_completed_and_approved_are_never_overdue(self):
        now = datetime(2026, 10, 19, 12, 0)
        past = now - timedelta(days=3)
        for status in (ObservationStatus.COMPLETED, ObservationStatus.APPROVED):
            assert not is_overdue(Observation(status=status, target_date=past), now)

    def test_no_target(self):
        assert not is_overdue(Observation(status=ObservationStatus.OPEN), utcnow())


class TestCreate:
    """Tests for recording findings"""

    @pytest.mark.asyncio
    async def test_create_opens_observation_and_moves_audit(
        self, observations: ObservationWorkflow, checklist_done_audit: Audit, auditor: User, notifier
    ):
        observation = (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()

        assert observation.status == ObservationStatus.OPEN
        assert observation.observation_number == f"OBS{utcnow():%y%m}001"
        assert observation.risk_score == 6
        assert observation.assigned_by_id == auditor.id
        assert checklist_done_audit.status == AuditStatus.OBSERVATIONS_PENDING
        assert "observation.created" in notifier.names()

    @pytest.mark.asyncio
    async def test_numbers_increment(
        self, observations: ObservationWorkflow, checklist_done_audit: Audit, auditor: User
    ):
        first = (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()
        second = (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()

        assert first.observation_number.endswith("001")
        assert second.observation_number.endswith("002")

    @pytest.mark.asyncio
    async def test_in_progress_audit_rejects_findings(
        self, observations: ObservationWorkflow, started_audit: Audit, auditor: User
    ):
        result = await observations.create(started_audit.id, auditor, finding())
        assert isinstance(result.error, InvalidTransitionError)
        assert result.error.current == "in_progress"

    @pytest.mark.asyncio
    async def test_description_required(
        self, observations: ObservationWorkflow, checklist_done_audit: Audit, auditor: User
    ):
        result = await observations.create(checklist_done_audit.id, auditor, finding(description="  "))
        assert isinstance(result.error, ValidationError)
        assert result.error.reasons == ["description is required"]

    @pytest.mark.asyncio
    async def test_unknown_audit(self, observations: ObservationWorkflow, auditor: User):
        result = await observations.create(uuid.uuid4(), auditor, finding())
        assert isinstance(result.error, NotFoundError)


class TestAssignAndExecute:
    """Tests for assignment, start and completion"""

    @pytest.mark.asyncio
    async def test_assign_schedules_cadenced_reminder(
        self,
        observations: ObservationWorkflow,
        open_observation: Observation,
        auditor: User,
        worker: User,
        scheduler: InMemoryReminderScheduler,
        notifier,
    ):
        target = utcnow() + timedelta(days=10)
        observation = (await observations.assign(open_observation.id, auditor, worker.id, target)).unwrap()

        assert observation.status == ObservationStatus.ASSIGNED
        assert observation.responsible_person_id == worker.id
        entry = scheduler.entries[target_reminder_key(observation.id)]
        assert entry.eta == target - timedelta(hours=24)
        assert entry.cadence == timedelta(hours=24)
        assert entry.payload["event"] == "observation.target_reminder"
        assert entry.payload["recipients"] == [str(worker.id)]
        assert notifier.events[-1].event == "observation.assigned"

    @pytest.mark.asyncio
    async def test_date_target_runs_to_end_of_day(
        self, observations: ObservationWorkflow, open_observation: Observation, auditor: User, worker: User
    ):
        target = date.today() + timedelta(days=5)
        observation = (await observations.assign(open_observation.id, auditor, worker.id, target)).unwrap()
        assert observation.target_date == datetime.combine(target, time.max)

    @pytest.mark.asyncio
    async def test_assignee_must_belong_to_company(
        self, observations: ObservationWorkflow, open_observation: Observation, auditor: User, outsider: User
    ):
        result = await observations.assign(open_observation.id, auditor, outsider.id, utcnow())
        assert isinstance(result.error, ValidationError)
        assert open_observation.status == ObservationStatus.OPEN

    @pytest.mark.asyncio
    async def test_start_requires_assignment(
        self, observations: ObservationWorkflow, open_observation: Observation, worker: User
    ):
        result = await observations.start(open_observation.id, worker)
        assert isinstance(result.error, InvalidTransitionError)
        assert result.error.current == "open"
        assert result.error.requested == "in_progress"

    @pytest.mark.asyncio
    async def test_full_execution_path(
        self,
        observations: ObservationWorkflow,
        open_observation: Observation,
        auditor: User,
        worker: User,
        scheduler: InMemoryReminderScheduler,
    ):
        (await observations.assign(open_observation.id, auditor, worker.id, utcnow() + timedelta(days=3))).unwrap()
        started = (await observations.start(open_observation.id, worker)).unwrap()
        assert started.status == ObservationStatus.IN_PROGRESS

        done = (await observations.complete(open_observation.id, worker, "Guard refitted", "img.jpg")).unwrap()
        assert done.status == ObservationStatus.COMPLETED
        assert done.completed_by_id == worker.id
        assert done.completed_at is not None
        assert target_reminder_key(done.id) not in scheduler.entries
        assert target_reminder_key(done.id) in scheduler.cancelled

    @pytest.mark.asyncio
    async def test_complete_requires_action_taken(
        self, observations: ObservationWorkflow, open_observation: Observation, auditor: User, worker: User
    ):
        (await observations.assign(open_observation.id, auditor, worker.id, utcnow())).unwrap()
        result = await observations.complete(open_observation.id, worker, "")

        assert isinstance(result.error, ValidationError)
        assert result.error.reasons == ["action taken is required"]


class TestReassign:
    """Tests for handing an outstanding action to someone else"""

    @pytest.mark.asyncio
    async def test_in_progress_action_moves_to_new_assignee(
        self,
        observations: ObservationWorkflow,
        open_observation: Observation,
        auditor: User,
        worker: User,
        foreman: User,
        scheduler: InMemoryReminderScheduler,
        notifier,
    ):
        first_target = utcnow() + timedelta(days=3)
        (await observations.assign(open_observation.id, auditor, worker.id, first_target)).unwrap()
        (await observations.start(open_observation.id, worker)).unwrap()

        new_target = utcnow() + timedelta(days=20)
        observation = (
            await observations.reassign(open_observation.id, auditor, foreman.id, new_target, "Worker left the site")
        ).unwrap()

        assert observation.status == ObservationStatus.ASSIGNED
        assert observation.responsible_person_id == foreman.id
        assert observation.target_date == new_target

        entry = scheduler.entries[target_reminder_key(observation.id)]
        assert entry.eta == new_target - timedelta(hours=24)
        assert entry.payload["recipients"] == [str(foreman.id)]

        assert notifier.events[-1].event == "observation.reassigned"
        assert notifier.events[-1].payload["recipients"] == [str(foreman.id), str(worker.id)]

        event = (await observations.history(observation.id, auditor)).unwrap()[-1]
        assert event.from_status == ObservationStatus.IN_PROGRESS
        assert event.to_status == ObservationStatus.ASSIGNED
        assert event.details["previous_responsible_person_id"] == str(worker.id)
        assert event.details["previous_target_date"] == first_target.isoformat()
        assert event.details["reassignment_reason"] == "Worker left the site"

    @pytest.mark.asyncio
    async def test_open_observation_cannot_be_reassigned(
        self, observations: ObservationWorkflow, open_observation: Observation, auditor: User, foreman: User
    ):
        result = await observations.reassign(open_observation.id, auditor, foreman.id, utcnow(), "No owner")

        assert isinstance(result.error, InvalidTransitionError)
        assert result.error.current == "open"

    @pytest.mark.asyncio
    async def test_completed_action_cannot_be_reassigned(
        self, observations: ObservationWorkflow, completed_observation: Observation, auditor: User, foreman: User
    ):
        result = await observations.reassign(completed_observation.id, auditor, foreman.id, utcnow(), "Too late")

        assert isinstance(result.error, InvalidTransitionError)
        assert result.error.current == "completed"

    @pytest.mark.asyncio
    async def test_reason_and_colleague_required(
        self,
        observations: ObservationWorkflow,
        open_observation: Observation,
        auditor: User,
        worker: User,
        outsider: User,
    ):
        (await observations.assign(open_observation.id, auditor, worker.id, utcnow() + timedelta(days=3))).unwrap()

        result = await observations.reassign(open_observation.id, auditor, outsider.id, utcnow(), "  ")

        assert isinstance(result.error, ValidationError)
        assert result.error.reasons == [
            "responsible person must be an active user of this company",
            "reassignment reason is required",
        ]
        assert open_observation.responsible_person_id == worker.id


class TestReview:
    """Tests for approval and rejection"""

    @pytest.mark.asyncio
    async def test_reject_returns_to_assigned_and_keeps_work(
        self,
        observations: ObservationWorkflow,
        completed_observation: Observation,
        auditor: User,
        worker: User,
        scheduler: InMemoryReminderScheduler,
        notifier,
    ):
        result = await observations.review(
            completed_observation.id,
            auditor,
            ReviewDecision.REJECT,
            rejection_reason="insufficient evidence",
        )
        observation = result.unwrap()

        assert observation.status == ObservationStatus.ASSIGNED
        assert observation.rejection_reason == "insufficient evidence"
        assert observation.action_taken == "Pallets moved to racking"
        assert observation.completion_evidence == "photo-123.jpg"
        assert observation.review_decision == ReviewDecision.REJECT
        assert target_reminder_key(observation.id) in scheduler.entries
        assert notifier.events[-1].event == "observation.rejected"
        assert notifier.events[-1].payload["recipients"] == [str(worker.id)]

    @pytest.mark.asyncio
    async def test_rejected_action_can_be_redone_and_approved(
        self, observations: ObservationWorkflow, completed_observation: Observation, auditor: User, worker: User
    ):
        (await observations.review(
            completed_observation.id, auditor, ReviewDecision.REJECT, rejection_reason="insufficient evidence"
        )).unwrap()
        (await observations.complete(completed_observation.id, worker, "Racking installed", "photo-2.jpg")).unwrap()
        approved = (await observations.review(completed_observation.id, auditor, ReviewDecision.APPROVE)).unwrap()

        assert approved.status == ObservationStatus.APPROVED
        assert approved.action_taken == "Racking installed"

        events = (await observations.history(completed_observation.id, auditor)).unwrap()
        assert [e.to_status for e in events] == [
            ObservationStatus.OPEN,
            ObservationStatus.ASSIGNED,
            ObservationStatus.COMPLETED,
            ObservationStatus.ASSIGNED,
            ObservationStatus.COMPLETED,
            ObservationStatus.APPROVED,
        ]
        rejection = events[3]
        assert rejection.details["rejection_reason"] == "insufficient evidence"
        assert rejection.details["action_taken"] == "Pallets moved to racking"

    @pytest.mark.asyncio
    async def test_rejection_requires_reason(
        self, observations: ObservationWorkflow, completed_observation: Observation, auditor: User
    ):
        result = await observations.review(completed_observation.id, auditor, ReviewDecision.REJECT)
        assert isinstance(result.error, ValidationError)
        assert completed_observation.status == ObservationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_second_review_is_invalid(
        self,
        observations: ObservationWorkflow,
        completed_observation: Observation,
        auditor: User,
        scheduler: InMemoryReminderScheduler,
        notifier,
    ):
        (await observations.review(completed_observation.id, auditor, ReviewDecision.APPROVE)).unwrap()
        assert notifier.events[-1].event == "observation.approved"

        again = await observations.review(completed_observation.id, auditor, ReviewDecision.APPROVE)
        assert isinstance(again.error, InvalidTransitionError)
        assert again.error.current == "approved"

    @pytest.mark.asyncio
    async def test_review_requires_completion(
        self, observations: ObservationWorkflow, open_observation: Observation, auditor: User
    ):
        result = await observations.review(open_observation.id, auditor, ReviewDecision.APPROVE)
        assert isinstance(result.error, InvalidTransitionError)


class TestQueries:
    """Tests for listing and history"""

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_risk(
        self, observations: ObservationWorkflow, checklist_done_audit: Audit, auditor: User, worker: User
    ):
        low = (await observations.create(
            checklist_done_audit.id, auditor, finding(risk_level=RiskLevel.LOW)
        )).unwrap()
        high = (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()
        (await observations.assign(high.id, auditor, worker.id, utcnow())).unwrap()

        everything = (await observations.list_for_audit(checklist_done_audit.id, auditor)).unwrap()
        assert [o.id for o in everything] == [low.id, high.id]

        open_only = (await observations.list_for_audit(
            checklist_done_audit.id, auditor, status=ObservationStatus.OPEN
        )).unwrap()
        assert [o.id for o in open_only] == [low.id]

        high_risk = (await observations.list_for_audit(
            checklist_done_audit.id, auditor, risk_level=RiskLevel.HIGH
        )).unwrap()
        assert [o.id for o in high_risk] == [high.id]

    @pytest.mark.asyncio
    async def test_history_of_unknown_observation(self, observations: ObservationWorkflow, auditor: User):
        result = await observations.history(uuid.uuid4(), auditor)
        assert isinstance(result.error, NotFoundError)
