"""
Test configuration and fixtures
"""
import os
import uuid
from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_BACKEND"] = "memory"
os.environ["NOTIFIER_BACKEND"] = "memory"
os.environ["DEBUG"] = "false"

from auditflow.adapters.notifier import InMemoryNotificationPublisher
from auditflow.adapters.scheduler import InMemoryReminderScheduler
from auditflow.core.clock import utcnow
from auditflow.db.database import Base, get_db
from auditflow.db.models import (
    Audit, AuditTemplate, ChecklistAnswer, Observation, ReviewDecision, Severity,
    RiskLevel, TemplateKind, User,
)
from auditflow.main import app
from auditflow.workflow.base import Collaborators
from auditflow.workflow.checklist import AnswerPatch, ChecklistEngine
from auditflow.workflow.lifecycle import AuditDraft, AuditLifecycleManager
from auditflow.workflow.observations import ObservationDraft, ObservationWorkflow


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COMPANY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c1")
OTHER_COMPANY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c2")


def make_questions(count: int) -> list[dict]:
    return [
        {
            "id": f"Q_{i}",
            "category": "General",
            "element": f"Element {i}",
            "question": f"Is requirement {i} met?",
            "clause": f"4.{i}",
            "legal_standard": "ISO 45001:2018",
        }
        for i in range(1, count + 1)
    ]


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for tests"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# === Collaborators ===

@pytest.fixture
def scheduler() -> InMemoryReminderScheduler:
    return InMemoryReminderScheduler()


@pytest.fixture
def notifier() -> InMemoryNotificationPublisher:
    return InMemoryNotificationPublisher()


@pytest.fixture
def collaborators(scheduler, notifier) -> Collaborators:
    return Collaborators(scheduler=scheduler, notifier=notifier)


@pytest.fixture
def lifecycle(db_session, collaborators) -> AuditLifecycleManager:
    return AuditLifecycleManager(db_session, collaborators)


@pytest.fixture
def checklist(db_session, collaborators) -> ChecklistEngine:
    return ChecklistEngine(db_session, collaborators)


@pytest.fixture
def observations(db_session, collaborators) -> ObservationWorkflow:
    return ObservationWorkflow(db_session, collaborators)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, collaborators: Collaborators) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database session override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.collaborators = collaborators

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    del app.state.collaborators


# === Sample Data Fixtures ===

async def _add_user(db: AsyncSession, name: str, role: str, company_id=COMPANY_ID, is_active=True) -> User:
    user = User(company_id=company_id, name=name, email=f"{name.lower()}@example.com", role=role, is_active=is_active)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def auditor(db_session: AsyncSession) -> User:
    """User allowed to plan and close audits"""
    return await _add_user(db_session, "Auditor", "auditor")


@pytest_asyncio.fixture
async def worker(db_session: AsyncSession) -> User:
    """Plant staff who carries out corrective actions"""
    return await _add_user(db_session, "Worker", "worker")


@pytest_asyncio.fixture
async def foreman(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "Foreman", "worker")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    """Auditor of another company"""
    return await _add_user(db_session, "Outsider", "auditor", company_id=OTHER_COMPANY_ID)


@pytest_asyncio.fixture
async def sample_template(db_session: AsyncSession) -> AuditTemplate:
    """System template with ten questions"""
    template = AuditTemplate(
        company_id=None,
        code="TEST_10",
        name="Ten Question Audit",
        standard="ISO 45001:2018",
        kind=TemplateKind.DEFAULT,
        questions=make_questions(10),
    )
    db_session.add(template)
    await db_session.commit()
    await db_session.refresh(template)
    return template


@pytest_asyncio.fixture
async def planned_audit(
    lifecycle: AuditLifecycleManager,
    auditor: User,
    worker: User,
    sample_template: AuditTemplate,
) -> Audit:
    result = await lifecycle.create_audit(
        auditor,
        AuditDraft(
            template_id=sample_template.id,
            title="Quarterly plant audit",
            scheduled_date=utcnow() + timedelta(days=7),
            team=[{"member_id": str(worker.id), "role": "member"}],
        ),
    )
    return result.unwrap()


@pytest_asyncio.fixture
async def started_audit(
    lifecycle: AuditLifecycleManager,
    checklist: ChecklistEngine,
    planned_audit: Audit,
    auditor: User,
) -> Audit:
    """In progress, checklist initialized"""
    audit = (await lifecycle.start(planned_audit.id, auditor)).unwrap()
    (await checklist.initialize(audit.id, auditor)).unwrap()
    return audit


async def answer_all(
    checklist: ChecklistEngine,
    audit: Audit,
    actor: User,
    no_count: int = 0,
    na_count: int = 0,
):
    """Answer every item: the first ``no_count`` no, then ``na_count`` na, the rest yes."""
    items = await checklist.load_items(audit.id)
    patches = []
    for index, item in enumerate(items):
        if index < no_count:
            answer = ChecklistAnswer.NO
        elif index < no_count + na_count:
            answer = ChecklistAnswer.NA
        else:
            answer = ChecklistAnswer.YES
        patches.append(AnswerPatch(item_id=item.id, answer=answer))
    return (await checklist.answer_many(audit.id, patches, actor)).unwrap()


@pytest_asyncio.fixture
async def checklist_done_audit(checklist: ChecklistEngine, started_audit: Audit, auditor: User) -> Audit:
    """Checklist fully answered with one non-compliance"""
    update = await answer_all(checklist, started_audit, auditor, no_count=1)
    return update.audit


def finding(**overrides) -> ObservationDraft:
    data = dict(
        description="Fire exit blocked by pallets",
        severity=Severity.MAJOR,
        risk_level=RiskLevel.HIGH,
    )
    data.update(overrides)
    return ObservationDraft(**data)


@pytest_asyncio.fixture
async def open_observation(
    observations: ObservationWorkflow,
    checklist_done_audit: Audit,
    auditor: User,
) -> Observation:
    return (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()


@pytest_asyncio.fixture
async def completed_observation(
    observations: ObservationWorkflow,
    open_observation: Observation,
    auditor: User,
    worker: User,
) -> Observation:
    """Assigned to the worker and completed, awaiting review"""
    target = utcnow() + timedelta(days=14)
    (await observations.assign(open_observation.id, auditor, worker.id, target)).unwrap()
    return (
        await observations.complete(
            open_observation.id,
            worker,
            "Pallets moved to racking",
            completion_evidence="photo-123.jpg",
        )
    ).unwrap()


async def resolve_observation(
    observations: ObservationWorkflow, observation: Observation, auditor: User, worker: User
) -> Observation:
    """Assign, complete and approve one observation"""
    (await observations.assign(observation.id, auditor, worker.id, utcnow() + timedelta(days=5))).unwrap()
    (await observations.complete(observation.id, worker, "Fixed")).unwrap()
    return (await observations.review(observation.id, auditor, ReviewDecision.APPROVE)).unwrap()


@pytest_asyncio.fixture
async def completed_audit(
    lifecycle: AuditLifecycleManager,
    observations: ObservationWorkflow,
    checklist_done_audit: Audit,
    auditor: User,
    worker: User,
) -> Audit:
    """Findings finalized, every observation approved"""
    observation = (await observations.create(checklist_done_audit.id, auditor, finding())).unwrap()
    await resolve_observation(observations, observation, auditor, worker)
    return (await lifecycle.mark_observations_finalized(checklist_done_audit.id, auditor)).unwrap()


@pytest_asyncio.fixture
async def closed_audit(lifecycle: AuditLifecycleManager, completed_audit: Audit, auditor: User) -> Audit:
    return (await lifecycle.close(completed_audit.id, auditor, "All clear")).unwrap()


def actor_headers(user: User) -> dict:
    return {"X-User-Id": str(user.id)}
