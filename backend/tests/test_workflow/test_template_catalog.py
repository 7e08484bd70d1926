"""
Tests for the template catalog and document numbering
"""
from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.core.errors import ValidationError
from auditflow.db.models import AuditTemplate, TemplateKind, User
from auditflow.workflow.numbering import next_number, number_prefix
from auditflow.workflow.template_catalog import (
    DEFAULT_TEMPLATES, TemplateDraft, create_custom_template, get_visible_template,
    list_visible_templates, seed_default_templates,
)

from conftest import COMPANY_ID, OTHER_COMPANY_ID, make_questions


class TestSeed:

    @pytest.mark.asyncio
    async def test_seed_is_an_upsert(self, db_session: AsyncSession):
        assert await seed_default_templates(db_session) == len(DEFAULT_TEMPLATES)
        assert await seed_default_templates(db_session) == len(DEFAULT_TEMPLATES)

        count = await db_session.scalar(select(func.count()).select_from(AuditTemplate))
        assert count == len(DEFAULT_TEMPLATES)

        fire = await db_session.scalar(select(AuditTemplate).where(AuditTemplate.code == "FIRE_SAFETY"))
        assert fire.kind == TemplateKind.DEFAULT
        assert fire.company_id is None
        assert fire.questions[3]["id"] == "FS_4"


class TestVisibility:
    """Own templates plus system defaults"""

    @pytest.mark.asyncio
    async def test_custom_templates_are_private(self, db_session: AsyncSession, sample_template: AuditTemplate):
        own = AuditTemplate(
            company_id=COMPANY_ID, code="OWN", name="Own checklist", standard="Internal",
            questions=make_questions(2),
        )
        hidden = AuditTemplate(
            company_id=OTHER_COMPANY_ID, code="THEIRS", name="Their checklist", standard="Internal",
            questions=make_questions(2),
        )
        retired = AuditTemplate(
            company_id=COMPANY_ID, code="OLD", name="Retired checklist", standard="Internal",
            is_active=False,
        )
        db_session.add_all([own, hidden, retired])
        await db_session.commit()

        visible = await list_visible_templates(db_session, COMPANY_ID)
        assert [t.code for t in visible] == ["OWN", "TEST_10"]

        assert await get_visible_template(db_session, hidden.id, COMPANY_ID) is None
        assert await get_visible_template(db_session, retired.id, COMPANY_ID) is None
        assert (await get_visible_template(db_session, sample_template.id, OTHER_COMPANY_ID)).code == "TEST_10"


class TestCustomTemplates:
    """Company templates created through the service"""

    @pytest.mark.asyncio
    async def test_create_generates_code_and_question_ids(
        self, db_session: AsyncSession, auditor: User, outsider: User
    ):
        draft = TemplateDraft(
            name="Plant walk round",
            standard="Internal",
            questions=[{"question": "Guards fitted?"}, {"id": "PW-2", "question": "Floors clear?"}],
        )
        first = (await create_custom_template(db_session, auditor, draft)).unwrap()
        second = (await create_custom_template(db_session, auditor, draft)).unwrap()

        assert first.code == "PLANT_WALK"
        assert second.code == "PLANT_WALK_1"
        assert first.kind == TemplateKind.CUSTOM
        assert first.company_id == auditor.company_id
        assert [q["id"] for q in first.questions] == ["PLANT_WALK_1", "PW-2"]

        assert await get_visible_template(db_session, first.id, auditor.company_id) is not None
        assert await get_visible_template(db_session, first.id, outsider.company_id) is None

    @pytest.mark.asyncio
    async def test_create_validates_role_and_content(self, db_session: AsyncSession, worker: User):
        result = await create_custom_template(
            db_session, worker, TemplateDraft(name=" ", standard="Internal", questions=[{"question": ""}])
        )

        assert isinstance(result.error, ValidationError)
        assert result.error.reasons == [
            "role 'worker' is not allowed to create templates",
            "name is required",
            "1 question(s) have no text",
        ]


class TestNumbering:

    def test_prefix(self):
        assert number_prefix("audit", datetime(2026, 10, 3)) == "AUD2610"
        assert number_prefix("observation", datetime(2026, 1, 31)) == "OBS2601"

    @pytest.mark.asyncio
    async def test_first_number_of_the_month(self, db_session: AsyncSession):
        assert await next_number(db_session, "audit", COMPANY_ID, datetime(2026, 10, 3)) == "AUD2610001"
