"""
Checklist template catalog: system default templates, company templates and
tenant lookup.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.core.config import settings
from auditflow.core.errors import Result, ValidationError
from auditflow.db.models import AuditTemplate, TemplateKind, User

logger = logging.getLogger(__name__)


def _q(qid, category, element, question, clause, legal_standard):
    return {
        "id": qid,
        "category": category,
        "element": element,
        "question": question,
        "clause": clause,
        "legal_standard": legal_standard,
    }


DEFAULT_TEMPLATES: list[dict] = [
    {
        "code": "BIS_14489",
        "name": "BIS 14489 - Occupational Health & Safety Management",
        "standard": "BIS 14489",
        "description": "Bureau of Indian Standards 14489 for Occupational Health and Safety Management Systems",
        "questions": [
            _q("BIS_1", "General Requirements", "OH&S Management System",
               "Has the organization established and maintained an OH&S management system?",
               "4.1", "BIS 14489:2018"),
            _q("BIS_2", "OH&S Policy", "Policy Statement",
               "Has top management defined and authorized an OH&S policy?",
               "4.2", "BIS 14489:2018"),
            _q("BIS_3", "Planning", "Hazard Identification",
               "Are procedures established for ongoing hazard identification and risk assessment?",
               "4.3.1", "BIS 14489:2018"),
            _q("BIS_4", "Implementation and Operation", "Training and Competence",
               "Are training needs identified and training provided to ensure competence?",
               "4.4.2", "BIS 14489:2018"),
            _q("BIS_5", "Checking", "Performance Monitoring",
               "Are procedures established for monitoring and measuring OH&S performance?",
               "4.5.1", "BIS 14489:2018"),
        ],
    },
    {
        "code": "FIRE_SAFETY",
        "name": "Fire Safety Audit",
        "standard": "NBC & Local Fire Code",
        "description": "Comprehensive fire safety management system audit",
        "questions": [
            _q("FS_1", "Fire Prevention", "Housekeeping",
               "Are combustible materials properly stored and housekeeping maintained?",
               "NBC 2016 Part 4", "National Building Code 2016"),
            _q("FS_2", "Fire Detection & Alarm", "Fire Alarm System",
               "Is an appropriate fire alarm system installed and functional?",
               "NBC 2016 Part 4", "National Building Code 2016"),
            _q("FS_3", "Fire Suppression", "Fire Extinguishers",
               "Are portable fire extinguishers provided and properly maintained?",
               "IS 2190", "Indian Standard 2190"),
            _q("FS_4", "Emergency Evacuation", "Exit Routes",
               "Are emergency exit routes clearly marked and unobstructed?",
               "NBC 2016 Part 4", "National Building Code 2016"),
            _q("FS_5", "Training & Awareness", "Fire Safety Training",
               "Are employees trained in fire safety procedures and evacuation?",
               "Factory Act 1948", "Factory Act 1948"),
        ],
    },
    {
        "code": "ELECTRICAL_SAFETY",
        "name": "Electrical Safety Audit",
        "standard": "IS 732 & CEA Regulations",
        "description": "Electrical safety compliance and hazard assessment audit",
        "questions": [
            _q("ES_1", "Electrical Installation", "Wiring System",
               "Is the electrical wiring system installed as per IS 732?",
               "IS 732:2019", "Indian Standard 732:2019"),
            _q("ES_2", "Earthing & Protection", "Earthing System",
               "Is proper earthing system installed and maintained?",
               "Rule 61 CEA", "Central Electricity Authority Rules"),
            _q("ES_3", "Electrical Equipment", "Equipment Safety",
               "Are electrical equipment properly guarded and maintained?",
               "IS 732:2019", "Indian Standard 732:2019"),
            _q("ES_4", "Safe Work Practices", "LOTO Procedures",
               "Are lockout/tagout procedures implemented for electrical work?",
               "Factory Act 1948", "Factory Act 1948"),
        ],
    },
    {
        "code": "ISO_45001",
        "name": "ISO 45001:2018 - Occupational Health & Safety",
        "standard": "ISO 45001:2018",
        "description": "ISO 45001:2018 Occupational Health and Safety Management Systems audit",
        "questions": [
            _q("ISO_1", "Context of Organization", "Understanding Organization",
               "Has the organization determined internal and external issues relevant to OH&S?",
               "4.1", "ISO 45001:2018"),
            _q("ISO_2", "Leadership", "Leadership and Commitment",
               "Does top management demonstrate leadership and commitment to OH&S?",
               "5.1", "ISO 45001:2018"),
            _q("ISO_3", "Planning", "Hazard Identification",
               "Are processes established for hazard identification and risk assessment?",
               "6.1.2", "ISO 45001:2018"),
            _q("ISO_4", "Support", "Competence",
               "Has the organization determined competence requirements for workers?",
               "7.2", "ISO 45001:2018"),
            _q("ISO_5", "Operation", "Operational Planning",
               "Are operational controls established to eliminate hazards and reduce risks?",
               "8.1", "ISO 45001:2018"),
        ],
    },
]


async def seed_default_templates(db: AsyncSession) -> int:
    """Upsert DEFAULT_TEMPLATES by code. Returns the number of templates written."""
    written = 0
    for data in DEFAULT_TEMPLATES:
        result = await db.execute(select(AuditTemplate).where(AuditTemplate.code == data["code"]))
        template = result.scalar_one_or_none()
        if template is None:
            template = AuditTemplate(code=data["code"], kind=TemplateKind.DEFAULT)
            db.add(template)
        template.name = data["name"]
        template.standard = data["standard"]
        template.description = data["description"]
        template.questions = [dict(q) for q in data["questions"]]
        template.is_active = True
        written += 1
    await db.commit()
    logger.info(f"Seeded {written} default audit templates")
    return written


async def get_visible_template(
    db: AsyncSession,
    template_id: uuid.UUID,
    company_id: uuid.UUID,
) -> Optional[AuditTemplate]:
    """Active template owned by the company, or a system default."""
    result = await db.execute(
        select(AuditTemplate)
        .where(AuditTemplate.id == template_id)
        .where(AuditTemplate.is_active.is_(True))
        .where(or_(AuditTemplate.company_id == company_id, AuditTemplate.company_id.is_(None)))
    )
    return result.scalar_one_or_none()


async def list_visible_templates(db: AsyncSession, company_id: uuid.UUID) -> list[AuditTemplate]:
    result = await db.execute(
        select(AuditTemplate)
        .where(AuditTemplate.is_active.is_(True))
        .where(or_(AuditTemplate.company_id == company_id, AuditTemplate.company_id.is_(None)))
        .order_by(AuditTemplate.name)
    )
    return list(result.scalars().all())


# === Company templates ===

CODE_ATTEMPTS = 3


@dataclass
class TemplateDraft:
    name: str
    standard: str
    questions: list[dict] = field(default_factory=list)
    description: Optional[str] = None


def _draft_reasons(actor: User, draft: TemplateDraft) -> list[str]:
    reasons = []
    if actor.role not in settings.AUDIT_MANAGER_ROLES:
        reasons.append(f"role '{actor.role}' is not allowed to create templates")
    if not (draft.name or "").strip():
        reasons.append("name is required")
    if not (draft.standard or "").strip():
        reasons.append("standard is required")
    if not draft.questions:
        reasons.append("at least one question is required")
    blank = sum(1 for q in draft.questions if not (q.get("question") or "").strip())
    if blank:
        reasons.append(f"{blank} question(s) have no text")
    return reasons


async def _free_code(db: AsyncSession, name: str) -> str:
    """NAME_IN_CAPS cut to 10 chars, suffixed _1, _2 ... until unused."""
    base = re.sub(r"\s+", "_", name.strip().upper())[:10]
    code, counter = base, 1
    while await db.scalar(select(AuditTemplate.id).where(AuditTemplate.code == code)) is not None:
        code = f"{base}_{counter}"
        counter += 1
    return code


async def create_custom_template(db: AsyncSession, actor: User, draft: TemplateDraft) -> Result[AuditTemplate]:
    """Company-private template; visible only to the actor's company."""
    reasons = _draft_reasons(actor, draft)
    if reasons:
        return Result.failure(ValidationError(reasons))

    for attempt in range(1, CODE_ATTEMPTS + 1):
        code = await _free_code(db, draft.name)
        template = AuditTemplate(
            company_id=actor.company_id,
            code=code,
            name=draft.name.strip(),
            standard=draft.standard.strip(),
            description=draft.description,
            kind=TemplateKind.CUSTOM,
            questions=[
                {**q, "id": q.get("id") or f"{code}_{n}"}
                for n, q in enumerate(draft.questions, start=1)
            ],
        )
        db.add(template)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"Template code {code} taken on attempt {attempt}")
            continue
        break
    else:
        raise RuntimeError(f"Could not allocate a template code for {draft.name!r}")

    logger.info(f"Created template {template.code} for company {actor.company_id}")
    return Result.success(template)
