"""
Human-readable document numbers: prefix + YYMM + per-company monthly sequence.

Example: AUD2610001, OBS2610012
"""
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from auditflow.db.models import Audit, Observation

PREFIXES = {
    "audit": "AUD",
    "observation": "OBS",
}

_NUMBER_COLUMNS = {
    "audit": (Audit, Audit.audit_number),
    "observation": (Observation, Observation.observation_number),
}


def number_prefix(module: str, now: datetime) -> str:
    return f"{PREFIXES[module]}{now:%y%m}"


async def next_number(db: AsyncSession, module: str, company_id: uuid.UUID, now: datetime) -> str:
    """
    Next free number for this company and month.

    Uniqueness is enforced by a (company_id, number) constraint; callers
    retry on IntegrityError when two requests race for the same sequence.
    """
    model, column = _NUMBER_COLUMNS[module]
    prefix = number_prefix(module, now)
    result = await db.execute(
        select(func.count())
        .select_from(model)
        .where(model.company_id == company_id)
        .where(column.like(f"{prefix}%"))
    )
    sequence = result.scalar_one() + 1
    return f"{prefix}{sequence:03d}"
