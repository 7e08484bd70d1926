"""
Lifecycle gates.

Pure functions deciding whether an audit may advance past checklist
completion (finalize) or into closure. No I/O: the same functions back the
closure-readiness display and the authoritative server-side check.
"""
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from auditflow.db.models import (
    Audit, AuditStatus, ChecklistAnswer, ChecklistItem, Observation, ObservationStatus,
)

FINALIZABLE_STATUSES = frozenset({AuditStatus.CHECKLIST_COMPLETED, AuditStatus.OBSERVATIONS_PENDING})


@dataclass(frozen=True)
class GateResult:
    allowed: bool
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def from_reasons(cls, reasons: Sequence[str]) -> "GateResult":
        return cls(allowed=not reasons, reasons=list(reasons))


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def pending_approval_reason(count: int) -> str:
    return f"{count} {_plural(count, 'observation', 'observations')} pending approval"


def audit_can_close(audit: Audit, observations: Iterable[Observation]) -> GateResult:
    """Closure gate: audit completed and every observation approved."""
    reasons: list[str] = []
    if audit.status != AuditStatus.COMPLETED:
        reasons.append("audit status must be completed")

    pending = sum(1 for o in observations if o.status != ObservationStatus.APPROVED)
    if pending:
        reasons.append(pending_approval_reason(pending))

    return GateResult.from_reasons(reasons)


def audit_can_finalize(
    audit: Audit,
    items: Iterable[ChecklistItem],
    observations: Iterable[Observation],
) -> GateResult:
    """
    Finalize gate (observations recorded -> completed).

    Requires every checklist item answered, and at least one observation
    when the checklist holds non-compliant ("no") answers.
    """
    items = list(items)
    observations = list(observations)
    reasons: list[str] = []

    if audit.status not in FINALIZABLE_STATUSES:
        reasons.append(
            "audit status must be checklist_completed or observations_pending "
            f"(currently {audit.status.value})"
        )

    if not items:
        reasons.append("checklist has not been initialized")

    unanswered = sum(1 for i in items if i.answer == ChecklistAnswer.UNANSWERED)
    if unanswered:
        reasons.append(f"{unanswered} checklist {_plural(unanswered, 'item', 'items')} unanswered")

    non_compliant = sum(1 for i in items if i.answer == ChecklistAnswer.NO)
    if non_compliant and not observations:
        reasons.append(
            f"checklist has {non_compliant} non-compliant "
            f"{_plural(non_compliant, 'answer', 'answers')} but no observations recorded"
        )

    return GateResult.from_reasons(reasons)
