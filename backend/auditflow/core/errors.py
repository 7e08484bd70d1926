"""
Workflow error taxonomy and the Result wrapper returned by engine operations.

Expected business-rule failures (unknown id, illegal transition, unmet
precondition, lost update) come back as a failed ``Result`` carrying one of
the errors below. Anything else (database down, programming errors) is raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")


class WorkflowError(Exception):
    """Base class for typed workflow failures."""

    kind = "workflow_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(WorkflowError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = str(entity_id)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, entity_id=self.entity_id)
        return data


class InvalidTransitionError(WorkflowError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, entity: str, current: str, requested: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot move {entity} from '{current}' to '{requested}'")
        self.entity = entity
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, current=self.current, requested=self.requested)
        return data


class ValidationError(WorkflowError):
    """Business precondition unmet. Always lists every failing reason."""

    kind = "validation"
    status_code = 422

    def __init__(self, reasons: Sequence[str]):
        reasons = [r for r in reasons if r]
        if not reasons:
            raise ValueError("ValidationError requires at least one reason")
        super().__init__("; ".join(reasons))
        self.reasons = list(reasons)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reasons"] = list(self.reasons)
        return data


class ConflictError(WorkflowError):
    """Concurrent write detected. Re-read the entity and retry."""

    kind = "conflict"
    status_code = 409

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} was modified concurrently; reload and retry")
        self.entity = entity
        self.entity_id = str(entity_id)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, entity_id=self.entity_id)
        return data


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: WorkflowError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
