from auditflow.workflow.base import Collaborators
from auditflow.workflow.checklist import ChecklistEngine
from auditflow.workflow.lifecycle import AuditLifecycleManager
from auditflow.workflow.observations import ObservationWorkflow

__all__ = ["Collaborators", "ChecklistEngine", "AuditLifecycleManager", "ObservationWorkflow"]
