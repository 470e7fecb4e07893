from .models import WorkflowStepRow
from .workflow_db import SQLWorkflowEngine

__all__ = [
    "WorkflowStepRow",
    "SQLWorkflowEngine",
]
