"""Workflow step store: instances, steps and the engine interface."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ObjversionConfig, load_config
from .engine import WorkflowEngine
from .inmemory import InMemoryWorkflowEngine
from .models import COMPLETED_STATES, StepStatus, Workflow, WorkflowStep
from .templates import NEXT_WORKFLOW, WORKFLOW_TEMPLATES, process_names

_engine_instance: WorkflowEngine | None = None


def get_workflow_engine(
    database_url: Optional[str] = None, config: Optional[ObjversionConfig] = None
) -> WorkflowEngine:
    """Factory function to obtain the configured workflow engine.

    Uses ``database_url``, the ``OBJVERSION_WORKFLOW_DATABASE_URL`` environment
    variable or ``workflow_database_url`` from configuration, in that order.
    Falls back to an in-memory engine.
    """

    global _engine_instance
    if _engine_instance is not None and database_url is None and config is None:
        return _engine_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("OBJVERSION_WORKFLOW_DATABASE_URL")
        or config.workflow_database_url
    )

    if not database_url:
        _engine_instance = InMemoryWorkflowEngine()
    else:
        from ..db import SQLWorkflowEngine

        _engine_instance = SQLWorkflowEngine(database_url)
    return _engine_instance


__all__ = [
    "COMPLETED_STATES",
    "NEXT_WORKFLOW",
    "WORKFLOW_TEMPLATES",
    "InMemoryWorkflowEngine",
    "StepStatus",
    "Workflow",
    "WorkflowEngine",
    "WorkflowStep",
    "get_workflow_engine",
    "process_names",
]
