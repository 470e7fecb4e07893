"""In-memory implementation of the workflow engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..exceptions import WorkflowConflictError, WorkflowNotFoundError
from .engine import WorkflowEngine
from .models import StepStatus, Workflow, WorkflowStep
from .templates import NEXT_WORKFLOW, process_names


class InMemoryWorkflowEngine(WorkflowEngine):
    """Keep workflow steps in local memory.

    No method awaits internally, so every call is atomic with respect to
    other tasks on the same event loop.
    """

    def __init__(self) -> None:
        self._steps: Dict[tuple[str, str], list[WorkflowStep]] = {}

    def _create(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        context: Optional[dict[str, Any]] = None,
    ) -> Workflow:
        names = process_names(workflow_name)
        steps = self._steps.setdefault((external_identifier, workflow_name), [])
        if any(s.version == version for s in steps):
            raise WorkflowConflictError(
                f"{workflow_name} already exists for {external_identifier} version {version}"
            )
        for step in steps:
            step.active_version = False
        now = datetime.now(timezone.utc)
        steps.extend(
            WorkflowStep(
                workflow=workflow_name,
                name=name,
                version=version,
                position=position,
                created_at=now,
                context=context,
            )
            for position, name in enumerate(names)
        )
        return self._snapshot(external_identifier, workflow_name)

    def _snapshot(self, external_identifier: str, workflow_name: str) -> Workflow:
        return Workflow(
            external_identifier=external_identifier,
            workflow_name=workflow_name,
            steps=[s.model_copy() for s in self._steps[(external_identifier, workflow_name)]],
        )

    def _instance_steps(
        self, external_identifier: str, workflow_name: str, version: int
    ) -> list[WorkflowStep]:
        steps = [
            s
            for s in self._steps.get((external_identifier, workflow_name), [])
            if s.version == version
        ]
        if not steps:
            raise WorkflowNotFoundError(external_identifier, workflow_name)
        return steps

    # ------------------------------------------------------------------
    async def create_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        context: Optional[dict[str, Any]] = None,
    ) -> Workflow:
        return self._create(external_identifier, workflow_name, version, context)

    async def close_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        start_next: bool = False,
    ) -> None:
        steps = self._instance_steps(external_identifier, workflow_name, version)
        next_workflow = NEXT_WORKFLOW.get(workflow_name) if start_next else None
        if next_workflow is not None:
            self._create(external_identifier, next_workflow, version)
        now = datetime.now(timezone.utc)
        for step in steps:
            if not step.completed:
                step.status = StepStatus.COMPLETED
                step.completed_at = now
            step.active_version = False

    async def delete_instance(
        self, external_identifier: str, workflow_name: str, version: int
    ) -> None:
        self._instance_steps(external_identifier, workflow_name, version)
        key = (external_identifier, workflow_name)
        self._steps[key] = [s for s in self._steps[key] if s.version != version]
        if not self._steps[key]:
            del self._steps[key]

    async def fetch_instance(self, external_identifier: str, workflow_name: str) -> Workflow:
        if not self._steps.get((external_identifier, workflow_name)):
            raise WorkflowNotFoundError(external_identifier, workflow_name)
        return self._snapshot(external_identifier, workflow_name)

    async def set_step_status(
        self,
        external_identifier: str,
        workflow_name: str,
        step_name: str,
        status: StepStatus,
        version: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        steps = self._steps.get((external_identifier, workflow_name), [])
        if version is None:
            candidates = [s for s in steps if s.active_version]
        else:
            candidates = [s for s in steps if s.version == version]
        if not candidates:
            raise WorkflowNotFoundError(external_identifier, workflow_name)
        for step in candidates:
            if step.name == step_name:
                step.status = StepStatus(status)
                step.error_message = error_message
                if step.completed and step.completed_at is None:
                    step.completed_at = datetime.now(timezone.utc)
                return
        raise ValueError(f"No step {step_name} in {workflow_name} for {external_identifier}")

    async def list_workflows(self, external_identifier: str) -> list[Workflow]:
        return [
            self._snapshot(ident, name)
            for (ident, name) in sorted(self._steps)
            if ident == external_identifier
        ]
