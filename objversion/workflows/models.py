"""Data models for workflow instances and their steps."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    WAITING = "waiting"
    STARTED = "started"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_complete(self) -> bool:
        return self in COMPLETED_STATES


COMPLETED_STATES = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED})


class WorkflowStep(BaseModel):
    """One process step of a workflow instance."""

    workflow: str
    name: str
    version: int
    status: StepStatus = StepStatus.WAITING
    active_version: bool = True
    position: int = 0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    context: Optional[dict[str, Any]] = None

    @property
    def completed(self) -> bool:
        return self.status.is_complete


class Workflow(BaseModel):
    """All steps of one named workflow for an object, across versions.

    At most one version's steps carry ``active_version``; older instances are
    kept as history.
    """

    external_identifier: str
    workflow_name: str
    steps: list[WorkflowStep] = Field(default_factory=list)

    @property
    def active_steps(self) -> list[WorkflowStep]:
        return [s for s in self.steps if s.active_version]

    @property
    def is_active(self) -> bool:
        return bool(self.active_steps)

    @property
    def active_version(self) -> Optional[int]:
        active = self.active_steps
        return active[0].version if active else None

    def steps_for(self, version: int) -> list[WorkflowStep]:
        return sorted(
            (s for s in self.steps if s.version == version), key=lambda s: s.position
        )

    def incomplete_steps(self, except_: Iterable[str] = ()) -> list[str]:
        """Names of incomplete steps in the active instance, minus ``except_``."""
        ignored = set(except_)
        return [
            s.name
            for s in sorted(self.active_steps, key=lambda s: s.position)
            if not s.completed and s.name not in ignored
        ]

    def milestone_completed(self, step_name: str) -> bool:
        """True if ``step_name`` completed for any version."""
        return any(s.name == step_name and s.completed for s in self.steps)
