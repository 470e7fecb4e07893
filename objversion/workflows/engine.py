"""Workflow engine abstraction."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .models import StepStatus, Workflow


class WorkflowEngine(Protocol):
    """Protocol for workflow step stores.

    Each call must be atomic on its own; the lifecycle never composes two
    calls into one transaction.
    """

    async def create_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        context: Optional[dict[str, Any]] = None,
    ) -> Workflow:
        """Create an active instance, deactivating earlier instances of the same name."""

    async def close_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        start_next: bool = False,
    ) -> None:
        """Complete and deactivate an instance; optionally start its follow-on workflow."""

    async def delete_instance(
        self, external_identifier: str, workflow_name: str, version: int
    ) -> None:
        """Remove the steps of one instance."""

    async def fetch_instance(self, external_identifier: str, workflow_name: str) -> Workflow:
        """Return the workflow or raise ``WorkflowNotFoundError``."""

    async def set_step_status(
        self,
        external_identifier: str,
        workflow_name: str,
        step_name: str,
        status: StepStatus,
        version: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Update one step (of the active instance unless ``version`` is given)."""

    async def list_workflows(self, external_identifier: str) -> list[Workflow]:
        """Return every workflow recorded for an object."""
