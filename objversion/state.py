"""Derived workflow state of an object.

Answers whether an object is assembling, accessioning, accessioned or open
for versioning by inspecting its active workflow instances. Callers never
need to know the workflow catalog or which terminal steps are ignored.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Optional

from .constants import (
    ACCESSION_IGNORABLE_STEPS,
    ACCESSION_WORKFLOW,
    ACCESSIONED_MILESTONE,
    ASSEMBLY_WORKFLOWS,
    VERSIONING_WORKFLOW,
)
from .exceptions import WorkflowNotFoundError
from .workflows.engine import WorkflowEngine
from .workflows.models import Workflow

logger = logging.getLogger(__name__)


class WorkflowStateService:
    """Query derived state for one object.

    A missing workflow means that stage is inactive. Any other engine error
    propagates unchanged; nothing here retries.
    """

    def __init__(self, engine: WorkflowEngine, external_identifier: str) -> None:
        self._engine = engine
        self.external_identifier = external_identifier

    async def _workflow(self, workflow_name: str) -> Optional[Workflow]:
        try:
            return await self._engine.fetch_instance(self.external_identifier, workflow_name)
        except WorkflowNotFoundError:
            return None

    async def _active_workflow_except_steps(
        self, workflow_name: str, ignorable: AbstractSet[str]
    ) -> bool:
        workflow = await self._workflow(workflow_name)
        if workflow is None or not workflow.is_active:
            return False
        return bool(workflow.incomplete_steps(except_=ignorable))

    async def assembling(self) -> bool:
        """True if any pre-processing workflow still has work outstanding."""
        for workflow_name, ignorable in ASSEMBLY_WORKFLOWS.items():
            if await self._active_workflow_except_steps(workflow_name, ignorable):
                logger.debug(f"{self.external_identifier} is assembling in {workflow_name}")
                return True
        return False

    async def accessioning(self) -> bool:
        """True if the active accessionWF has incomplete steps other than end-accession.

        This is also true while a preservation step sits in error, since that
        step never completes.
        """
        return await self._active_workflow_except_steps(
            ACCESSION_WORKFLOW, ACCESSION_IGNORABLE_STEPS
        )

    async def accessioned(self) -> bool:
        """True if any version has completed the accession milestone."""
        workflow_name, milestone = ACCESSIONED_MILESTONE
        workflow = await self._workflow(workflow_name)
        return workflow is not None and workflow.milestone_completed(milestone)

    async def active_version_workflow(self) -> bool:
        """True if a versioningWF is active, whatever its steps report."""
        return await self.open_version() is not None

    async def open_version(self) -> Optional[int]:
        """Version of the active versioningWF, or None when nothing is open."""
        workflow = await self._workflow(VERSIONING_WORKFLOW)
        if workflow is None:
            return None
        return workflow.active_version
