from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..exceptions import WorkflowConflictError, WorkflowNotFoundError
from ..workflows.models import StepStatus, Workflow, WorkflowStep
from ..workflows.templates import NEXT_WORKFLOW, process_names
from .models import WorkflowStepRow


def _to_step(row: WorkflowStepRow) -> WorkflowStep:
    return WorkflowStep(
        workflow=row.workflow,
        name=row.process,
        version=row.version,
        status=StepStatus(row.status),
        active_version=row.active_version,
        position=row.position,
        created_at=row.created_at,
        completed_at=row.completed_at,
        error_message=row.error_msg,
        context=row.context,
    )


class SQLWorkflowEngine:
    """Workflow step store backed by an async SQLAlchemy engine.

    Every public method runs in a single session and commits once, which is
    what makes ``close_instance(start_next=True)`` atomic.
    """

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine) as session:
            yield session

    async def _rows(
        self,
        session: AsyncSession,
        external_identifier: str,
        workflow_name: str,
        version: Optional[int] = None,
    ) -> list[WorkflowStepRow]:
        query = select(WorkflowStepRow).where(
            WorkflowStepRow.external_identifier == external_identifier,
            WorkflowStepRow.workflow == workflow_name,
        )
        if version is not None:
            query = query.where(WorkflowStepRow.version == version)
        result = await session.execute(query.order_by(WorkflowStepRow.id))
        return list(result.scalars().all())

    async def _add_instance(
        self,
        session: AsyncSession,
        external_identifier: str,
        workflow_name: str,
        version: int,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        names = process_names(workflow_name)
        if await self._rows(session, external_identifier, workflow_name, version):
            raise WorkflowConflictError(
                f"{workflow_name} already exists for {external_identifier} version {version}"
            )
        await session.execute(
            update(WorkflowStepRow)
            .where(
                WorkflowStepRow.external_identifier == external_identifier,
                WorkflowStepRow.workflow == workflow_name,
            )
            .values(active_version=False)
        )
        for position, name in enumerate(names):
            session.add(
                WorkflowStepRow(
                    external_identifier=external_identifier,
                    workflow=workflow_name,
                    process=name,
                    version=version,
                    position=position,
                    context=context,
                )
            )

    # ------------------------------------------------------------------
    async def create_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        context: Optional[dict[str, Any]] = None,
    ) -> Workflow:
        async with self.session() as session:
            await self._add_instance(session, external_identifier, workflow_name, version, context)
            await session.commit()
        return await self.fetch_instance(external_identifier, workflow_name)

    async def close_instance(
        self,
        external_identifier: str,
        workflow_name: str,
        version: int,
        start_next: bool = False,
    ) -> None:
        async with self.session() as session:
            rows = await self._rows(session, external_identifier, workflow_name, version)
            if not rows:
                raise WorkflowNotFoundError(external_identifier, workflow_name)
            now = datetime.utcnow()
            for row in rows:
                if StepStatus(row.status) not in (StepStatus.COMPLETED, StepStatus.SKIPPED):
                    row.status = StepStatus.COMPLETED.value
                    row.completed_at = now
                row.active_version = False
            next_workflow = NEXT_WORKFLOW.get(workflow_name) if start_next else None
            if next_workflow is not None:
                await self._add_instance(session, external_identifier, next_workflow, version)
            await session.commit()

    async def delete_instance(
        self, external_identifier: str, workflow_name: str, version: int
    ) -> None:
        async with self.session() as session:
            result = await session.execute(
                delete(WorkflowStepRow).where(
                    WorkflowStepRow.external_identifier == external_identifier,
                    WorkflowStepRow.workflow == workflow_name,
                    WorkflowStepRow.version == version,
                )
            )
            if not result.rowcount:
                await session.rollback()
                raise WorkflowNotFoundError(external_identifier, workflow_name)
            await session.commit()

    async def fetch_instance(self, external_identifier: str, workflow_name: str) -> Workflow:
        async with self.session() as session:
            rows = await self._rows(session, external_identifier, workflow_name)
        if not rows:
            raise WorkflowNotFoundError(external_identifier, workflow_name)
        return Workflow(
            external_identifier=external_identifier,
            workflow_name=workflow_name,
            steps=[_to_step(r) for r in rows],
        )

    async def set_step_status(
        self,
        external_identifier: str,
        workflow_name: str,
        step_name: str,
        status: StepStatus,
        version: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        status = StepStatus(status)
        async with self.session() as session:
            rows = await self._rows(session, external_identifier, workflow_name, version)
            if version is None:
                rows = [r for r in rows if r.active_version]
            if not rows:
                raise WorkflowNotFoundError(external_identifier, workflow_name)
            row = next((r for r in rows if r.process == step_name), None)
            if row is None:
                raise ValueError(
                    f"No step {step_name} in {workflow_name} for {external_identifier}"
                )
            row.status = status.value
            row.error_msg = error_message
            if status.is_complete and row.completed_at is None:
                row.completed_at = datetime.utcnow()
            await session.commit()

    async def list_workflows(self, external_identifier: str) -> list[Workflow]:
        async with self.session() as session:
            result = await session.execute(
                select(WorkflowStepRow)
                .where(WorkflowStepRow.external_identifier == external_identifier)
                .order_by(WorkflowStepRow.workflow, WorkflowStepRow.id)
            )
            rows = list(result.scalars().all())
        grouped: dict[str, list[WorkflowStep]] = {}
        for row in rows:
            grouped.setdefault(row.workflow, []).append(_to_step(row))
        return [
            Workflow(external_identifier=external_identifier, workflow_name=name, steps=steps)
            for name, steps in grouped.items()
        ]
