"""Shared fixtures: in-memory collaborators wired into a VersionService."""

import pytest
import pytest_asyncio

from objversion.constants import ACCESSION_WORKFLOW
from objversion.events import InMemoryEventLog
from objversion.persistence import InMemoryObjectRepository
from objversion.preservation import InMemoryPreservationRegistry
from objversion.service import VersionService
from objversion.workflows import InMemoryWorkflowEngine, StepStatus

DRUID = "druid:bc123df4567"


async def _complete_workflow(engine, external_identifier, workflow_name, except_=()):
    """Mark every incomplete step of the active instance completed."""
    wf = await engine.fetch_instance(external_identifier, workflow_name)
    for step in wf.incomplete_steps(except_=except_):
        await engine.set_step_status(
            external_identifier, workflow_name, step, StepStatus.COMPLETED
        )


@pytest.fixture
def repository() -> InMemoryObjectRepository:
    return InMemoryObjectRepository()


@pytest.fixture
def engine() -> InMemoryWorkflowEngine:
    return InMemoryWorkflowEngine()


@pytest.fixture
def preservation() -> InMemoryPreservationRegistry:
    return InMemoryPreservationRegistry()


@pytest.fixture
def events() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def service(repository, engine, preservation, events) -> VersionService:
    return VersionService(
        repository=repository,
        workflow_engine=engine,
        preservation=preservation,
        event_log=events,
    )


@pytest.fixture
def complete_workflow():
    return _complete_workflow


@pytest_asyncio.fixture
async def accessioned(service, engine, preservation):
    """An object at Closed(1) that has finished its first accession."""
    await service.register(DRUID, label="Test object", initial_workflow=ACCESSION_WORKFLOW)
    await _complete_workflow(engine, DRUID, ACCESSION_WORKFLOW)
    preservation.set_version(DRUID, 1)
    return DRUID
