import asyncio

import pytest

from objversion.constants import ACCESSION_WORKFLOW, VERSIONING_WORKFLOW
from objversion.db import SQLWorkflowEngine
from objversion.events import InMemoryEventLog
from objversion.exceptions import (
    AssemblyInProgressError,
    StaleLockError,
    VersionAlreadyOpenError,
)
from objversion.persistence import InMemoryObjectRepository, SQLiteObjectRepository
from objversion.preservation import InMemoryPreservationRegistry
from objversion.service import VersionService
from objversion.state import WorkflowStateService
from objversion.workflows import InMemoryWorkflowEngine, StepStatus

DRUID = "druid:bc123df4567"


async def _finish(engine, workflow_name, except_=()):
    wf = await engine.fetch_instance(DRUID, workflow_name)
    for step in wf.incomplete_steps(except_=except_):
        await engine.set_step_status(DRUID, workflow_name, step, StepStatus.COMPLETED)


async def _accessioned_service(repository, engine):
    registry = InMemoryPreservationRegistry()
    service = VersionService(repository, engine, registry, event_log=InMemoryEventLog())
    await service.register(DRUID, initial_workflow=ACCESSION_WORKFLOW)
    await _finish(engine, ACCESSION_WORKFLOW)
    registry.set_version(DRUID, 1)
    return service, registry


class StoreGate:
    """Repository proxy that holds every store until ``parties`` stores are waiting."""

    def __init__(self, inner, parties):
        self._inner = inner
        self._parties = parties
        self._arrived = 0
        self._released = asyncio.Event()

    async def store(self, snapshot, expected_lock, skip_lock=False):
        self._arrived += 1
        if self._arrived >= self._parties:
            self._released.set()
        await self._released.wait()
        return await self._inner.store(snapshot, expected_lock, skip_lock)

    def __getattr__(self, name):
        return getattr(self._inner, name)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryObjectRepository()
    return SQLiteObjectRepository(tmp_path / "objects.db")


@pytest.mark.asyncio
async def test_full_version_cycle(repository):
    engine = InMemoryWorkflowEngine()
    service, registry = await _accessioned_service(repository, engine)
    state = WorkflowStateService(engine, DRUID)

    assert await service.can_open(DRUID)
    assert await service.open(DRUID, "Fix title", "jcoyne") == 2
    assert await state.active_version_workflow()
    assert await service.can_close(DRUID, 2)

    await service.close(DRUID, 2)
    assert not await state.active_version_workflow()
    assert await state.accessioning()
    assert not await service.can_open(DRUID)

    await _finish(engine, ACCESSION_WORKFLOW)
    registry.set_version(DRUID, 2)
    assert await service.can_open(DRUID)
    assert await service.open(DRUID, "Another edit") == 3

    snapshot, _ = await repository.load(DRUID)
    assert [v.version for v in snapshot.versions] == [1, 2, 3]
    assert [v.closed for v in snapshot.versions] == [True, True, False]


@pytest.mark.asyncio
async def test_close_blocked_by_assembly_then_retried(repository):
    engine = InMemoryWorkflowEngine()
    service, _ = await _accessioned_service(repository, engine)
    await service.open(DRUID, "Add images")
    await engine.create_instance(DRUID, "assemblyWF", 2)

    with pytest.raises(AssemblyInProgressError):
        await service.close(DRUID, 2)
    snapshot, _ = await repository.load(DRUID)
    assert not snapshot.head.closed
    assert (await engine.fetch_instance(DRUID, VERSIONING_WORKFLOW)).active_version == 2

    await _finish(engine, "assemblyWF", except_={"accessioning-initiate"})
    await service.close(DRUID, 2)

    snapshot, _ = await repository.load(DRUID)
    assert snapshot.head.closed
    assert (await engine.fetch_instance(DRUID, ACCESSION_WORKFLOW)).active_version == 2


@pytest.mark.asyncio
async def test_concurrent_opens_allow_exactly_one(repository):
    engine = InMemoryWorkflowEngine()
    service, _ = await _accessioned_service(repository, engine)

    results = await asyncio.gather(
        *(service.open(DRUID, f"Edit {i}") for i in range(5)), return_exceptions=True
    )

    assert [r for r in results if not isinstance(r, Exception)] == [2]
    for result in results:
        if isinstance(result, Exception):
            assert isinstance(result, (StaleLockError, VersionAlreadyOpenError))
    snapshot, _ = await repository.load(DRUID)
    assert snapshot.current_version == 2


@pytest.mark.asyncio
async def test_concurrent_writers_with_same_lock(repository):
    engine = InMemoryWorkflowEngine()
    service, _ = await _accessioned_service(repository, engine)
    _, lock = await repository.load(DRUID)

    results = await asyncio.gather(
        *(service.open(DRUID, f"Edit {i}", lock=lock) for i in range(3)),
        return_exceptions=True,
    )

    assert sum(not isinstance(r, Exception) for r in results) == 1
    snapshot, _ = await repository.load(DRUID)
    assert snapshot.current_version == 2


@pytest.mark.asyncio
async def test_interleaved_opens_lose_on_stale_lock(repository):
    engine = InMemoryWorkflowEngine()
    await _accessioned_service(repository, engine)
    registry = InMemoryPreservationRegistry({DRUID: 1})
    service = VersionService(
        StoreGate(repository, parties=2), engine, registry, event_log=InMemoryEventLog()
    )

    results = await asyncio.gather(
        service.open(DRUID, "Edit A"), service.open(DRUID, "Edit B"), return_exceptions=True
    )

    assert sorted(type(r).__name__ for r in results) == ["StaleLockError", "int"]
    assert 2 in results
    snapshot, _ = await repository.load(DRUID)
    assert snapshot.current_version == 2
    assert (await engine.fetch_instance(DRUID, VERSIONING_WORKFLOW)).active_version == 2


@pytest.mark.asyncio
async def test_cycle_with_sql_workflow_engine(tmp_path):
    repository = SQLiteObjectRepository(tmp_path / "objects.db")
    engine = SQLWorkflowEngine(f"sqlite+aiosqlite:///{tmp_path / 'workflows.db'}")
    service, registry = await _accessioned_service(repository, engine)

    assert await service.open(DRUID, "Edit") == 2
    with pytest.raises(VersionAlreadyOpenError):
        await service.open(DRUID, "Edit again")

    await service.close(DRUID, 2)
    accession = await engine.fetch_instance(DRUID, ACCESSION_WORKFLOW)
    assert accession.active_version == 2

    await _finish(engine, ACCESSION_WORKFLOW)
    registry.set_version(DRUID, 2)
    status = await service.status(DRUID)
    assert status.version == 2
    assert status.openable
    assert status.accessioned
    assert not status.accessioning
