import pytest

from objversion.exceptions import (
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    StaleLockError,
)
from objversion.persistence import (
    InMemoryObjectRepository,
    ObjectSnapshot,
    SQLiteObjectRepository,
    VersionRecord,
)


def _snapshot(druid: str = "druid:bc123df4567") -> ObjectSnapshot:
    return ObjectSnapshot(
        external_identifier=druid,
        label="A map",
        versions=[VersionRecord(version=1, description="Initial version")],
    )


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryObjectRepository()
    return SQLiteObjectRepository(tmp_path / "objects.db")


@pytest.mark.asyncio
async def test_create_load_store(repo):
    lock = await repo.create(_snapshot())
    assert lock == "druid:bc123df4567=1=0"

    snapshot, loaded_lock = await repo.load("druid:bc123df4567")
    assert loaded_lock == lock
    assert snapshot.label == "A map"
    assert snapshot.current_version == 1

    snapshot.open_version("Fix the title")
    new_lock = await repo.store(snapshot, lock)
    assert new_lock == "druid:bc123df4567=2=1"

    reloaded, reloaded_lock = await repo.load("druid:bc123df4567")
    assert reloaded_lock == new_lock
    assert [v.version for v in reloaded.versions] == [1, 2]
    assert reloaded.head.description == "Fix the title"

    all_objects = await repo.list_objects()
    assert [o.external_identifier for o in all_objects] == ["druid:bc123df4567"]


@pytest.mark.asyncio
async def test_store_with_stale_lock_is_rejected(repo):
    lock = await repo.create(_snapshot())
    first, _ = await repo.load("druid:bc123df4567")
    second, _ = await repo.load("druid:bc123df4567")

    first.head.description = "first writer"
    await repo.store(first, lock)

    second.head.description = "second writer"
    with pytest.raises(StaleLockError) as excinfo:
        await repo.store(second, lock)
    assert excinfo.value.actual == lock

    stored, _ = await repo.load("druid:bc123df4567")
    assert stored.head.description == "first writer"


@pytest.mark.asyncio
async def test_store_skip_lock(repo):
    await repo.create(_snapshot())
    snapshot, _ = await repo.load("druid:bc123df4567")
    snapshot.head.description = "privileged"

    await repo.store(snapshot, None, skip_lock=True)

    stored, lock = await repo.load("druid:bc123df4567")
    assert stored.head.description == "privileged"
    assert lock.endswith("=1")


@pytest.mark.asyncio
async def test_loaded_snapshot_is_a_copy(repo):
    await repo.create(_snapshot())
    snapshot, _ = await repo.load("druid:bc123df4567")
    snapshot.head.description = "not stored"

    stored, _ = await repo.load("druid:bc123df4567")
    assert stored.head.description == "Initial version"


@pytest.mark.asyncio
async def test_missing_and_duplicate_objects(repo):
    with pytest.raises(ObjectNotFoundError):
        await repo.load("druid:zz999zz9999")
    with pytest.raises(ObjectNotFoundError):
        await repo.store(_snapshot("druid:zz999zz9999"), "druid:zz999zz9999=1=0")

    await repo.create(_snapshot())
    with pytest.raises(ObjectAlreadyExistsError):
        await repo.create(_snapshot())


@pytest.mark.asyncio
async def test_sqlite_state_survives_reopen(tmp_path):
    path = tmp_path / "objects.db"
    repo = SQLiteObjectRepository(path)
    lock = await repo.create(_snapshot())
    snapshot, _ = await repo.load("druid:bc123df4567")
    snapshot.open_version("Second")
    await repo.store(snapshot, lock)

    reopened = SQLiteObjectRepository(path)
    stored, stored_lock = await reopened.load("druid:bc123df4567")
    assert stored.current_version == 2
    assert stored_lock == "druid:bc123df4567=2=1"
