"""In-memory implementation of the object repository."""

from __future__ import annotations

from typing import Dict

from ..exceptions import ObjectAlreadyExistsError, ObjectNotFoundError
from ..locking import check_lock, compute_lock
from .models import ObjectSnapshot
from .repository import ObjectRepository


class InMemoryObjectRepository(ObjectRepository):
    """Store object snapshots in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Each method completes without
    yielding to the event loop, so the lock check and the write in
    ``store`` cannot interleave with another task.
    """

    def __init__(self) -> None:
        self._objects: Dict[str, tuple[ObjectSnapshot, int]] = {}

    def _lock_for(self, external_identifier: str) -> str:
        snapshot, counter = self._objects[external_identifier]
        return compute_lock(external_identifier, snapshot.current_version, counter)

    # ------------------------------------------------------------------
    async def create(self, snapshot: ObjectSnapshot) -> str:
        if snapshot.external_identifier in self._objects:
            raise ObjectAlreadyExistsError(snapshot.external_identifier)
        self._objects[snapshot.external_identifier] = (snapshot.model_copy(deep=True), 0)
        return self._lock_for(snapshot.external_identifier)

    async def load(self, external_identifier: str) -> tuple[ObjectSnapshot, str]:
        if external_identifier not in self._objects:
            raise ObjectNotFoundError(external_identifier)
        snapshot, _ = self._objects[external_identifier]
        return snapshot.model_copy(deep=True), self._lock_for(external_identifier)

    async def store(
        self, snapshot: ObjectSnapshot, expected_lock: str | None, skip_lock: bool = False
    ) -> str:
        external_identifier = snapshot.external_identifier
        if external_identifier not in self._objects:
            raise ObjectNotFoundError(external_identifier)
        check_lock(self._lock_for(external_identifier), expected_lock, skip_lock=skip_lock)
        _, counter = self._objects[external_identifier]
        self._objects[external_identifier] = (snapshot.model_copy(deep=True), counter + 1)
        return self._lock_for(external_identifier)

    async def list_objects(self) -> list[ObjectSnapshot]:
        return [snapshot.model_copy(deep=True) for snapshot, _ in self._objects.values()]
