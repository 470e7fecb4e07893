"""Version lifecycle: open, close and the predicates guarding them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel

from .config import ObjversionConfig, load_config
from .constants import (
    EVENT_REGISTRATION,
    EVENT_VERSION_CLOSE,
    EVENT_VERSION_DISCARD,
    EVENT_VERSION_OPEN,
    INITIAL_VERSION_DESCRIPTION,
    VERSIONING_WORKFLOW,
)
from .events import BestEffortEventLog, EventLog, get_event_log
from .exceptions import (
    AccessioningInProgressError,
    AssemblyInProgressError,
    NotAccessionedError,
    ObjectNotFoundError,
    PartialTransitionError,
    PreservationAheadError,
    PreservationNotReadyError,
    PreservationObjectNotFoundError,
    UpstreamUnavailableError,
    VersionAlreadyOpenError,
    VersioningError,
    VersionMismatchError,
    VersionNotDiscardableError,
    VersionNotOpenError,
    WorkflowNotFoundError,
)
from .persistence import ObjectRepository, get_repository
from .persistence.models import ObjectSnapshot, VersionRecord, VersionSignificance
from .preservation import (
    PreservationRegistry,
    get_preservation_registry,
)
from .state import WorkflowStateService
from .workflows import WorkflowEngine, get_workflow_engine

logger = logging.getLogger(__name__)


class VersionStatus(BaseModel):
    """Version state of one object as reported to callers."""

    external_identifier: str
    version: int
    open: bool
    openable: bool
    closeable: bool
    accessioned: bool
    accessioning: bool
    assembling: bool


class VersionService:
    """Open and close object versions.

    Holds no locks. Concurrent callers are kept apart by the lock token
    check in ``ObjectRepository.store`` and by each workflow engine call
    being atomic. Preconditions are evaluated before any write; a failure
    leaves the object untouched.
    """

    def __init__(
        self,
        repository: ObjectRepository,
        workflow_engine: WorkflowEngine,
        preservation: PreservationRegistry,
        event_log: Optional[EventLog] = None,
        sync_with_preservation: bool = True,
    ) -> None:
        self._repository = repository
        self._workflows = workflow_engine
        self._preservation = preservation
        event_log = event_log or get_event_log()
        if not isinstance(event_log, BestEffortEventLog):
            event_log = BestEffortEventLog(event_log)
        self._events = event_log
        self.sync_with_preservation = sync_with_preservation

    @classmethod
    def from_config(cls, config: Optional[ObjversionConfig] = None) -> "VersionService":
        config = config or load_config()
        return cls(
            repository=get_repository(config=config),
            workflow_engine=get_workflow_engine(config=config),
            preservation=get_preservation_registry(config=config),
            sync_with_preservation=config.version_service.sync_with_preservation,
        )

    def _state(self, external_identifier: str) -> WorkflowStateService:
        return WorkflowStateService(self._workflows, external_identifier)

    # ------------------------------------------------------------------
    # Registration
    async def register(
        self,
        external_identifier: str,
        label: Optional[str] = None,
        initial_workflow: Optional[str] = None,
    ) -> ObjectSnapshot:
        """Create an object at version 1, closed and not yet accessioned.

        Args:
            external_identifier: Identifier of the new object.
            label: Optional human readable label.
            initial_workflow: Workflow to start at version 1, e.g. ``assemblyWF``
                or ``accessionWF``.
        """
        snapshot = ObjectSnapshot(
            external_identifier=external_identifier,
            label=label,
            versions=[
                VersionRecord(
                    version=1,
                    description=INITIAL_VERSION_DESCRIPTION,
                    closed_at=datetime.now(timezone.utc),
                )
            ],
        )
        await self._repository.create(snapshot)
        if initial_workflow:
            try:
                await self._workflows.create_instance(external_identifier, initial_workflow, 1)
            except Exception as e:
                logger.error(
                    f"Registered {external_identifier} but failed to create {initial_workflow}: {e}"
                )
                raise PartialTransitionError(
                    external_identifier, 1, f"{initial_workflow} creation", e
                ) from e
        await self._events.record(
            external_identifier, EVENT_REGISTRATION, {"initial_workflow": initial_workflow}
        )
        logger.info(f"Registered {external_identifier}")
        return snapshot

    # ------------------------------------------------------------------
    # Opening
    async def _check_preservation(
        self, external_identifier: str, local_version: int, accessioned: bool
    ) -> None:
        """Compare the local head with preservation's latest version.

        Preservation may lag behind local versions that were closed without
        being accessioned; those records are kept and the local counter wins.
        """
        if not self.sync_with_preservation:
            return
        try:
            preservation_version = await self._preservation.current_version(external_identifier)
        except PreservationObjectNotFoundError:
            if accessioned:
                raise PreservationNotReadyError(external_identifier, local_version) from None
            # Never accessioned, so preservation can't know about it yet.
            return
        if preservation_version > local_version:
            raise PreservationAheadError(external_identifier, preservation_version, local_version)
        if preservation_version < local_version:
            logger.info(
                f"Preservation has version {preservation_version} of {external_identifier}, "
                f"local head is {local_version}"
            )

    async def _ensure_openable(
        self,
        snapshot: ObjectSnapshot,
        state: WorkflowStateService,
        assume_accessioned: bool = False,
    ) -> None:
        """Check the open preconditions in order.

        Raises:
            VersioningError: naming the first precondition that failed.
            UpstreamUnavailableError: if preservation could not be queried.
        """
        external_identifier = snapshot.external_identifier
        current = snapshot.current_version
        accessioned = await state.accessioned()

        await self._check_preservation(external_identifier, current, accessioned)
        if not (assume_accessioned or accessioned):
            raise NotAccessionedError("Object not yet accessioned", external_identifier, current)
        # The open head record is written under the lock token, before versioningWF
        # exists, so it is checked too.
        if not snapshot.head.closed or await state.active_version_workflow():
            raise VersionAlreadyOpenError(
                "Object already opened for versioning", external_identifier, current
            )
        if await state.accessioning():
            raise AccessioningInProgressError(
                "Object currently being accessioned", external_identifier, current
            )

    async def open(
        self,
        external_identifier: str,
        description: str,
        opening_user_name: Optional[str] = None,
        *,
        significance: Optional[VersionSignificance] = None,
        assume_accessioned: bool = False,
        lock: Optional[str] = None,
    ) -> int:
        """Open a new version and start versioningWF for it.

        Args:
            external_identifier: Object to open.
            description: Description of the version change (required).
            opening_user_name: Recorded on the version_open event.
            significance: Optional classifier for the new version.
            assume_accessioned: Skip the accessioned check (local development).
            lock: Lock token the caller observed; defaults to the freshly
                loaded one.

        Returns:
            The new version number.

        Raises:
            ValueError: If ``description`` is blank.
            VersioningError: If a precondition does not hold.
            StaleLockError: If the object changed since ``lock`` was read.
            PartialTransitionError: If the version was written but versioningWF
                could not be created.
        """
        if not description or not description.strip():
            raise ValueError("description is required to open a new version")

        snapshot, current_lock = await self._repository.load(external_identifier)
        await self._ensure_openable(
            snapshot, self._state(external_identifier), assume_accessioned
        )

        record = snapshot.open_version(
            description,
            significance=significance,
            opened_by=opening_user_name,
        )
        await self._repository.store(snapshot, lock or current_lock)

        try:
            await self._workflows.create_instance(
                external_identifier, VERSIONING_WORKFLOW, record.version
            )
        except Exception as e:
            logger.error(
                f"Version {record.version} of {external_identifier} was written but "
                f"{VERSIONING_WORKFLOW} creation failed: {e}"
            )
            raise PartialTransitionError(
                external_identifier, record.version, f"{VERSIONING_WORKFLOW} creation", e
            ) from e

        await self._events.record(
            external_identifier,
            EVENT_VERSION_OPEN,
            {"who": opening_user_name, "version": str(record.version)},
        )
        logger.info(f"Opened version {record.version} of {external_identifier}")
        return record.version

    async def can_open(self, external_identifier: str, assume_accessioned: bool = False) -> bool:
        """Whether ``open`` would pass its preconditions right now.

        Preservation being unreachable counts as "cannot open".
        """
        snapshot, _ = await self._repository.load(external_identifier)
        try:
            await self._ensure_openable(
                snapshot, self._state(external_identifier), assume_accessioned
            )
        except (VersioningError, UpstreamUnavailableError):
            return False
        return True

    async def is_open(self, external_identifier: str, version: int) -> bool:
        """Whether ``version`` is the head version and open for versioning.

        Raises:
            VersionMismatchError: If ``version`` is not the head version.
        """
        snapshot, _ = await self._repository.load(external_identifier)
        if version != snapshot.current_version:
            raise VersionMismatchError(
                f"Version {version} does not match head version {snapshot.current_version}",
                external_identifier,
                version,
            )
        return await self._state(external_identifier).open_version() == version

    # ------------------------------------------------------------------
    # Closing
    async def _ensure_closeable(
        self, snapshot: ObjectSnapshot, version: int, state: WorkflowStateService
    ) -> None:
        external_identifier = snapshot.external_identifier
        open_version = await state.open_version()
        if open_version is None or open_version != version or version != snapshot.current_version:
            raise VersionNotOpenError(
                f"Trying to close version {version} on {external_identifier} "
                "which is not opened for versioning",
                external_identifier,
                version,
            )
        if await state.accessioning():
            raise AccessioningInProgressError(
                f"accessionWF already created for versioned object {external_identifier}",
                external_identifier,
                version,
            )
        if await state.assembling():
            raise AssemblyInProgressError(
                f"Trying to close version {version} on {external_identifier} "
                "which has active assemblyWF",
                external_identifier,
                version,
            )

    async def close(
        self,
        external_identifier: str,
        version: int,
        description: Optional[str] = None,
        user_name: Optional[str] = None,
        *,
        significance: Optional[VersionSignificance] = None,
        start_accession: bool = True,
        lock: Optional[str] = None,
    ) -> None:
        """Close an open version and hand it to accessioning.

        The version keeps the description it was opened with unless a new one
        is supplied. With ``start_accession`` the workflow engine starts
        accessionWF in the same call that closes versioningWF.

        Raises:
            VersioningError: If a precondition does not hold.
            StaleLockError: If the object changed since ``lock`` was read.
            PartialTransitionError: If the record was closed but the workflow
                engine failed.
        """
        snapshot, current_lock = await self._repository.load(external_identifier)
        await self._ensure_closeable(snapshot, version, self._state(external_identifier))

        snapshot.close_version(description, significance)
        await self._repository.store(snapshot, lock or current_lock)
        await self._events.record(
            external_identifier,
            EVENT_VERSION_CLOSE,
            {"who": user_name, "version": str(version)},
        )

        try:
            await self._workflows.close_instance(
                external_identifier, VERSIONING_WORKFLOW, version, start_next=start_accession
            )
        except Exception as e:
            logger.error(
                f"Version {version} of {external_identifier} was closed but "
                f"{VERSIONING_WORKFLOW} could not be closed: {e}"
            )
            raise PartialTransitionError(
                external_identifier, version, f"{VERSIONING_WORKFLOW} close", e
            ) from e
        logger.info(
            f"Closed version {version} of {external_identifier} (start_accession={start_accession})"
        )

    async def can_close(self, external_identifier: str, version: int) -> bool:
        snapshot, _ = await self._repository.load(external_identifier)
        try:
            await self._ensure_closeable(snapshot, version, self._state(external_identifier))
        except VersioningError:
            return False
        return True

    # ------------------------------------------------------------------
    # Editing and discarding the open version
    async def _load_open(self, external_identifier: str) -> tuple[ObjectSnapshot, str]:
        snapshot, current_lock = await self._repository.load(external_identifier)
        # A closed head stays closed even if versioningWF was left active by a
        # failed close.
        if snapshot.head.closed:
            raise VersionNotOpenError(
                f"Head version {snapshot.current_version} of {external_identifier} is not open",
                external_identifier,
                snapshot.current_version,
            )
        return snapshot, current_lock

    async def update_open_version(
        self,
        external_identifier: str,
        lock: str,
        description: Optional[str] = None,
        significance: Optional[VersionSignificance] = None,
    ) -> str:
        """Edit the description or significance of the open head version.

        Returns:
            The new lock token.
        """
        snapshot, _ = await self._load_open(external_identifier)
        if description:
            snapshot.head.description = description
        if significance is not None:
            snapshot.head.significance = significance
        return await self._repository.store(snapshot, lock)

    async def discard_open_version(
        self,
        external_identifier: str,
        user_name: Optional[str] = None,
        lock: Optional[str] = None,
    ) -> None:
        """Throw away an open version that was never closed.

        Raises:
            VersionNotDiscardableError: If the head is closed or is version 1.
        """
        try:
            snapshot, current_lock = await self._load_open(external_identifier)
        except VersionNotOpenError as e:
            raise VersionNotDiscardableError(
                "Cannot discard version because head version is closed",
                external_identifier,
                e.version,
            ) from e
        version = snapshot.current_version
        if version == 1:
            raise VersionNotDiscardableError(
                "Cannot discard version because this is the first version",
                external_identifier,
                version,
            )

        snapshot.discard_head()
        await self._repository.store(snapshot, lock or current_lock)
        try:
            await self._workflows.delete_instance(external_identifier, VERSIONING_WORKFLOW, version)
        except WorkflowNotFoundError:
            logger.warning(
                f"No {VERSIONING_WORKFLOW} to delete for version {version} of {external_identifier}"
            )
        except Exception as e:
            logger.error(
                f"Version {version} of {external_identifier} was discarded but "
                f"{VERSIONING_WORKFLOW} could not be deleted: {e}"
            )
            raise PartialTransitionError(
                external_identifier, version, f"{VERSIONING_WORKFLOW} delete", e
            ) from e
        await self._events.record(
            external_identifier, EVENT_VERSION_DISCARD, {"who": user_name, "version": str(version)}
        )
        logger.info(f"Discarded version {version} of {external_identifier}")

    # ------------------------------------------------------------------
    # Status
    async def status(self, external_identifier: str) -> VersionStatus:
        snapshot, _ = await self._repository.load(external_identifier)
        state = self._state(external_identifier)
        version = snapshot.current_version
        return VersionStatus(
            external_identifier=external_identifier,
            version=version,
            open=await state.open_version() == version,
            openable=await self.can_open(external_identifier),
            closeable=await self.can_close(external_identifier, version),
            accessioned=await state.accessioned(),
            accessioning=await state.accessioning(),
            assembling=await state.assembling(),
        )

    async def statuses(self, external_identifiers: Iterable[str]) -> dict[str, VersionStatus]:
        """Status for each known identifier; unknown identifiers are left out."""
        result: dict[str, VersionStatus] = {}
        for external_identifier in external_identifiers:
            try:
                result[external_identifier] = await self.status(external_identifier)
            except ObjectNotFoundError:
                logger.debug(f"Skipping unknown object {external_identifier}")
        return result
