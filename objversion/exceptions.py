"""Error taxonomy for the version lifecycle.

Precondition failures are ``VersioningError`` subclasses and are never retried
automatically. ``StaleLockError`` is the one category a caller may safely
retry after reloading.
"""

from __future__ import annotations

from typing import Optional


class ObjversionError(Exception):
    """Base class for all errors raised by objversion."""


class ObjectNotFoundError(ObjversionError):
    """Raised when no object exists for an external identifier."""

    def __init__(self, external_identifier: str):
        super().__init__(f"Couldn't find object with external identifier {external_identifier}")
        self.external_identifier = external_identifier


class ObjectAlreadyExistsError(ObjversionError):
    """Raised when registering an identifier that is already taken."""

    def __init__(self, external_identifier: str):
        super().__init__(f"Object {external_identifier} already exists")
        self.external_identifier = external_identifier


class VersioningError(ObjversionError):
    """A version transition precondition does not hold."""

    def __init__(
        self,
        message: str,
        external_identifier: Optional[str] = None,
        version: Optional[int] = None,
    ):
        super().__init__(message)
        self.external_identifier = external_identifier
        self.version = version


class NotAccessionedError(VersioningError):
    pass


class VersionAlreadyOpenError(VersioningError):
    pass


class AccessioningInProgressError(VersioningError):
    pass


class AssemblyInProgressError(VersioningError):
    pass


class VersionNotOpenError(VersioningError):
    pass


class VersionMismatchError(VersioningError):
    pass


class VersionNotDiscardableError(VersioningError):
    pass


class PreservationAheadError(VersioningError):
    """Preservation reports a newer version than the local record."""

    def __init__(self, external_identifier: str, preservation_version: int, local_version: int):
        super().__init__(
            f"Version from Preservation is out of sync. Preservation expects "
            f"{preservation_version} but current version is {local_version}",
            external_identifier=external_identifier,
            version=local_version,
        )
        self.preservation_version = preservation_version
        self.local_version = local_version


class PreservationNotReadyError(VersioningError):
    """Preservation does not yet answer queries about an accessioned object."""

    def __init__(self, external_identifier: str, version: Optional[int] = None):
        super().__init__(
            "Preservation (SDR) is not yet answering queries about this object. "
            "When an object has just been transferred, Preservation isn't "
            "immediately ready to answer queries.",
            external_identifier=external_identifier,
            version=version,
        )


class StaleLockError(ObjversionError):
    """The caller's lock token no longer matches the stored object."""

    def __init__(self, expected: str, actual: Optional[str]):
        super().__init__(f"Expected lock of {expected} but received {actual}.")
        self.expected = expected
        self.actual = actual


class UpstreamUnavailableError(ObjversionError):
    """An external collaborator could not be reached."""


class PreservationUnavailableError(UpstreamUnavailableError):
    pass


class PreservationObjectNotFoundError(ObjversionError):
    """Preservation has no record of the object."""

    def __init__(self, external_identifier: str):
        super().__init__(f"Preservation has no record of {external_identifier}")
        self.external_identifier = external_identifier


class WorkflowNotFoundError(ObjversionError):
    """The workflow engine has no instance of a workflow for an object."""

    def __init__(self, external_identifier: str, workflow_name: str):
        super().__init__(f"No {workflow_name} found for {external_identifier}")
        self.external_identifier = external_identifier
        self.workflow_name = workflow_name


class UnknownWorkflowError(ObjversionError):
    """No template exists for the requested workflow name."""


class PartialTransitionError(ObjversionError):
    """A transition was committed locally but a follow-up side effect failed.

    Not retried. Carries enough context for manual reconciliation.
    """

    def __init__(self, external_identifier: str, version: int, step: str, cause: Exception):
        super().__init__(
            f"{step} failed for {external_identifier} at version {version} after "
            f"the version record was written: {cause}"
        )
        self.external_identifier = external_identifier
        self.version = version
        self.step = step
        self.cause = cause


class WorkflowConflictError(ObjversionError):
    """An instance of the workflow already exists for that version."""
