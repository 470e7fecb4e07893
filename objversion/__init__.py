"""Objversion: version lifecycle and concurrency control for repository objects."""

from .exceptions import (
    ObjectNotFoundError,
    ObjversionError,
    PartialTransitionError,
    StaleLockError,
    VersioningError,
)
from .persistence import get_repository
from .preservation import get_preservation_registry
from .service import VersionService, VersionStatus
from .state import WorkflowStateService
from .workflows import get_workflow_engine

__version__ = "0.1.0"
__all__ = [
    "ObjectNotFoundError",
    "ObjversionError",
    "PartialTransitionError",
    "StaleLockError",
    "VersioningError",
    "VersionService",
    "VersionStatus",
    "WorkflowStateService",
    "get_preservation_registry",
    "get_repository",
    "get_workflow_engine",
]
