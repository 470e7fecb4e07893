"""Object metadata persistence."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ObjversionConfig, load_config
from .inmemory import InMemoryObjectRepository
from .models import ObjectSnapshot, VersionRecord, VersionSignificance
from .repository import ObjectRepository
from .sqlite import SQLiteObjectRepository

_repository_instance: ObjectRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[ObjversionConfig] = None
) -> ObjectRepository:
    """Factory function to obtain an object repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``OBJVERSION_DATABASE_URL``, or from
    loaded configuration. When no database is configured, an in-memory
    repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("OBJVERSION_DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryObjectRepository()
    elif database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteObjectRepository(path)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "ObjectSnapshot",
    "VersionRecord",
    "VersionSignificance",
    "ObjectRepository",
    "InMemoryObjectRepository",
    "SQLiteObjectRepository",
    "get_repository",
]
