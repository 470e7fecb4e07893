"""Data models for persisted object version state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VersionSignificance(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    ADMIN = "admin"


class VersionRecord(BaseModel):
    """Metadata for one version of an object."""

    version: int
    description: str
    significance: Optional[VersionSignificance] = None
    opened_by: Optional[str] = None
    opened_at: datetime = Field(default_factory=_now)
    closed_at: Optional[datetime] = None

    @property
    def closed(self) -> bool:
        return self.closed_at is not None


class ObjectSnapshot(BaseModel):
    """Stored state of an object: its identifier and gapless version history."""

    external_identifier: str
    label: Optional[str] = None
    versions: list[VersionRecord] = Field(default_factory=list)

    @property
    def head(self) -> VersionRecord:
        return self.versions[-1]

    @property
    def current_version(self) -> int:
        return self.versions[-1].version if self.versions else 0

    def open_version(
        self,
        description: str,
        *,
        significance: Optional[VersionSignificance] = None,
        opened_by: Optional[str] = None,
    ) -> VersionRecord:
        """Append a new open head version numbered one past the current head."""
        record = VersionRecord(
            version=self.current_version + 1,
            description=description,
            significance=significance,
            opened_by=opened_by,
        )
        self.versions.append(record)
        return record

    def close_version(
        self,
        description: Optional[str] = None,
        significance: Optional[VersionSignificance] = None,
    ) -> VersionRecord:
        """Close the head version, keeping its description unless replaced."""
        head = self.head
        if description:
            head.description = description
        if significance is not None:
            head.significance = significance
        head.closed_at = _now()
        return head

    def discard_head(self) -> VersionRecord:
        return self.versions.pop()
