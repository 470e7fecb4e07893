"""Repository abstraction for object metadata persistence."""

from __future__ import annotations

from typing import Protocol

from .models import ObjectSnapshot


class ObjectRepository(Protocol):
    """Protocol for object metadata backends.

    ``store`` must be an atomic compare-and-swap on the lock token.
    """

    async def create(self, snapshot: ObjectSnapshot) -> str:
        """Persist a new object and return its lock."""

    async def load(self, external_identifier: str) -> tuple[ObjectSnapshot, str]:
        """Return the stored snapshot and its current lock."""

    async def store(
        self, snapshot: ObjectSnapshot, expected_lock: str | None, skip_lock: bool = False
    ) -> str:
        """Replace the stored snapshot if ``expected_lock`` is current; return the new lock."""

    async def list_objects(self) -> list[ObjectSnapshot]:
        """Return all stored objects."""
